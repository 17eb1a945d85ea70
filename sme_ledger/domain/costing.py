"""
Costing Calculator - Tính giá xuất kho theo phương pháp bình quân gia quyền di động.

Giá bình quân được tính lại sau mỗi lần nhập, giá xuất là giá bình quân
tại thời điểm xuất. Không tính lại hồi tố cho chứng từ nhập/xuất trễ.
"""

import logging
import threading
import weakref
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, replace
from decimal import Decimal

from .entities import InventoryPosition, StockMovement
from .exceptions import InsufficientStockError, ValidationError
from .value_objects import ProductId, round_half_up, to_decimal

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class IssueResult:
    position: InventoryPosition
    unit_cost: int
    cost: int
    negative_stock: bool = False


def _check_quantity(qty: Decimal) -> None:
    if qty < 0:
        raise ValidationError(
            f"Số lượng không được âm: {qty}", code=ValidationError.INVALID_AMOUNT
        )


def apply_receipt(position: InventoryPosition, qty, unit_cost: int) -> InventoryPosition:
    """
    Nhập kho: avg mới = (SL tồn * avg + SL nhập * đơn giá) / (SL tồn + SL nhập).

    Nhập số lượng 0 không làm thay đổi tồn kho. Mẫu số bằng 0 giữ nguyên
    giá bình quân cũ.
    """
    qty = to_decimal(qty)
    _check_quantity(qty)
    if unit_cost < 0:
        raise ValidationError(
            f"Đơn giá nhập không được âm: {unit_cost}", code=ValidationError.INVALID_AMOUNT
        )
    if qty == 0:
        return position

    new_qty = position.quantity_on_hand + qty
    if new_qty == 0:
        new_avg = position.average_unit_cost
    else:
        total_value = position.quantity_on_hand * position.average_unit_cost + qty * unit_cost
        new_avg = round_half_up(total_value / new_qty)
    return replace(position, quantity_on_hand=new_qty, average_unit_cost=new_avg)


def apply_issue(
    position: InventoryPosition, qty, allow_negative_stock: bool = False
) -> IssueResult:
    """Xuất kho theo giá bình quân hiện tại. Giá bình quân không đổi sau khi xuất."""
    qty = to_decimal(qty)
    _check_quantity(qty)
    new_qty = position.quantity_on_hand - qty
    negative = new_qty < 0
    if negative and not allow_negative_stock:
        raise InsufficientStockError(position.product_id, position.quantity_on_hand, qty)

    unit_cost = position.average_unit_cost
    cost = round_half_up(qty * unit_cost)
    return IssueResult(
        position=replace(position, quantity_on_hand=new_qty),
        unit_cost=unit_cost,
        cost=cost,
        negative_stock=negative,
    )


def reverse_receipt(
    position: InventoryPosition, qty, unit_cost: int, allow_negative_stock: bool = False
) -> InventoryPosition:
    """Hủy phiếu nhập đã ghi sổ: trừ lại số lượng và giá trị đã nhập."""
    qty = to_decimal(qty)
    _check_quantity(qty)
    if qty == 0:
        return position

    new_qty = position.quantity_on_hand - qty
    if new_qty < 0 and not allow_negative_stock:
        raise InsufficientStockError(position.product_id, position.quantity_on_hand, qty)
    if new_qty == 0:
        new_avg = position.average_unit_cost
    else:
        remaining_value = position.quantity_on_hand * position.average_unit_cost - qty * unit_cost
        new_avg = round_half_up(remaining_value / new_qty)
    return replace(position, quantity_on_hand=new_qty, average_unit_cost=new_avg)


class InventoryBook:
    """
    Sổ tồn kho: vị trí tồn theo sản phẩm và thẻ kho.

    Cập nhật giá bình quân phụ thuộc thứ tự nên mọi thay đổi trên cùng
    một sản phẩm phải giữ khóa của sản phẩm đó.
    """

    def __init__(self, positions: Iterable[InventoryPosition] = ()):
        self._positions: dict[str, InventoryPosition] = {p.product_id: p for p in positions}
        self._movements: list[StockMovement] = []
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def _lock_for(self, product_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(product_id)
            if lock is None:
                lock = self._locks[product_id] = threading.Lock()
            return lock

    @contextmanager
    def locked(self, product_ids: Iterable[str]) -> Iterator[None]:
        """Khóa các sản phẩm theo thứ tự mã để tránh deadlock."""
        locks = [self._lock_for(pid) for pid in sorted(set(product_ids))]
        acquired = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def position(self, product_id: str) -> InventoryPosition:
        return self._positions.get(product_id) or InventoryPosition(ProductId(product_id))

    def positions(self) -> list[InventoryPosition]:
        with self._guard:
            return [self._positions[pid] for pid in sorted(self._positions)]

    def snapshot(self, product_ids: Iterable[str] | None = None) -> dict[str, InventoryPosition]:
        with self._guard:
            if product_ids is None:
                return dict(self._positions)
            return {pid: self.position(pid) for pid in product_ids}

    def commit(
        self, positions: dict[str, InventoryPosition], movements: Iterable[StockMovement]
    ) -> None:
        """Ghi nhận vị trí tồn mới. Gọi khi đang giữ khóa các sản phẩm liên quan."""
        with self._guard:
            self._positions.update(positions)
            self._movements.extend(movements)
        for pid, pos in positions.items():
            logger.info(
                f"Inventory {pid}: qty={pos.quantity_on_hand} avg={pos.average_unit_cost}"
            )

    def movements(self, product_id: str | None = None) -> list[StockMovement]:
        with self._guard:
            movements = list(self._movements)
        if product_id is None:
            return movements
        return [m for m in movements if m.product_id == product_id]

    def movements_for_source(self, source_id: str) -> list[StockMovement]:
        return [m for m in self.movements() if m.source_id == source_id and not m.is_reversal]
