"""
Unit tests - Giá vốn bình quân gia quyền di động.
"""

import threading
from decimal import Decimal

import pytest

from sme_ledger.domain.costing import (
    InventoryBook,
    apply_issue,
    apply_receipt,
    reverse_receipt,
)
from sme_ledger.domain.entities import InventoryPosition
from sme_ledger.domain.exceptions import InsufficientStockError, ValidationError
from sme_ledger.domain.value_objects import ProductId


def position(qty, avg) -> InventoryPosition:
    return InventoryPosition(ProductId("HH01"), Decimal(qty), avg)


class TestApplyReceipt:
    """Test nhập kho và tính lại giá bình quân."""

    def test_receipt_into_empty_position(self):
        result = apply_receipt(position(0, 0), 100, 90_000)
        assert result.quantity_on_hand == 100
        assert result.average_unit_cost == 90_000

    def test_weighted_average(self):
        result = apply_receipt(position(100, 90_000), 50, 105_000)
        assert result.quantity_on_hand == 150
        assert result.average_unit_cost == 95_000

    def test_zero_quantity_receipt_is_noop(self):
        start = position(100, 90_000)
        assert apply_receipt(start, 0, 120_000) == start

    def test_zero_denominator_keeps_prior_average(self):
        result = apply_receipt(position(-50, 95_000), 50, 100_000)
        assert result.quantity_on_hand == 0
        assert result.average_unit_cost == 95_000

    def test_average_rounds_half_up(self):
        assert apply_receipt(position(1, 10), 1, 11).average_unit_cost == 11  # 10.5
        assert apply_receipt(position(2, 10), 1, 11).average_unit_cost == 10  # 10.33

    def test_negative_quantity_rejected(self):
        with pytest.raises(ValidationError):
            apply_receipt(position(10, 100), -1, 100)


class TestApplyIssue:
    """Test xuất kho theo giá bình quân hiện tại."""

    def test_sale_issue_uses_current_average(self):
        result = apply_issue(position(150, 95_000), 50)
        assert result.cost == 4_750_000
        assert result.unit_cost == 95_000
        assert result.position.quantity_on_hand == 100
        assert result.position.average_unit_cost == 95_000
        assert result.negative_stock is False

    def test_insufficient_stock(self):
        with pytest.raises(InsufficientStockError) as exc:
            apply_issue(position(150, 95_000), 200)
        assert exc.value.recoverable is True

    def test_negative_stock_allowed_and_flagged(self):
        result = apply_issue(position(150, 95_000), 200, allow_negative_stock=True)
        assert result.negative_stock is True
        assert result.position.quantity_on_hand == -50
        assert result.cost == 19_000_000

    def test_fractional_quantity_cost_rounds_half_up(self):
        result = apply_issue(position(10, 1_001), Decimal("0.5"))
        assert result.cost == 501  # 500.5

    @pytest.mark.parametrize("qty,unit_cost", [(1, 1), (7, 33_333), (250, 95_000), ("12.5", 48_700)])
    def test_receipt_then_issue_returns_receipt_cost(self, qty, unit_cost):
        start = position(0, 0)
        received = apply_receipt(start, qty, unit_cost)
        issued = apply_issue(received, qty)
        assert issued.position.quantity_on_hand == start.quantity_on_hand
        assert issued.unit_cost == unit_cost

    def test_deterministic_for_same_sequence(self):
        def run():
            pos = position(0, 0)
            costs = []
            for qty, price in [(10, 101), (3, 207), (7, 99), (4, 150)]:
                pos = apply_receipt(pos, qty, price)
                result = apply_issue(pos, 5)
                pos = result.position
                costs.append(result.cost)
            return pos, costs

        assert run() == run()


class TestReverseReceipt:
    """Test hủy phiếu nhập đã ghi sổ."""

    def test_reverse_restores_previous_average(self):
        after = apply_receipt(position(100, 90_000), 50, 105_000)
        restored = reverse_receipt(after, 50, 105_000)
        assert restored.quantity_on_hand == 100
        assert restored.average_unit_cost == 90_000

    def test_reverse_rejected_when_goods_already_issued(self):
        with pytest.raises(InsufficientStockError):
            reverse_receipt(position(20, 90_000), 50, 90_000)


class TestInventoryBook:
    """Test sổ kho: vị trí tồn và khóa theo sản phẩm."""

    def test_unknown_product_has_empty_position(self):
        book = InventoryBook()
        assert book.position("X").quantity_on_hand == 0

    def test_commit_updates_positions(self):
        book = InventoryBook()
        new = apply_receipt(book.position("HH01"), 10, 1_000)
        book.commit({"HH01": new}, [])
        assert book.position("HH01") == new
        assert [p.product_id for p in book.positions()] == ["HH01"]

    def test_locked_accepts_duplicates(self):
        book = InventoryBook()
        with book.locked(["B", "A", "B"]):
            pass
        with book.locked(["A"]):
            pass

    def test_product_locks_are_released_after_use(self):
        book = InventoryBook()
        with book.locked(["A", "B"]):
            assert len(book._locks) == 2
        assert len(book._locks) == 0

    def test_reads_while_committing_new_products(self):
        book = InventoryBook()
        errors = []

        def commit_many():
            for i in range(2_000):
                pid = ProductId(f"SP{i:04d}")
                book.commit({pid: InventoryPosition(pid, Decimal(1), 1_000)}, [])

        def read_many():
            try:
                for _ in range(500):
                    book.positions()
                    book.snapshot()
            except RuntimeError as exc:
                errors.append(exc)

        writer = threading.Thread(target=commit_many)
        readers = [threading.Thread(target=read_many) for _ in range(4)]
        for thread in [writer, *readers]:
            thread.start()
        for thread in [writer, *readers]:
            thread.join()
        assert errors == []
        assert len(book.positions()) == 2_000
