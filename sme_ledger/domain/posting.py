"""
Posting Engine - Sinh bút toán ghi sổ kép từ chứng từ gốc.

compose_entry là hàm thuần: từ chứng từ, danh mục TK, tồn kho hiện tại và
bộ tham số thuế, tính ra bút toán và tồn kho mới mà không thay đổi gì.
PostingEngine giữ khóa theo chứng từ và theo sản phẩm, rồi ghi toàn bộ
kết quả (sổ cái, tồn kho, trạng thái chứng từ) hoặc không ghi gì.
"""

import logging
import threading
import weakref
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime

from .chart_of_accounts import ChartOfAccountsRegistry
from .costing import InventoryBook, apply_issue, apply_receipt, reverse_receipt
from .entities import (
    BankTransaction,
    InventoryPosition,
    Invoice,
    JournalEntry,
    PayrollRun,
    SourceDocument,
    StockMovement,
    WarehouseVoucher,
    utcnow,
)
from .exceptions import IntegrityError, StateError, UnbalancedEntryError, ValidationError
from .payroll import calculate_payslip
from .period_lock import PeriodLockRegistry
from .posting_rules import PostingRule, lookup_rule, resolve_account
from .services import IJournalEntryRepository
from .tax import TaxRuleBook, TaxRuleSet
from .value_objects import (
    DocumentStatus,
    JournalLine,
    ProductId,
    SourceType,
    WarehouseDirection,
    round_half_up,
    to_decimal,
)

logger = logging.getLogger(__name__)


@dataclass
class Derivation:
    """Số tiền tính ra cho từng dòng chứng từ, kèm biến động tồn kho."""
    contexts: list[tuple[object | None, dict[str, int]]] = field(default_factory=list)
    positions: dict[str, InventoryPosition] = field(default_factory=dict)
    movements: list[StockMovement] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Composition:
    entry: JournalEntry
    positions: dict[str, InventoryPosition]
    movements: tuple[StockMovement, ...]
    warnings: tuple[str, ...]


@dataclass(frozen=True)
class PostingResult:
    document_id: str
    entry: JournalEntry
    positions: tuple[InventoryPosition, ...] = ()
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class CancellationResult:
    document_id: str
    reversal: JournalEntry | None = None
    positions: tuple[InventoryPosition, ...] = ()


def _require_lines(document: SourceDocument) -> None:
    if not document.lines:
        raise ValidationError(
            f"Chứng từ {document.id} không có dòng chi tiết", code=ValidationError.MISSING_FIELD
        )


def _derive_invoice(doc: Invoice, rules: TaxRuleSet, positions, allow_negative_stock) -> Derivation:
    _require_lines(doc)
    derivation = Derivation()
    for line in doc.lines:
        totals = rules.line(line.quantity, line.unit_price, line.vat_rate, line.discount)
        derivation.contexts.append((line, {"amount": totals.amount, "vat": totals.vat}))
    return derivation


def _derive_warehouse(
    doc: WarehouseVoucher,
    rules: TaxRuleSet,
    positions: Mapping[str, InventoryPosition],
    allow_negative_stock: bool,
) -> Derivation:
    _require_lines(doc)
    if doc.reason.direction != doc.direction:
        raise ValidationError(
            f"Lý do {doc.reason.value} không áp dụng cho phiếu {doc.direction.value}",
            code=ValidationError.UNKNOWN_RULE,
        )

    derivation = Derivation()
    working = dict(positions)
    for line in doc.lines:
        if not line.product_id:
            raise ValidationError("Thiếu mã sản phẩm", code=ValidationError.MISSING_FIELD)
        qty = to_decimal(line.quantity)
        position = working.get(line.product_id) or InventoryPosition(ProductId(line.product_id))

        if doc.direction == WarehouseDirection.RECEIPT:
            unit_cost = position.average_unit_cost if line.unit_price is None else line.unit_price
            new_position = apply_receipt(position, qty, unit_cost)
            cost = round_half_up(qty * unit_cost)
            negative = False
        else:
            result = apply_issue(position, qty, allow_negative_stock)
            new_position, unit_cost, cost = result.position, result.unit_cost, result.cost
            negative = result.negative_stock
            if negative:
                derivation.warnings.append(
                    f"Xuất âm kho sản phẩm {line.product_id}: tồn còn {new_position.quantity_on_hand}"
                )

        if cost <= 0:
            kind = "nhập" if doc.direction == WarehouseDirection.RECEIPT else "xuất"
            raise ValidationError(
                f"Giá trị {kind} kho sản phẩm {line.product_id} bằng 0 "
                f"(số lượng {qty}, đơn giá {unit_cost}): hàng không có giá vốn không được ghi sổ",
                code=ValidationError.INVALID_AMOUNT,
            )

        working[line.product_id] = new_position
        derivation.positions[line.product_id] = new_position
        derivation.movements.append(StockMovement(
            product_id=ProductId(line.product_id),
            source_id=doc.id,
            movement_date=doc.document_date,
            direction=doc.direction,
            quantity=qty,
            unit_cost=unit_cost,
            amount=cost,
            balance_quantity=new_position.quantity_on_hand,
            balance_average_cost=new_position.average_unit_cost,
            negative_stock=negative,
        ))
        derivation.contexts.append((line, {"cost": cost}))
    return derivation


def _derive_bank(doc: BankTransaction, rules: TaxRuleSet, positions, allow_negative_stock) -> Derivation:
    if doc.amount <= 0:
        raise ValidationError(
            f"Số tiền giao dịch phải lớn hơn 0: {doc.amount}", code=ValidationError.INVALID_AMOUNT
        )
    if not doc.description or not doc.description.strip():
        raise ValidationError("Diễn giải giao dịch là bắt buộc", code=ValidationError.MISSING_FIELD)
    if doc.is_credit != doc.transaction_type.is_inflow:
        raise ValidationError(
            f"Giao dịch {doc.transaction_type.value} không khớp chiều tiền "
            f"({'báo Có' if doc.is_credit else 'báo Nợ'})",
            code=ValidationError.INVALID_AMOUNT,
        )
    if doc.counter_account and doc.counter_account == (doc.bank_account or "1121"):
        raise ValidationError(
            "TK đối ứng trùng TK tiền gửi", code=ValidationError.INVALID_CODE
        )
    return Derivation(contexts=[(None, {"amount": doc.amount})])


def _derive_payroll(doc: PayrollRun, rules: TaxRuleSet, positions, allow_negative_stock) -> Derivation:
    _require_lines(doc)
    if not doc.period:
        raise ValidationError("Thiếu kỳ lương", code=ValidationError.MISSING_FIELD)
    derivation = Derivation()
    for line in doc.lines:
        slip = calculate_payslip(line, rules)
        derivation.contexts.append((line, {
            "income": slip.income,
            "employer_social": slip.employer_insurance.social + slip.employer_insurance.accident,
            "employer_health": slip.employer_insurance.health,
            "employer_unemployment": slip.employer_insurance.unemployment,
            "employee_social": slip.employee_insurance.social,
            "employee_health": slip.employee_insurance.health,
            "employee_unemployment": slip.employee_insurance.unemployment,
            "pit": slip.pit,
        }))
    return derivation


DERIVERS: dict[SourceType, Callable[..., Derivation]] = {
    SourceType.INVOICE: _derive_invoice,
    SourceType.WAREHOUSE_VOUCHER: _derive_warehouse,
    SourceType.BANK_TRANSACTION: _derive_bank,
    SourceType.PAYROLL_RUN: _derive_payroll,
}


def build_lines(rule: PostingRule, document: SourceDocument, derivation: Derivation) -> list[JournalLine]:
    """
    Áp bảng quy tắc lên từng dòng, gộp theo (TK, vế).
    Dòng Nợ đứng trước dòng Có, mỗi vế theo thứ tự xuất hiện.
    """
    debits: dict[str, int] = {}
    credits: dict[str, int] = {}
    for leg in rule.legs:
        for line, amounts in derivation.contexts:
            amount = amounts.get(leg.amount_key, 0)
            if not amount:
                continue
            if amount < 0:
                raise ValidationError(
                    f"Số tiền {leg.amount_key} âm: {amount}", code=ValidationError.INVALID_AMOUNT
                )
            debit_code = resolve_account(leg.debit, document, line)
            credit_code = resolve_account(leg.credit, document, line)
            debits[debit_code] = debits.get(debit_code, 0) + amount
            credits[credit_code] = credits.get(credit_code, 0) + amount

    memo = document.description or rule.description
    return (
        [JournalLine(code, debit=amount, memo=memo) for code, amount in debits.items()]
        + [JournalLine(code, credit=amount, memo=memo) for code, amount in credits.items()]
    )


def compose_entry(
    document: SourceDocument,
    registry: ChartOfAccountsRegistry,
    positions: Mapping[str, InventoryPosition],
    rules: TaxRuleSet,
    *,
    allow_negative_stock: bool = False,
    rule_table: dict | None = None,
    posted_at: datetime | None = None,
) -> Composition:
    """Tính bút toán cho chứng từ mà không ghi sổ."""
    if document.status != DocumentStatus.DRAFT:
        raise StateError(
            f"Chứng từ {document.id} đang ở trạng thái {document.status.value}, chỉ ghi sổ chứng từ Nháp",
            code=StateError.NOT_DRAFT,
        )

    rule = lookup_rule(document.source_type, document.subtype, rule_table)
    derivation = DERIVERS[document.source_type](document, rules, positions, allow_negative_stock)
    lines = build_lines(rule, document, derivation)
    if not lines:
        raise ValidationError(
            f"Chứng từ {document.id} không phát sinh số tiền hạch toán",
            code=ValidationError.EMPTY_ENTRY,
        )

    for line in lines:
        registry.validate_for_posting(line.account_code)

    entry = JournalEntry(
        source_type=document.source_type,
        source_id=document.id,
        entry_date=document.document_date,
        lines=tuple(lines),
        posted_at=posted_at or utcnow(),
        description=document.description or rule.description,
    )
    if not entry.is_balanced():
        logger.critical(
            f"Unbalanced entry for {document.source_type.value}/{document.subtype}: "
            f"debit={entry.total_debit} credit={entry.total_credit}"
        )
        raise UnbalancedEntryError(entry.total_debit, entry.total_credit, document.id)

    return Composition(
        entry=entry,
        positions=derivation.positions,
        movements=tuple(derivation.movements),
        warnings=tuple(derivation.warnings),
    )


def _product_ids(document: SourceDocument) -> list[str]:
    if isinstance(document, WarehouseVoucher):
        return [line.product_id for line in document.lines if line.product_id]
    return []


class PostingEngine:
    """
    Service - Ghi sổ và hủy chứng từ.

    Mỗi chứng từ được khóa theo (loại, mã) nên hai lệnh ghi sổ đồng thời
    trên cùng chứng từ chỉ có một lệnh thành công. Biến động tồn kho của
    cùng sản phẩm được tuần tự hóa bằng khóa sản phẩm.
    """

    def __init__(
        self,
        registry: ChartOfAccountsRegistry,
        journal_repo: IJournalEntryRepository,
        inventory: InventoryBook | None = None,
        rule_book: TaxRuleBook | None = None,
        allow_negative_stock: bool = False,
        rule_table: dict | None = None,
        period_locks: PeriodLockRegistry | None = None,
    ):
        self.registry = registry
        self.journal_repo = journal_repo
        self.inventory = InventoryBook() if inventory is None else inventory
        self.rule_book = TaxRuleBook() if rule_book is None else rule_book
        self.period_locks = PeriodLockRegistry() if period_locks is None else period_locks
        self.allow_negative_stock = allow_negative_stock
        self.rule_table = rule_table
        # Khóa chỉ tồn tại khi còn luồng đang giữ hoặc chờ
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def _document_lock(self, document: SourceDocument) -> threading.Lock:
        key = (document.source_type, document.id)
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def preview(self, document: SourceDocument) -> Composition:
        """Xem trước bút toán, không ghi sổ."""
        product_ids = _product_ids(document)
        return compose_entry(
            document,
            self.registry,
            self.inventory.snapshot(product_ids),
            self.rule_book.for_date(document.document_date),
            allow_negative_stock=self.allow_negative_stock,
            rule_table=self.rule_table,
        )

    def post(self, document: SourceDocument) -> PostingResult:
        with self._document_lock(document):
            self.period_locks.guard(document.document_date)
            product_ids = _product_ids(document)
            # TK được kiểm tra và đánh dấu đã phát sinh trong cùng một khóa danh mục
            with self.inventory.locked(product_ids), self.registry.posting_guard():
                composition = compose_entry(
                    document,
                    self.registry,
                    self.inventory.snapshot(product_ids),
                    self.rule_book.for_date(document.document_date),
                    allow_negative_stock=self.allow_negative_stock,
                    rule_table=self.rule_table,
                )
                stored = self.journal_repo.append(composition.entry)
                self.inventory.commit(composition.positions, composition.movements)
                self.registry.record_postings(line.account_code for line in stored.lines)
                document.status = DocumentStatus.POSTED

        for warning in composition.warnings:
            logger.warning(warning)
        logger.info(
            f"Posted {document.source_type.value} {document.id} "
            f"as entry #{stored.sequence} ({len(stored.lines)} lines, {stored.total_debit})"
        )
        return PostingResult(
            document_id=document.id,
            entry=stored,
            positions=tuple(composition.positions.values()),
            warnings=composition.warnings,
        )

    def cancel(self, document: SourceDocument, reason: str) -> CancellationResult:
        """
        Hủy chứng từ. Chứng từ Nháp chỉ đổi trạng thái; chứng từ đã ghi sổ
        được ghi thêm bút toán đối ứng và hoàn lại biến động tồn kho.
        """
        if not reason or not reason.strip():
            raise ValidationError("Lý do hủy là bắt buộc", code=ValidationError.MISSING_FIELD)

        with self._document_lock(document):
            if document.status == DocumentStatus.CANCELLED:
                raise StateError(
                    f"Chứng từ {document.id} đã bị hủy", code=StateError.ALREADY_CANCELLED
                )
            if document.status == DocumentStatus.DRAFT:
                document.status = DocumentStatus.CANCELLED
                document.cancel_reason = reason
                logger.info(f"Cancelled draft {document.source_type.value} {document.id}")
                return CancellationResult(document_id=document.id)

            originals = [
                e for e in self.journal_repo.get_by_source(document.source_type, document.id)
                if not e.is_reversal
            ]
            if not originals:
                raise IntegrityError(f"Không tìm thấy bút toán của chứng từ {document.id}")

            original = originals[-1]
            reversal_date = self.period_locks.first_open_date(original.entry_date)
            if reversal_date != original.entry_date:
                logger.info(
                    f"Period of entry {original.id} is locked, reversal dated {reversal_date}"
                )

            movements = self.inventory.movements_for_source(document.id)
            with self.inventory.locked(m.product_id for m in movements):
                positions, reversed_movements = self._reverse_movements(movements, reversal_date)
                stored = self.journal_repo.append(
                    original.reversed(reason, entry_date=reversal_date)
                )
                self.inventory.commit(positions, reversed_movements)
                document.status = DocumentStatus.CANCELLED
                document.cancel_reason = reason

        logger.info(
            f"Cancelled {document.source_type.value} {document.id} "
            f"with reversal entry #{stored.sequence}: {reason}"
        )
        return CancellationResult(
            document_id=document.id, reversal=stored, positions=tuple(positions.values())
        )

    def _reverse_movements(
        self, movements: list[StockMovement], on: date
    ) -> tuple[dict[str, InventoryPosition], list[StockMovement]]:
        working: dict[str, InventoryPosition] = {}
        reversed_movements = []
        for movement in reversed(movements):
            position = working.get(movement.product_id) or self.inventory.position(movement.product_id)
            if movement.direction == WarehouseDirection.RECEIPT:
                position = reverse_receipt(
                    position, movement.quantity, movement.unit_cost, self.allow_negative_stock
                )
                direction = WarehouseDirection.ISSUE
            else:
                position = apply_receipt(position, movement.quantity, movement.unit_cost)
                direction = WarehouseDirection.RECEIPT
            working[movement.product_id] = position
            reversed_movements.append(StockMovement(
                product_id=movement.product_id,
                source_id=movement.source_id,
                movement_date=on,
                direction=direction,
                quantity=movement.quantity,
                unit_cost=movement.unit_cost,
                amount=movement.amount,
                balance_quantity=position.quantity_on_hand,
                balance_average_cost=position.average_unit_cost,
                is_reversal=True,
            ))
        return working, reversed_movements
