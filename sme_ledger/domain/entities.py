"""
Domain Entities - Core business entities theo DDD.
Tài khoản, bút toán, chứng từ gốc và tồn kho theo TT133/2016/TT-BTC.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import ClassVar

from .exceptions import StateError
from .value_objects import (
    AccountClass,
    AccountCode,
    AccountNature,
    AccountStatus,
    BankTransactionType,
    DocumentStatus,
    InvoiceDirection,
    JournalLine,
    PaymentMethod,
    ProductId,
    SourceType,
    WarehouseDirection,
    WarehouseSubtype,
)


def parent_code_of(code: str) -> str | None:
    """TK cha = mã TK bỏ chữ số cuối; TK cấp 1 (3 chữ số) không có TK cha."""
    if len(code) <= 3:
        return None
    return code[:-1]


def get_level(code: str) -> int:
    """Cấp tài khoản: 3 chữ số là cấp 1, 4 chữ số cấp 2, 5 chữ số cấp 3."""
    return len(code) - 2


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Account:
    """
    Entity - Tài khoản kế toán (TT133/2016).
    TK cha và loại TK được suy ra từ mã TK.
    """
    code: AccountCode
    name: str
    nature: AccountNature
    status: AccountStatus = AccountStatus.ACTIVE
    detail_required: bool = False
    name_en: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    version: int = 1

    @property
    def parent_code(self) -> AccountCode | None:
        parent = parent_code_of(self.code)
        return AccountCode(parent) if parent else None

    @property
    def account_class(self) -> AccountClass:
        return AccountClass.from_code(self.code)

    @property
    def level(self) -> int:
        return get_level(self.code)

    @property
    def is_system(self) -> bool:
        return self.status == AccountStatus.SYSTEM

    @property
    def is_active(self) -> bool:
        return self.status != AccountStatus.INACTIVE

    def deactivate(self) -> "Account":
        return replace(self, status=AccountStatus.INACTIVE, version=self.version + 1)


@dataclass(frozen=True)
class JournalEntry:
    """
    Entity - Bút toán ghi sổ kép, bất biến sau khi tạo.
    Chỉ được đảo bằng bút toán đối ứng, không sửa/xóa.
    """
    source_type: SourceType
    source_id: str
    entry_date: date
    lines: tuple[JournalLine, ...]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    posted_at: datetime = field(default_factory=utcnow)
    description: str = ""
    reverses_entry_id: str | None = None
    sequence: int | None = None

    @property
    def total_debit(self) -> int:
        return sum(line.debit for line in self.lines)

    @property
    def total_credit(self) -> int:
        return sum(line.credit for line in self.lines)

    def is_balanced(self) -> bool:
        return self.total_debit == self.total_credit

    @property
    def is_reversal(self) -> bool:
        return self.reverses_entry_id is not None

    def with_sequence(self, sequence: int) -> "JournalEntry":
        return replace(self, sequence=sequence)

    def reversed(
        self,
        reason: str = "",
        posted_at: datetime | None = None,
        entry_date: date | None = None,
    ) -> "JournalEntry":
        """
        Bút toán đối ứng: đổi vế Nợ/Có của từng dòng.
        Mặc định ghi cùng ngày với bút toán gốc; kỳ gốc đã khóa thì truyền ngày của kỳ đang mở.
        """
        return JournalEntry(
            source_type=self.source_type,
            source_id=self.source_id,
            entry_date=entry_date or self.entry_date,
            lines=tuple(line.swapped() for line in self.lines),
            posted_at=posted_at or utcnow(),
            description=f"Hủy: {reason}" if reason else f"Hủy bút toán {self.id}",
            reverses_entry_id=self.id,
        )


@dataclass(frozen=True, slots=True)
class InventoryPosition:
    """Tồn kho theo sản phẩm - bình quân gia quyền di động."""
    product_id: ProductId
    quantity_on_hand: Decimal = Decimal("0")
    average_unit_cost: int = 0

    @property
    def value(self) -> Decimal:
        return self.quantity_on_hand * self.average_unit_cost


@dataclass(frozen=True, slots=True)
class StockMovement:
    """Dòng thẻ kho."""
    product_id: ProductId
    source_id: str
    movement_date: date
    direction: WarehouseDirection
    quantity: Decimal
    unit_cost: int
    amount: int
    balance_quantity: Decimal
    balance_average_cost: int
    is_reversal: bool = False
    negative_stock: bool = False


# --- Source documents -------------------------------------------------------

@dataclass(kw_only=True)
class SourceDocument:
    """
    Chứng từ gốc. Vòng đời: Nháp -> Đã ghi sổ -> Đã hủy, hoặc Nháp -> Đã hủy.
    Chỉ được sửa khi còn ở trạng thái Nháp.
    """
    source_type: ClassVar[SourceType]

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    document_number: str = ""
    document_date: date
    description: str = ""
    counterpart: str | None = None  # Mã khách hàng / NCC / nhân viên
    status: DocumentStatus = DocumentStatus.DRAFT
    cancel_reason: str | None = None

    @property
    def subtype(self) -> str:
        raise NotImplementedError

    @property
    def is_draft(self) -> bool:
        return self.status == DocumentStatus.DRAFT

    def edit(self, **changes) -> None:
        if not self.is_draft:
            raise StateError(
                f"Chứng từ {self.id} ở trạng thái {self.status.value}, chỉ được sửa khi Nháp",
                code=StateError.NOT_DRAFT,
            )
        for name in ("id", "status", "cancel_reason"):
            if name in changes:
                raise ValueError(f"Không được sửa trường {name}")
        for name, value in changes.items():
            if not hasattr(self, name):
                raise ValueError(f"Trường không hợp lệ: {name}")
            setattr(self, name, value)


@dataclass
class InvoiceLine:
    """Dòng hóa đơn."""
    quantity: Decimal
    unit_price: int
    vat_rate: int = 10
    discount: int = 0
    account_code: AccountCode | None = None  # TK doanh thu / hàng hóa / chi phí
    description: str = ""
    product_id: ProductId | None = None


@dataclass(kw_only=True)
class Invoice(SourceDocument):
    """Hóa đơn GTGT đầu vào/đầu ra."""
    source_type: ClassVar[SourceType] = SourceType.INVOICE

    direction: InvoiceDirection
    payment_method: PaymentMethod = PaymentMethod.CREDIT
    lines: list[InvoiceLine] = field(default_factory=list)

    @property
    def subtype(self) -> str:
        return f"{self.direction.value}:{self.payment_method.value}"


@dataclass
class WarehouseLine:
    """Dòng phiếu kho. Không có đơn giá thì lấy giá vốn bình quân hiện tại."""
    product_id: ProductId
    quantity: Decimal
    unit_price: int | None = None
    inventory_account: AccountCode | None = None
    description: str = ""


@dataclass(kw_only=True)
class WarehouseVoucher(SourceDocument):
    """Phiếu nhập kho / xuất kho."""
    source_type: ClassVar[SourceType] = SourceType.WAREHOUSE_VOUCHER

    direction: WarehouseDirection
    reason: WarehouseSubtype
    warehouse_code: str | None = None
    lines: list[WarehouseLine] = field(default_factory=list)

    @property
    def subtype(self) -> str:
        return self.reason.value


@dataclass(kw_only=True)
class BankTransaction(SourceDocument):
    """Giao dịch tiền gửi ngân hàng (giấy báo Nợ/Có)."""
    source_type: ClassVar[SourceType] = SourceType.BANK_TRANSACTION

    transaction_type: BankTransactionType
    is_credit: bool
    amount: int
    bank_account: AccountCode | None = None     # TK tiền gửi, mặc định 1121
    counter_account: AccountCode | None = None  # TK đối ứng
    reference: str | None = None

    @property
    def subtype(self) -> str:
        return self.transaction_type.value


@dataclass
class PayrollLine:
    """Dòng bảng lương của một nhân viên."""
    employee_id: str
    gross_salary: int
    allowances: int = 0
    insurance_base: int = 0
    dependent_count: int = 0
    other_deductions: int = 0
    expense_account: AccountCode | None = None  # Mặc định 6421


@dataclass(kw_only=True)
class PayrollRun(SourceDocument):
    """Bảng thanh toán tiền lương theo kỳ."""
    source_type: ClassVar[SourceType] = SourceType.PAYROLL_RUN

    period: str  # YYYY-MM
    lines: list[PayrollLine] = field(default_factory=list)

    @property
    def subtype(self) -> str:
        return "ACCRUAL"
