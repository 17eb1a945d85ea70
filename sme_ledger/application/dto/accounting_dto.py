"""
API DTOs - Data Transfer Objects for API requests/responses.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from sme_ledger.domain.chart_of_accounts import ChartOfAccountsRegistry
from sme_ledger.domain.entities import (
    Account,
    BankTransaction,
    Invoice,
    InvoiceLine,
    PayrollLine,
    PayrollRun,
    SourceDocument,
    WarehouseLine,
    WarehouseVoucher,
)
from sme_ledger.domain.value_objects import (
    AccountClass,
    AccountCode,
    AccountNature,
    AccountStatus,
    BankTransactionType,
    DocumentStatus,
    InvoiceDirection,
    PaymentMethod,
    PeriodStatus,
    ProductId,
    SourceType,
    WarehouseDirection,
    WarehouseSubtype,
)


# --- Accounts ---------------------------------------------------------------

class AccountCreateDTO(BaseModel):
    """DTO - Mở tài khoản chi tiết."""
    code: str = Field(..., min_length=3, max_length=5, description="Mã tài khoản")
    name: str = Field(..., min_length=1, max_length=255, description="Tên tài khoản")
    parent_code: str | None = Field(None, description="Mã TK cha")
    nature: AccountNature = Field(AccountNature.DEBIT, description="Tính chất số dư")
    detail_required: bool = Field(False, description="Bắt buộc theo dõi chi tiết đối tượng")
    name_en: str | None = Field(None, description="Tên tiếng Anh")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "code": "11211",
            "name": "Tiền gửi VND - Vietcombank",
            "parent_code": "1121",
            "nature": "DEBIT",
        }
    })


class AccountUpdateDTO(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    nature: AccountNature | None = None
    detail_required: bool | None = None


class AccountResponseDTO(BaseModel):
    """DTO - Tài khoản kế toán."""
    code: str
    name: str
    name_en: str | None = None
    parent_code: str | None
    account_class: AccountClass
    nature: AccountNature
    status: AccountStatus
    level: int
    detail_required: bool
    is_parent: bool = False

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_domain(cls, account: Account, registry: ChartOfAccountsRegistry) -> "AccountResponseDTO":
        dto = cls.model_validate(account)
        dto.is_parent = registry.is_parent(account.code)
        return dto


# --- Source documents -------------------------------------------------------

class DocumentHeaderDTO(BaseModel):
    document_number: str = Field("", max_length=50, description="Số chứng từ")
    document_date: date = Field(..., description="Ngày chứng từ")
    description: str = Field("", max_length=500, description="Diễn giải")
    counterpart: str | None = Field(None, description="Mã đối tượng (KH, NCC, NV)")


class InvoiceLineDTO(BaseModel):
    """DTO - Dòng hóa đơn."""
    quantity: Decimal = Field(..., ge=0, description="Số lượng")
    unit_price: int = Field(..., ge=0, description="Đơn giá")
    vat_rate: int = Field(10, description="Thuế suất GTGT (0, 5, 8, 10; -1 không chịu thuế; -2 không kê khai)")
    discount: int = Field(0, ge=0, description="Chiết khấu")
    account_code: str | None = Field(None, description="TK doanh thu / hàng hóa / chi phí")
    description: str = ""
    product_id: str | None = None

    def to_domain(self) -> InvoiceLine:
        return InvoiceLine(
            quantity=self.quantity,
            unit_price=self.unit_price,
            vat_rate=self.vat_rate,
            discount=self.discount,
            account_code=AccountCode(self.account_code) if self.account_code else None,
            description=self.description,
            product_id=ProductId(self.product_id) if self.product_id else None,
        )


class InvoiceCreateDTO(DocumentHeaderDTO):
    """DTO - Hóa đơn GTGT."""
    direction: InvoiceDirection = Field(..., description="INPUT (mua) / OUTPUT (bán)")
    payment_method: PaymentMethod = Field(PaymentMethod.CREDIT, description="Hình thức thanh toán")
    lines: list[InvoiceLineDTO] = Field(..., min_length=1, description="Các dòng hàng")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "document_number": "HD0000123",
            "document_date": "2025-03-15",
            "description": "Bán hàng Công ty ABC",
            "counterpart": "KH001",
            "direction": "OUTPUT",
            "lines": [{"quantity": 100, "unit_price": 120000, "vat_rate": 5}],
        }
    })

    def to_domain(self) -> Invoice:
        return Invoice(
            **self.model_dump(include={"document_number", "document_date", "description", "counterpart"}),
            direction=self.direction,
            payment_method=self.payment_method,
            lines=[line.to_domain() for line in self.lines],
        )


class WarehouseLineDTO(BaseModel):
    product_id: str = Field(..., min_length=1, description="Mã hàng")
    quantity: Decimal = Field(..., ge=0, description="Số lượng")
    unit_price: int | None = Field(None, gt=0, description="Đơn giá nhập; bỏ trống lấy giá bình quân")
    inventory_account: str | None = Field(None, description="TK kho (152, 155, 1561...)")
    description: str = ""

    def to_domain(self) -> WarehouseLine:
        return WarehouseLine(
            product_id=ProductId(self.product_id),
            quantity=self.quantity,
            unit_price=self.unit_price,
            inventory_account=AccountCode(self.inventory_account) if self.inventory_account else None,
            description=self.description,
        )


class WarehouseVoucherCreateDTO(DocumentHeaderDTO):
    """DTO - Phiếu nhập/xuất kho."""
    direction: WarehouseDirection
    reason: WarehouseSubtype
    warehouse_code: str | None = None
    lines: list[WarehouseLineDTO] = Field(..., min_length=1)

    def to_domain(self) -> WarehouseVoucher:
        return WarehouseVoucher(
            **self.model_dump(include={"document_number", "document_date", "description", "counterpart"}),
            direction=self.direction,
            reason=self.reason,
            warehouse_code=self.warehouse_code,
            lines=[line.to_domain() for line in self.lines],
        )


class BankTransactionCreateDTO(DocumentHeaderDTO):
    """DTO - Giao dịch ngân hàng."""
    transaction_type: BankTransactionType
    is_credit: bool = Field(..., description="True: báo Có (tiền vào), False: báo Nợ (tiền ra)")
    amount: int = Field(..., gt=0, description="Số tiền")
    bank_account: str | None = Field(None, description="TK tiền gửi, mặc định 1121")
    counter_account: str | None = Field(None, description="TK đối ứng")
    reference: str | None = None

    def to_domain(self) -> BankTransaction:
        return BankTransaction(
            **self.model_dump(include={"document_number", "document_date", "description", "counterpart"}),
            transaction_type=self.transaction_type,
            is_credit=self.is_credit,
            amount=self.amount,
            bank_account=AccountCode(self.bank_account) if self.bank_account else None,
            counter_account=AccountCode(self.counter_account) if self.counter_account else None,
            reference=self.reference,
        )


class PayrollLineDTO(BaseModel):
    employee_id: str = Field(..., min_length=1)
    gross_salary: int = Field(..., ge=0, description="Lương theo ngày công")
    allowances: int = Field(0, ge=0, description="Phụ cấp")
    insurance_base: int = Field(0, ge=0, description="Lương đóng bảo hiểm")
    dependent_count: int = Field(0, ge=0, description="Số người phụ thuộc")
    other_deductions: int = Field(0, ge=0, description="Khấu trừ khác")
    expense_account: str | None = Field(None, description="TK chi phí lương, mặc định 6421")

    def to_domain(self) -> PayrollLine:
        data = self.model_dump()
        data["expense_account"] = AccountCode(self.expense_account) if self.expense_account else None
        return PayrollLine(**data)


class PayrollRunCreateDTO(DocumentHeaderDTO):
    """DTO - Bảng lương."""
    period: str = Field(..., pattern=r"^\d{4}-\d{2}$", description="Kỳ lương YYYY-MM")
    lines: list[PayrollLineDTO] = Field(..., min_length=1)

    def to_domain(self) -> PayrollRun:
        return PayrollRun(
            **self.model_dump(include={"document_number", "document_date", "description", "counterpart"}),
            period=self.period,
            lines=[line.to_domain() for line in self.lines],
        )


class DocumentUpdateDTO(BaseModel):
    """DTO - Sửa thông tin chứng từ Nháp."""
    document_number: str | None = None
    document_date: date | None = None
    description: str | None = None
    counterpart: str | None = None


class CancelRequestDTO(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500, description="Lý do hủy")


class DocumentResponseDTO(BaseModel):
    id: str
    source_type: SourceType
    subtype: str
    document_number: str
    document_date: date
    description: str
    counterpart: str | None
    status: DocumentStatus
    cancel_reason: str | None

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_domain(cls, document: SourceDocument) -> "DocumentResponseDTO":
        return cls.model_validate(document)


# --- Ledger -----------------------------------------------------------------

class JournalLineDTO(BaseModel):
    account_code: str
    debit: int
    credit: int
    memo: str

    model_config = ConfigDict(from_attributes=True)


class JournalEntryResponseDTO(BaseModel):
    """DTO - Bút toán đã ghi sổ."""
    id: str
    sequence: int | None
    source_type: SourceType
    source_id: str
    entry_date: date
    posted_at: datetime
    description: str
    reverses_entry_id: str | None
    total_debit: int
    total_credit: int
    lines: list[JournalLineDTO]

    model_config = ConfigDict(from_attributes=True)


class InventoryPositionDTO(BaseModel):
    product_id: str
    quantity_on_hand: Decimal
    average_unit_cost: int

    model_config = ConfigDict(from_attributes=True)


class StockMovementDTO(BaseModel):
    """DTO - Dòng thẻ kho."""
    product_id: str
    source_id: str
    movement_date: date
    direction: WarehouseDirection
    quantity: Decimal
    unit_cost: int
    amount: int
    balance_quantity: Decimal
    balance_average_cost: int
    is_reversal: bool
    negative_stock: bool

    model_config = ConfigDict(from_attributes=True)


class PostingResponseDTO(BaseModel):
    document: DocumentResponseDTO
    entry: JournalEntryResponseDTO
    positions: list[InventoryPositionDTO] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class CancellationResponseDTO(BaseModel):
    document: DocumentResponseDTO
    reversal: JournalEntryResponseDTO | None = None


# --- Reports ----------------------------------------------------------------

class TrialBalanceRowDTO(BaseModel):
    account_code: str
    account_name: str
    level: int
    nature: AccountNature
    is_posting_account: bool
    opening_debit: int
    opening_credit: int
    period_debit: int
    period_credit: int
    closing_debit: int
    closing_credit: int
    is_abnormal: bool

    model_config = ConfigDict(from_attributes=True)


class TrialBalanceDTO(BaseModel):
    """DTO - Bảng cân đối số phát sinh."""
    start_date: date
    end_date: date
    watermark: int
    rows: list[TrialBalanceRowDTO]
    totals: dict[str, int]
    is_balanced: bool
    abnormal_accounts: list[str]

    model_config = ConfigDict(from_attributes=True)


class StatementRowDTO(BaseModel):
    code: str
    name: str
    value: int

    model_config = ConfigDict(from_attributes=True)


class IncomeStatementDTO(BaseModel):
    """DTO - Báo cáo kết quả hoạt động kinh doanh (B02-DNN)."""
    start_date: date
    end_date: date
    rows: list[StatementRowDTO]
    gross_profit: int
    net_profit: int

    model_config = ConfigDict(from_attributes=True)


class TaxSummaryDTO(BaseModel):
    start_date: date
    end_date: date
    vat_output: int
    vat_input: int
    vat_payable: int
    pit_withheld: int
    insurance_payable: int

    model_config = ConfigDict(from_attributes=True)


class PayrollSummaryDTO(BaseModel):
    period: str
    headcount: int
    total_income: int
    total_employee_insurance: int
    total_employer_insurance: int
    total_pit: int
    total_net_pay: int
    total_labor_cost: int

    model_config = ConfigDict(from_attributes=True)


# --- Period locks -----------------------------------------------------------

class PeriodLockRequestDTO(BaseModel):
    locked_by: str | None = Field(None, max_length=100, description="Người khóa sổ")


class PeriodUnlockRequestDTO(BaseModel):
    reason: str = Field(..., min_length=10, max_length=500, description="Lý do mở khóa")


class PeriodLockDTO(BaseModel):
    """DTO - Trạng thái khóa sổ của một kỳ."""
    period: str
    status: PeriodStatus
    locked_by: str | None = None
    locked_at: datetime | None = None
    unlocked_at: datetime | None = None
    unlock_reason: str | None = None

    model_config = ConfigDict(from_attributes=True)
