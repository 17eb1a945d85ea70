"""
Domain Layer - Pure Python business logic following DDD.
Hệ thống tài khoản kế toán doanh nghiệp nhỏ và vừa theo Thông tư 133/2016/TT-BTC.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum, IntEnum
from typing import NewType

AccountCode = NewType("AccountCode", str)
ProductId = NewType("ProductId", str)

_ONE = Decimal("1")


def round_half_up(value: Decimal | int) -> int:
    """Làm tròn về đơn vị tiền nhỏ nhất (VND) theo quy tắc half-up."""
    return int(Decimal(value).quantize(_ONE, rounding=ROUND_HALF_UP))


def to_decimal(value: Decimal | int | float | str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class AccountClass(str, Enum):
    """Loại tài khoản theo chữ số đầu tiên của mã TK (TT133/2016)."""
    SHORT_TERM_ASSET = "SHORT_TERM_ASSET"  # Tài sản ngắn hạn (1xx)
    LONG_TERM_ASSET = "LONG_TERM_ASSET"    # Tài sản dài hạn (2xx)
    LIABILITY = "LIABILITY"                # Nợ phải trả (3xx)
    EQUITY = "EQUITY"                      # Vốn chủ sở hữu (4xx)
    REVENUE = "REVENUE"                    # Doanh thu (5xx)
    OPERATING_EXPENSE = "OPERATING_EXPENSE"  # Chi phí SXKD (6xx)
    OTHER_INCOME = "OTHER_INCOME"          # Thu nhập khác (7xx)
    OTHER_EXPENSE = "OTHER_EXPENSE"        # Chi phí khác (8xx)

    @classmethod
    def from_code(cls, code: str) -> "AccountClass":
        return _CLASS_BY_DIGIT[code[0]]


_CLASS_BY_DIGIT = {
    "1": AccountClass.SHORT_TERM_ASSET,
    "2": AccountClass.LONG_TERM_ASSET,
    "3": AccountClass.LIABILITY,
    "4": AccountClass.EQUITY,
    "5": AccountClass.REVENUE,
    "6": AccountClass.OPERATING_EXPENSE,
    "7": AccountClass.OTHER_INCOME,
    "8": AccountClass.OTHER_EXPENSE,
}


class AccountNature(str, Enum):
    """Tính chất số dư tài khoản."""
    DEBIT = "DEBIT"    # Dư Nợ
    CREDIT = "CREDIT"  # Dư Có
    BOTH = "BOTH"      # Lưỡng tính (131, 331, 421)


class AccountStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SYSTEM = "SYSTEM"  # TK hệ thống, không được sửa/xóa


class SourceType(str, Enum):
    """Loại chứng từ gốc sinh bút toán."""
    INVOICE = "INVOICE"                      # Hóa đơn mua/bán
    WAREHOUSE_VOUCHER = "WAREHOUSE_VOUCHER"  # Phiếu nhập/xuất kho
    BANK_TRANSACTION = "BANK_TRANSACTION"    # Giao dịch ngân hàng
    PAYROLL_RUN = "PAYROLL_RUN"              # Bảng lương


class DocumentStatus(str, Enum):
    DRAFT = "DRAFT"          # Nháp - cho phép chỉnh sửa
    POSTED = "POSTED"        # Đã ghi sổ
    CANCELLED = "CANCELLED"  # Đã hủy


class PeriodStatus(str, Enum):
    OPEN = "OPEN"      # Đang mở
    LOCKED = "LOCKED"  # Đã khóa sổ


class InvoiceDirection(str, Enum):
    INPUT = "INPUT"    # Hóa đơn đầu vào (mua)
    OUTPUT = "OUTPUT"  # Hóa đơn đầu ra (bán)


class PaymentMethod(str, Enum):
    CREDIT = "CREDIT"  # Công nợ (131/331)
    CASH = "CASH"      # Tiền mặt (1111)
    BANK = "BANK"      # Chuyển khoản (1121)


class WarehouseDirection(str, Enum):
    RECEIPT = "RECEIPT"  # Phiếu nhập kho
    ISSUE = "ISSUE"      # Phiếu xuất kho


class WarehouseSubtype(str, Enum):
    """Lý do nhập/xuất kho."""
    PURCHASE = "PURCHASE"                      # Nhập mua hàng
    RETURN_SALE = "RETURN_SALE"                # Nhập hàng bán bị trả lại
    PRODUCTION = "PRODUCTION"                  # Nhập thành phẩm sản xuất
    INVENTORY_SURPLUS = "INVENTORY_SURPLUS"    # Nhập thừa kiểm kê
    OTHER_IN = "OTHER_IN"                      # Nhập khác
    SALE = "SALE"                              # Xuất bán
    RETURN_PURCHASE = "RETURN_PURCHASE"        # Xuất trả nhà cung cấp
    PRODUCTION_USE = "PRODUCTION_USE"          # Xuất dùng cho sản xuất
    INVENTORY_SHORTAGE = "INVENTORY_SHORTAGE"  # Xuất thiếu kiểm kê
    OTHER_OUT = "OTHER_OUT"                    # Xuất khác

    @property
    def direction(self) -> WarehouseDirection:
        if self in _RECEIPT_SUBTYPES:
            return WarehouseDirection.RECEIPT
        return WarehouseDirection.ISSUE


_RECEIPT_SUBTYPES = frozenset({
    WarehouseSubtype.PURCHASE,
    WarehouseSubtype.RETURN_SALE,
    WarehouseSubtype.PRODUCTION,
    WarehouseSubtype.INVENTORY_SURPLUS,
    WarehouseSubtype.OTHER_IN,
})


class BankTransactionType(str, Enum):
    """Loại giao dịch ngân hàng."""
    DEPOSIT = "DEPOSIT"            # Nộp tiền mặt vào TK
    WITHDRAW = "WITHDRAW"          # Rút tiền về quỹ
    TRANSFER_IN = "TRANSFER_IN"    # Nhận chuyển khoản nội bộ
    TRANSFER_OUT = "TRANSFER_OUT"  # Chuyển khoản nội bộ
    COLLECTION = "COLLECTION"      # Thu tiền khách hàng
    PAYMENT = "PAYMENT"            # Trả tiền nhà cung cấp
    SALARY = "SALARY"              # Trả lương
    TAX_PAYMENT = "TAX_PAYMENT"    # Nộp thuế
    INTEREST = "INTEREST"          # Lãi tiền gửi
    FEE = "FEE"                    # Phí ngân hàng
    OTHER_IN = "OTHER_IN"          # Thu khác
    OTHER_OUT = "OTHER_OUT"        # Chi khác

    @property
    def is_inflow(self) -> bool:
        return self in _INFLOW_TYPES


_INFLOW_TYPES = frozenset({
    BankTransactionType.DEPOSIT,
    BankTransactionType.TRANSFER_IN,
    BankTransactionType.COLLECTION,
    BankTransactionType.INTEREST,
    BankTransactionType.OTHER_IN,
})


class VatRate(IntEnum):
    """Thuế suất GTGT (%). Giá trị âm là trường hợp đặc biệt, thuế = 0."""
    ZERO = 0
    FIVE = 5
    EIGHT = 8
    TEN = 10
    NOT_TAXABLE = -1    # Không chịu thuế
    NOT_DECLARED = -2   # Không kê khai, tính nộp thuế


@dataclass(frozen=True, slots=True)
class JournalLine:
    """Dòng bút toán. Mỗi dòng chỉ có một vế Nợ hoặc Có khác 0."""
    account_code: AccountCode
    debit: int = 0
    credit: int = 0
    memo: str = ""

    def __post_init__(self) -> None:
        if self.debit < 0 or self.credit < 0:
            raise ValueError("Số tiền bút toán không được âm")
        if (self.debit == 0) == (self.credit == 0):
            raise ValueError(
                f"Dòng bút toán TK {self.account_code} phải có đúng một vế Nợ hoặc Có"
            )

    @property
    def is_debit(self) -> bool:
        return self.debit > 0

    @property
    def amount(self) -> int:
        return self.debit or self.credit

    def swapped(self) -> "JournalLine":
        """Dòng đảo ngược: Nợ thành Có và ngược lại."""
        return JournalLine(
            account_code=self.account_code,
            debit=self.credit,
            credit=self.debit,
            memo=self.memo,
        )
