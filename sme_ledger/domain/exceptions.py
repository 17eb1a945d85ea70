"""
Domain exceptions - phân loại lỗi của bộ máy ghi sổ.

- ValidationError: dữ liệu đầu vào sai, chứng từ giữ nguyên trạng thái Nháp.
- StateError: trạng thái chứng từ không cho phép thao tác.
- IntegrityError: vi phạm toàn vẹn sổ cái. Thiếu tồn kho là lỗi nghiệp vụ
  có thể xử lý; bút toán lệch Nợ/Có là lỗi nghiêm trọng của bảng quy tắc.
"""


class AccountingError(Exception):
    """Base class cho mọi lỗi nghiệp vụ kế toán."""

    recoverable = True
    default_code = "ACCOUNTING_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_dict(self) -> dict:
        return {"code": self.code, "detail": self.message}


class ValidationError(AccountingError):
    default_code = "VALIDATION_ERROR"

    INVALID_CODE = "INVALID_CODE"
    DUPLICATE_CODE = "DUPLICATE_CODE"
    PARENT_NOT_FOUND = "PARENT_NOT_FOUND"
    PARENT_MISMATCH = "PARENT_MISMATCH"
    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    IS_PARENT = "IS_PARENT"
    HAS_CHILDREN = "HAS_CHILDREN"
    IS_SYSTEM_ACCOUNT = "IS_SYSTEM_ACCOUNT"
    HAS_POSTINGS = "HAS_POSTINGS"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_RATE = "INVALID_RATE"
    UNKNOWN_RULE = "UNKNOWN_RULE"
    EMPTY_ENTRY = "EMPTY_ENTRY"
    INVALID_PERIOD = "INVALID_PERIOD"


class StateError(AccountingError):
    default_code = "INVALID_STATE"

    NOT_DRAFT = "NOT_DRAFT"
    ALREADY_CANCELLED = "ALREADY_CANCELLED"
    PERIOD_LOCKED = "PERIOD_LOCKED"
    PERIOD_OPEN = "PERIOD_OPEN"


class IntegrityError(AccountingError):
    default_code = "INTEGRITY_ERROR"


class InsufficientStockError(IntegrityError):
    default_code = "INSUFFICIENT_STOCK"

    def __init__(self, product_id: str, on_hand, requested):
        super().__init__(
            f"Không đủ tồn kho cho sản phẩm {product_id}: "
            f"tồn {on_hand}, yêu cầu xuất {requested}"
        )
        self.product_id = product_id
        self.on_hand = on_hand
        self.requested = requested


class UnbalancedEntryError(IntegrityError):
    """Bút toán sinh ra lệch Nợ/Có - lỗi của bảng quy tắc hạch toán."""

    recoverable = False
    default_code = "UNBALANCED_ENTRY"

    def __init__(self, total_debit: int, total_credit: int, source: str = ""):
        super().__init__(
            f"Bút toán không cân đối{f' ({source})' if source else ''}: "
            f"Tổng Nợ {total_debit} != Tổng Có {total_credit}"
        )
        self.total_debit = total_debit
        self.total_credit = total_credit
