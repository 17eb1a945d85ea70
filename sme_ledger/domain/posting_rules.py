"""
Posting rules - Bảng quy tắc hạch toán theo (loại chứng từ, nghiệp vụ).

Mỗi quy tắc gồm các vế (leg): một khoản tiền được ghi Nợ TK này / Có TK kia.
TK của một vế là TK cố định, TK lấy từ dòng chứng từ, hoặc TK lấy từ chứng từ.
Thêm nghiệp vụ mới bằng cách thêm dòng vào bảng.
"""

from dataclasses import dataclass

from .exceptions import ValidationError
from .value_objects import AccountCode, BankTransactionType, SourceType, WarehouseSubtype


@dataclass(frozen=True, slots=True)
class Fixed:
    code: str

    def resolve(self, document, line) -> str:
        return self.code


@dataclass(frozen=True, slots=True)
class FromLine:
    attribute: str
    default: str | None = None

    def resolve(self, document, line) -> str | None:
        return getattr(line, self.attribute, None) or self.default


@dataclass(frozen=True, slots=True)
class FromDocument:
    attribute: str
    default: str | None = None

    def resolve(self, document, line) -> str | None:
        return getattr(document, self.attribute, None) or self.default


AccountRule = Fixed | FromLine | FromDocument


@dataclass(frozen=True, slots=True)
class PostingLeg:
    amount_key: str
    debit: AccountRule
    credit: AccountRule


@dataclass(frozen=True, slots=True)
class PostingRule:
    description: str
    legs: tuple[PostingLeg, ...]


def _leg(amount_key: str, debit: AccountRule | str, credit: AccountRule | str) -> PostingLeg:
    if isinstance(debit, str):
        debit = Fixed(debit)
    if isinstance(credit, str):
        credit = Fixed(credit)
    return PostingLeg(amount_key, debit, credit)


def _sale_invoice(control: str) -> PostingRule:
    return PostingRule(
        description="Hóa đơn bán hàng",
        legs=(
            _leg("amount", control, FromLine("account_code", "5111")),
            _leg("vat", control, "33311"),
        ),
    )


def _purchase_invoice(control: str) -> PostingRule:
    return PostingRule(
        description="Hóa đơn mua hàng",
        legs=(
            _leg("amount", FromLine("account_code", "1561"), control),
            _leg("vat", "1331", control),
        ),
    )


def _receipt(description: str, inventory: str, credit: str) -> PostingRule:
    return PostingRule(description, (_leg("cost", FromLine("inventory_account", inventory), credit),))


def _issue(description: str, debit: str, inventory: str) -> PostingRule:
    return PostingRule(description, (_leg("cost", debit, FromLine("inventory_account", inventory)),))


BANK = FromDocument("bank_account", "1121")


def _bank_in(description: str, counter: str | None) -> PostingRule:
    return PostingRule(description, (_leg("amount", BANK, FromDocument("counter_account", counter)),))


def _bank_out(description: str, counter: str | None) -> PostingRule:
    return PostingRule(description, (_leg("amount", FromDocument("counter_account", counter), BANK),))


EXPENSE = FromLine("expense_account", "6421")

PAYROLL_ACCRUAL = PostingRule(
    description="Hạch toán tiền lương và các khoản trích theo lương",
    legs=(
        _leg("income", EXPENSE, "334"),
        _leg("employer_social", EXPENSE, "3383"),
        _leg("employer_health", EXPENSE, "3384"),
        _leg("employer_unemployment", EXPENSE, "3386"),
        _leg("employee_social", "334", "3383"),
        _leg("employee_health", "334", "3384"),
        _leg("employee_unemployment", "334", "3386"),
        _leg("pit", "334", "3335"),
    ),
)

I, W, K = SourceType.INVOICE, SourceType.WAREHOUSE_VOUCHER, SourceType.BANK_TRANSACTION
WS, BT = WarehouseSubtype, BankTransactionType

POSTING_RULES: dict[tuple[SourceType, str], PostingRule] = {
    (I, "OUTPUT:CREDIT"): _sale_invoice("131"),
    (I, "OUTPUT:CASH"): _sale_invoice("1111"),
    (I, "OUTPUT:BANK"): _sale_invoice("1121"),
    (I, "INPUT:CREDIT"): _purchase_invoice("331"),
    (I, "INPUT:CASH"): _purchase_invoice("1111"),
    (I, "INPUT:BANK"): _purchase_invoice("1121"),

    (W, WS.PURCHASE.value): _receipt("Nhập kho mua hàng", "1561", "331"),
    (W, WS.RETURN_SALE.value): _receipt("Nhập kho hàng bán bị trả lại", "1561", "632"),
    (W, WS.PRODUCTION.value): _receipt("Nhập kho thành phẩm", "155", "154"),
    (W, WS.INVENTORY_SURPLUS.value): _receipt("Nhập thừa kiểm kê", "1561", "711"),
    (W, WS.OTHER_IN.value): _receipt("Nhập kho khác", "1561", "3388"),
    (W, WS.SALE.value): _issue("Xuất kho bán hàng", "632", "1561"),
    (W, WS.RETURN_PURCHASE.value): _issue("Xuất trả hàng nhà cung cấp", "331", "1561"),
    (W, WS.PRODUCTION_USE.value): _issue("Xuất kho sản xuất", "154", "152"),
    (W, WS.INVENTORY_SHORTAGE.value): _issue("Xuất thiếu kiểm kê", "811", "1561"),
    (W, WS.OTHER_OUT.value): _issue("Xuất kho khác", "811", "1561"),

    (K, BT.DEPOSIT.value): _bank_in("Nộp tiền vào tài khoản", "1111"),
    (K, BT.WITHDRAW.value): _bank_out("Rút tiền gửi về quỹ", "1111"),
    (K, BT.TRANSFER_IN.value): _bank_in("Nhận chuyển khoản nội bộ", None),
    (K, BT.TRANSFER_OUT.value): _bank_out("Chuyển khoản nội bộ", None),
    (K, BT.COLLECTION.value): _bank_in("Thu tiền khách hàng", "131"),
    (K, BT.PAYMENT.value): _bank_out("Thanh toán nhà cung cấp", "331"),
    (K, BT.SALARY.value): _bank_out("Trả lương nhân viên", "334"),
    (K, BT.TAX_PAYMENT.value): _bank_out("Nộp thuế", "33311"),
    (K, BT.INTEREST.value): _bank_in("Lãi tiền gửi", "515"),
    (K, BT.FEE.value): _bank_out("Phí ngân hàng", "6427"),
    (K, BT.OTHER_IN.value): _bank_in("Thu khác", "711"),
    (K, BT.OTHER_OUT.value): _bank_out("Chi khác", "811"),

    (SourceType.PAYROLL_RUN, "ACCRUAL"): PAYROLL_ACCRUAL,
}


def lookup_rule(
    source_type: SourceType,
    subtype: str,
    rules: dict[tuple[SourceType, str], PostingRule] | None = None,
) -> PostingRule:
    table = POSTING_RULES if rules is None else rules
    rule = table.get((source_type, subtype))
    if rule is None:
        raise ValidationError(
            f"Chưa có quy tắc hạch toán cho {source_type.value}/{subtype}",
            code=ValidationError.UNKNOWN_RULE,
        )
    return rule


def resolve_account(rule: AccountRule, document, line) -> AccountCode:
    code = rule.resolve(document, line)
    if not code:
        raise ValidationError(
            f"Chứng từ {document.id} thiếu tài khoản {rule.attribute}",
            code=ValidationError.MISSING_FIELD,
        )
    return AccountCode(code)
