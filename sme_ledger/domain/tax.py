"""
Tax Calculators - Thuế GTGT, thuế TNCN lũy tiến từng phần và bảo hiểm bắt buộc.

Thuế suất, biểu thuế và mức lương cơ sở được cấu hình theo ngày hiệu lực:
mỗi phép tính dùng bộ tham số có hiệu lực tại ngày chứng từ.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from .exceptions import ValidationError
from .value_objects import VatRate, round_half_up, to_decimal

HUNDRED = Decimal("100")

DEFAULT_VAT_RATES: frozenset[int] = frozenset(int(r) for r in VatRate)


# --- VAT --------------------------------------------------------------------

def calculate_vat(amount: int, rate: int, allowed_rates: Iterable[int] = DEFAULT_VAT_RATES) -> int:
    """
    Thuế GTGT của một dòng hàng.
    Thuế suất âm (không chịu thuế / không kê khai) cho thuế = 0.
    """
    if rate not in allowed_rates:
        raise ValidationError(f"Thuế suất GTGT không hợp lệ: {rate}", code=ValidationError.INVALID_RATE)
    if rate < 0:
        return 0
    return round_half_up(Decimal(amount) * rate / HUNDRED)


def line_amount(quantity, unit_price: int, discount: int = 0) -> int:
    """Thành tiền = SL * đơn giá - chiết khấu."""
    quantity = to_decimal(quantity)
    if quantity < 0 or unit_price < 0 or discount < 0:
        raise ValidationError(
            "Số lượng, đơn giá và chiết khấu không được âm", code=ValidationError.INVALID_AMOUNT
        )
    amount = round_half_up(quantity * unit_price) - discount
    if amount < 0:
        raise ValidationError(
            f"Chiết khấu {discount} lớn hơn giá trị dòng hàng", code=ValidationError.INVALID_AMOUNT
        )
    return amount


@dataclass(frozen=True, slots=True)
class LineTotals:
    amount: int
    vat: int

    @property
    def total(self) -> int:
        return self.amount + self.vat


@dataclass(frozen=True, slots=True)
class InvoiceTotals:
    """Tổng hóa đơn = cộng từng dòng, không áp thuế suất lên tổng."""
    amount: int
    vat: int
    lines: tuple[LineTotals, ...] = ()

    @property
    def total(self) -> int:
        return self.amount + self.vat


def calculate_line(
    quantity, unit_price: int, vat_rate: int, discount: int = 0,
    allowed_rates: Iterable[int] = DEFAULT_VAT_RATES,
) -> LineTotals:
    amount = line_amount(quantity, unit_price, discount)
    return LineTotals(amount=amount, vat=calculate_vat(amount, vat_rate, allowed_rates))


def calculate_invoice_totals(lines: Iterable[LineTotals]) -> InvoiceTotals:
    lines = tuple(lines)
    return InvoiceTotals(
        amount=sum(line.amount for line in lines),
        vat=sum(line.vat for line in lines),
        lines=lines,
    )


# --- PIT --------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class PitBracket:
    """Bậc thuế [lower, upper) với thuế suất rate (phần trăm dạng thập phân)."""
    lower: int
    upper: int | None
    rate: Decimal

    @property
    def width(self) -> int | None:
        return None if self.upper is None else self.upper - self.lower


# Biểu thuế lũy tiến từng phần - Luật Thuế TNCN
DEFAULT_PIT_BRACKETS: tuple[PitBracket, ...] = (
    PitBracket(0, 5_000_000, Decimal("0.05")),
    PitBracket(5_000_000, 10_000_000, Decimal("0.10")),
    PitBracket(10_000_000, 18_000_000, Decimal("0.15")),
    PitBracket(18_000_000, 32_000_000, Decimal("0.20")),
    PitBracket(32_000_000, 52_000_000, Decimal("0.25")),
    PitBracket(52_000_000, 80_000_000, Decimal("0.30")),
    PitBracket(80_000_000, None, Decimal("0.35")),
)


def validate_brackets(brackets: tuple[PitBracket, ...]) -> None:
    if not brackets or brackets[0].lower != 0:
        raise ValidationError("Biểu thuế phải bắt đầu từ 0", code=ValidationError.INVALID_RATE)
    for prev, nxt in zip(brackets, brackets[1:]):
        if prev.upper != nxt.lower:
            raise ValidationError(
                f"Biểu thuế không liên tục tại {prev.upper}", code=ValidationError.INVALID_RATE
            )
    if brackets[-1].upper is not None:
        raise ValidationError("Bậc thuế cuối phải không giới hạn", code=ValidationError.INVALID_RATE)


def quick_deductions(brackets: tuple[PitBracket, ...]) -> tuple[Decimal, ...]:
    """Số trừ nhanh của từng bậc: lower_i * rate_i - thuế lũy kế đến hết bậc trước."""
    deductions = []
    cumulative_tax = Decimal("0")
    for bracket in brackets:
        deductions.append(bracket.lower * bracket.rate - cumulative_tax)
        if bracket.width is not None:
            cumulative_tax += bracket.width * bracket.rate
    return tuple(deductions)


def pit_progressive(taxable_amount: int, brackets: tuple[PitBracket, ...] = DEFAULT_PIT_BRACKETS) -> int:
    """Thuế TNCN tính lũy tiến từng phần theo từng bậc."""
    remaining = Decimal(taxable_amount)
    tax = Decimal("0")
    for bracket in brackets:
        if remaining <= 0:
            break
        portion = remaining if bracket.width is None else min(remaining, Decimal(bracket.width))
        tax += portion * bracket.rate
        remaining -= portion
    return round_half_up(tax)


def pit_quick(
    taxable_amount: int,
    brackets: tuple[PitBracket, ...] = DEFAULT_PIT_BRACKETS,
    deductions: tuple[Decimal, ...] | None = None,
) -> int:
    """Thuế TNCN theo phương pháp rút gọn: TN tính thuế * thuế suất - số trừ nhanh."""
    if taxable_amount <= 0:
        return 0
    if deductions is None:
        deductions = quick_deductions(brackets)
    index = 0
    for i, bracket in enumerate(brackets):
        if taxable_amount > bracket.lower:
            index = i
    return round_half_up(taxable_amount * brackets[index].rate - deductions[index])


def taxable_income(
    gross_income: int,
    insurance_deduction: int,
    personal_deduction: int,
    dependent_count: int,
    dependent_deduction: int,
) -> int:
    """Thu nhập tính thuế = max(0, thu nhập - bảo hiểm - giảm trừ bản thân - giảm trừ NPT)."""
    if dependent_count < 0:
        raise ValidationError(
            "Số người phụ thuộc không được âm", code=ValidationError.INVALID_AMOUNT
        )
    return max(
        0,
        gross_income - insurance_deduction - personal_deduction
        - dependent_count * dependent_deduction,
    )


# --- Insurance --------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class InsuranceRates:
    """Tỷ lệ trích bảo hiểm (dạng thập phân)."""
    social: Decimal
    health: Decimal
    unemployment: Decimal
    accident: Decimal = Decimal("0")  # BHTNLĐ-BNN, chỉ phía doanh nghiệp

    @property
    def total(self) -> Decimal:
        return self.social + self.health + self.unemployment + self.accident


@dataclass(frozen=True, slots=True)
class InsuranceContribution:
    """Số tiền bảo hiểm, mỗi khoản được làm tròn riêng."""
    social: int = 0
    health: int = 0
    unemployment: int = 0
    accident: int = 0

    @property
    def total(self) -> int:
        return self.social + self.health + self.unemployment + self.accident


EMPLOYEE_RATES = InsuranceRates(
    social=Decimal("0.08"), health=Decimal("0.015"), unemployment=Decimal("0.01")
)
EMPLOYER_RATES = InsuranceRates(
    social=Decimal("0.175"), health=Decimal("0.03"), unemployment=Decimal("0.01"),
    accident=Decimal("0.005"),
)


def contribution(base: int, rates: InsuranceRates) -> InsuranceContribution:
    return InsuranceContribution(
        social=round_half_up(base * rates.social),
        health=round_half_up(base * rates.health),
        unemployment=round_half_up(base * rates.unemployment),
        accident=round_half_up(base * rates.accident),
    )


@dataclass(frozen=True, slots=True)
class InsuranceSplit:
    capped_base: int
    employee: InsuranceContribution
    employer: InsuranceContribution


# --- Versioned rule sets ----------------------------------------------------

@dataclass(frozen=True)
class TaxRuleSet:
    """Bộ tham số thuế và bảo hiểm có hiệu lực từ ngày effective_from."""
    effective_from: date
    regional_base_salary: int
    vat_rates: frozenset[int] = DEFAULT_VAT_RATES
    pit_brackets: tuple[PitBracket, ...] = DEFAULT_PIT_BRACKETS
    personal_deduction: int = 11_000_000
    dependent_deduction: int = 4_400_000
    employee_insurance: InsuranceRates = EMPLOYEE_RATES
    employer_insurance: InsuranceRates = EMPLOYER_RATES
    insurance_cap_multiplier: int = 20
    _deductions: tuple[Decimal, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        validate_brackets(self.pit_brackets)
        object.__setattr__(self, "_deductions", quick_deductions(self.pit_brackets))

    @property
    def insurance_cap(self) -> int:
        return self.insurance_cap_multiplier * self.regional_base_salary

    def vat(self, amount: int, rate: int) -> int:
        return calculate_vat(amount, rate, self.vat_rates)

    def line(self, quantity, unit_price: int, vat_rate: int, discount: int = 0) -> LineTotals:
        return calculate_line(quantity, unit_price, vat_rate, discount, self.vat_rates)

    def pit(self, taxable_amount: int) -> int:
        return pit_progressive(taxable_amount, self.pit_brackets)

    def pit_quick(self, taxable_amount: int) -> int:
        return pit_quick(taxable_amount, self.pit_brackets, self._deductions)

    @property
    def quick_deductions(self) -> tuple[Decimal, ...]:
        return self._deductions

    def taxable_income(self, gross_income: int, insurance_deduction: int, dependent_count: int) -> int:
        return taxable_income(
            gross_income, insurance_deduction, self.personal_deduction,
            dependent_count, self.dependent_deduction,
        )

    def insurance(self, insurance_base: int) -> InsuranceSplit:
        """Bảo hiểm phần người lao động và phần doanh nghiệp trên cùng mức lương đóng đã giới hạn."""
        if insurance_base < 0:
            raise ValidationError(
                "Lương đóng bảo hiểm không được âm", code=ValidationError.INVALID_AMOUNT
            )
        base = min(insurance_base, self.insurance_cap)
        return InsuranceSplit(
            capped_base=base,
            employee=contribution(base, self.employee_insurance),
            employer=contribution(base, self.employer_insurance),
        )


DEFAULT_RULE_SETS: tuple[TaxRuleSet, ...] = (
    # Nghị định 24/2023/NĐ-CP
    TaxRuleSet(effective_from=date(2023, 7, 1), regional_base_salary=1_800_000),
    # Nghị định 73/2024/NĐ-CP
    TaxRuleSet(effective_from=date(2024, 7, 1), regional_base_salary=2_340_000),
)


class TaxRuleBook:
    """Tra cứu bộ tham số có hiệu lực theo ngày chứng từ."""

    def __init__(self, rule_sets: Iterable[TaxRuleSet] = DEFAULT_RULE_SETS):
        self._rule_sets = sorted(rule_sets, key=lambda r: r.effective_from)
        if not self._rule_sets:
            raise ValueError("TaxRuleBook cần ít nhất một bộ tham số")

    def for_date(self, on: date) -> TaxRuleSet:
        applicable = [r for r in self._rule_sets if r.effective_from <= on]
        if not applicable:
            raise ValidationError(
                f"Không có bộ tham số thuế hiệu lực tại ngày {on.isoformat()}",
                code=ValidationError.INVALID_RATE,
            )
        return applicable[-1]

    @property
    def rule_sets(self) -> list[TaxRuleSet]:
        return list(self._rule_sets)
