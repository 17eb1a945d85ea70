"""
Payroll calculation - Tính lương, bảo hiểm và thuế TNCN khấu trừ.
"""

from dataclasses import dataclass

from .entities import PayrollLine, PayrollRun
from .exceptions import ValidationError
from .tax import InsuranceContribution, TaxRuleSet


@dataclass(frozen=True, slots=True)
class Payslip:
    employee_id: str
    income: int
    employee_insurance: InsuranceContribution
    employer_insurance: InsuranceContribution
    taxable_amount: int
    pit: int
    other_deductions: int

    @property
    def net_pay(self) -> int:
        return self.income - self.employee_insurance.total - self.pit - self.other_deductions

    @property
    def labor_cost(self) -> int:
        """Tổng chi phí nhân công của doanh nghiệp."""
        return self.income + self.employer_insurance.total


@dataclass(frozen=True, slots=True)
class PayrollSummary:
    period: str
    headcount: int
    total_income: int
    total_employee_insurance: int
    total_employer_insurance: int
    total_pit: int
    total_net_pay: int
    total_labor_cost: int


def validate_line(line: PayrollLine) -> None:
    if not line.employee_id:
        raise ValidationError("Thiếu mã nhân viên", code=ValidationError.MISSING_FIELD)
    for name in ("gross_salary", "allowances", "insurance_base", "dependent_count", "other_deductions"):
        if getattr(line, name) < 0:
            raise ValidationError(
                f"{name} của nhân viên {line.employee_id} không được âm",
                code=ValidationError.INVALID_AMOUNT,
            )


def calculate_payslip(line: PayrollLine, rules: TaxRuleSet) -> Payslip:
    """
    Thu nhập = lương + phụ cấp; bảo hiểm tính trên lương đóng BH (có trần);
    số người phụ thuộc lấy theo hồ sơ nhân viên trên dòng lương.
    """
    validate_line(line)
    income = line.gross_salary + line.allowances
    insurance = rules.insurance(line.insurance_base)
    taxable = rules.taxable_income(income, insurance.employee.total, line.dependent_count)
    return Payslip(
        employee_id=line.employee_id,
        income=income,
        employee_insurance=insurance.employee,
        employer_insurance=insurance.employer,
        taxable_amount=taxable,
        pit=rules.pit(taxable),
        other_deductions=line.other_deductions,
    )


def summarize_payroll(run: PayrollRun, rules: TaxRuleSet) -> PayrollSummary:
    payslips = [calculate_payslip(line, rules) for line in run.lines]
    return PayrollSummary(
        period=run.period,
        headcount=len(payslips),
        total_income=sum(p.income for p in payslips),
        total_employee_insurance=sum(p.employee_insurance.total for p in payslips),
        total_employer_insurance=sum(p.employer_insurance.total for p in payslips),
        total_pit=sum(p.pit for p in payslips),
        total_net_pay=sum(p.net_pay for p in payslips),
        total_labor_cost=sum(p.labor_cost for p in payslips),
    )
