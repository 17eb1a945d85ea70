"""
Application settings và cấu hình tham số thuế theo kỳ hiệu lực.
"""

import json
import logging
from datetime import date
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, TypeAdapter
from pydantic_settings import BaseSettings, SettingsConfigDict

from sme_ledger.domain.tax import (
    DEFAULT_PIT_BRACKETS,
    DEFAULT_RULE_SETS,
    DEFAULT_VAT_RATES,
    EMPLOYEE_RATES,
    EMPLOYER_RATES,
    InsuranceRates,
    PitBracket,
    TaxRuleBook,
    TaxRuleSet,
)


class Settings(BaseSettings):
    # Core
    project_name: str = "SME Ledger API"
    api_v1_prefix: str = Field("/api/v1", pattern=r"^/[\w\-/]*[\w\-]$")
    log_level: str = "INFO"

    # Posting
    allow_negative_stock: bool = False
    ledger_backend: Literal["memory", "sql"] = "memory"

    # JSON file with the list of TaxRuleSetConfig; built-in versions when empty
    tax_rules_file: str | None = None

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


class PitBracketConfig(BaseModel):
    lower: int = Field(..., ge=0)
    upper: int | None = None
    rate: Decimal = Field(..., ge=0, le=1)


class InsuranceRatesConfig(BaseModel):
    social: Decimal = Field(..., ge=0, le=1)
    health: Decimal = Field(..., ge=0, le=1)
    unemployment: Decimal = Field(..., ge=0, le=1)
    accident: Decimal = Field(Decimal("0"), ge=0, le=1)

    def to_domain(self) -> InsuranceRates:
        return InsuranceRates(**self.model_dump())


class TaxRuleSetConfig(BaseModel):
    """Một phiên bản tham số thuế/bảo hiểm, có hiệu lực từ effective_from."""
    effective_from: date
    regional_base_salary: int = Field(..., gt=0, description="Mức lương cơ sở")
    vat_rates: list[int] = Field(default_factory=lambda: sorted(DEFAULT_VAT_RATES))
    pit_brackets: list[PitBracketConfig] | None = None
    personal_deduction: int = Field(11_000_000, ge=0)
    dependent_deduction: int = Field(4_400_000, ge=0)
    employee_insurance: InsuranceRatesConfig | None = None
    employer_insurance: InsuranceRatesConfig | None = None
    insurance_cap_multiplier: int = Field(20, gt=0)

    def to_domain(self) -> TaxRuleSet:
        brackets = (
            tuple(PitBracket(b.lower, b.upper, b.rate) for b in self.pit_brackets)
            if self.pit_brackets else DEFAULT_PIT_BRACKETS
        )
        return TaxRuleSet(
            effective_from=self.effective_from,
            regional_base_salary=self.regional_base_salary,
            vat_rates=frozenset(self.vat_rates),
            pit_brackets=brackets,
            personal_deduction=self.personal_deduction,
            dependent_deduction=self.dependent_deduction,
            employee_insurance=(
                self.employee_insurance.to_domain() if self.employee_insurance else EMPLOYEE_RATES
            ),
            employer_insurance=(
                self.employer_insurance.to_domain() if self.employer_insurance else EMPLOYER_RATES
            ),
            insurance_cap_multiplier=self.insurance_cap_multiplier,
        )


_RULE_SETS_ADAPTER = TypeAdapter(list[TaxRuleSetConfig])


def parse_rule_sets(data: list[dict]) -> list[TaxRuleSet]:
    return [config.to_domain() for config in _RULE_SETS_ADAPTER.validate_python(data)]


def load_rule_book(settings: Settings) -> TaxRuleBook:
    """Đọc bảng tham số thuế từ file JSON nếu được cấu hình."""
    if not settings.tax_rules_file:
        return TaxRuleBook(DEFAULT_RULE_SETS)
    data = json.loads(Path(settings.tax_rules_file).read_text(encoding="utf-8"))
    return TaxRuleBook(parse_rule_sets(data))
