"""
Unit tests - Cấu hình ứng dụng và bảng tham số thuế.
"""

import json
from datetime import date

import pytest
from pydantic import ValidationError as PydanticValidationError

from sme_ledger.core.config import Settings, load_rule_book, parse_rule_sets


class TestSettings:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("LEDGER_ALLOW_NEGATIVE_STOCK", raising=False)
        settings = Settings(_env_file=None)
        assert settings.allow_negative_stock is False
        assert settings.ledger_backend == "memory"
        assert settings.tax_rules_file is None

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("LEDGER_ALLOW_NEGATIVE_STOCK", "true")
        monkeypatch.setenv("LEDGER_LOG_LEVEL", "DEBUG")
        settings = Settings(_env_file=None)
        assert settings.allow_negative_stock is True
        assert settings.log_level == "DEBUG"

    def test_unknown_backend_rejected(self, monkeypatch):
        monkeypatch.setenv("LEDGER_LEDGER_BACKEND", "redis")
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None)

    def test_api_prefix_from_env(self, monkeypatch):
        monkeypatch.setenv("LEDGER_API_V1_PREFIX", "/ke-toan/v1")
        assert Settings(_env_file=None).api_v1_prefix == "/ke-toan/v1"

    @pytest.mark.parametrize("prefix", ["api/v1", "/api/v1/", ""])
    def test_malformed_api_prefix_rejected(self, monkeypatch, prefix):
        monkeypatch.setenv("LEDGER_API_V1_PREFIX", prefix)
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None)


class TestRuleSets:
    """Test đọc tham số thuế theo kỳ hiệu lực."""

    def test_parse_uses_defaults_for_missing_sections(self):
        (rules,) = parse_rule_sets([
            {"effective_from": "2024-07-01", "regional_base_salary": 2_340_000},
        ])
        assert rules.effective_from == date(2024, 7, 1)
        assert rules.insurance_cap == 46_800_000
        assert rules.pit(10_000_000) == 750_000

    def test_parse_custom_brackets(self):
        (rules,) = parse_rule_sets([{
            "effective_from": "2026-01-01",
            "regional_base_salary": 2_340_000,
            "pit_brackets": [
                {"lower": 0, "upper": 10_000_000, "rate": "0.05"},
                {"lower": 10_000_000, "upper": None, "rate": "0.10"},
            ],
        }])
        assert rules.pit(20_000_000) == 1_500_000

    def test_invalid_base_salary_rejected(self):
        with pytest.raises(PydanticValidationError):
            parse_rule_sets([{"effective_from": "2024-07-01", "regional_base_salary": 0}])

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "tax_rules.json"
        path.write_text(json.dumps([
            {"effective_from": "2023-07-01", "regional_base_salary": 1_800_000},
            {"effective_from": "2024-07-01", "regional_base_salary": 2_340_000},
        ]), encoding="utf-8")
        book = load_rule_book(Settings(_env_file=None, tax_rules_file=str(path)))
        assert book.for_date(date(2024, 1, 1)).regional_base_salary == 1_800_000
        assert book.for_date(date(2025, 1, 1)).regional_base_salary == 2_340_000

    def test_builtin_book_without_file(self):
        book = load_rule_book(Settings(_env_file=None))
        assert book.for_date(date(2025, 3, 15)).regional_base_salary == 2_340_000
