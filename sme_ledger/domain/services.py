"""
Domain Services - Truy vấn sổ cái và tổng hợp báo cáo.

Mọi số liệu tổng hợp đều tính lại từ sổ cái (nguồn dữ liệu duy nhất),
trên một bản chụp tại mốc sequence cố định.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from .chart_of_accounts import ChartOfAccountsRegistry
from .entities import JournalEntry
from .value_objects import AccountCode, AccountNature, SourceType


class IJournalEntryRepository(ABC):
    """Sổ cái chỉ ghi thêm: bút toán không bao giờ bị sửa hoặc xóa."""

    @abstractmethod
    def append(self, entry: JournalEntry) -> JournalEntry:
        ...

    @abstractmethod
    def get_by_source(self, source_type: SourceType, source_id: str) -> list[JournalEntry]:
        ...

    @abstractmethod
    def get_by_period(
        self, start_date: date, end_date: date, watermark: int | None = None
    ) -> list[JournalEntry]:
        ...

    @abstractmethod
    def get_by_account(self, account_code: AccountCode) -> list[JournalEntry]:
        ...

    @abstractmethod
    def snapshot(self, watermark: int | None = None) -> list[JournalEntry]:
        ...

    @property
    @abstractmethod
    def watermark(self) -> int:
        ...

    def has_postings(self, account_code: AccountCode) -> bool:
        return bool(self.get_by_account(account_code))


def _split(net: int) -> tuple[int, int]:
    """Số dư ròng -> (dư Nợ, dư Có)."""
    return (net, 0) if net >= 0 else (0, -net)


@dataclass
class TrialBalanceRow:
    account_code: str
    account_name: str
    level: int
    nature: AccountNature
    is_posting_account: bool
    opening_net: int = 0
    period_debit: int = 0
    period_credit: int = 0

    @property
    def opening_debit(self) -> int:
        return _split(self.opening_net)[0]

    @property
    def opening_credit(self) -> int:
        return _split(self.opening_net)[1]

    @property
    def closing_net(self) -> int:
        return self.opening_net + self.period_debit - self.period_credit

    @property
    def closing_debit(self) -> int:
        return _split(self.closing_net)[0]

    @property
    def closing_credit(self) -> int:
        return _split(self.closing_net)[1]

    @property
    def is_abnormal(self) -> bool:
        """TK dư Nợ có số dư Có hoặc TK dư Có có số dư Nợ. TK lưỡng tính bỏ qua."""
        if self.nature == AccountNature.DEBIT:
            return self.closing_credit > 0
        if self.nature == AccountNature.CREDIT:
            return self.closing_debit > 0
        return False


@dataclass
class TrialBalance:
    """Bảng cân đối số phát sinh."""
    start_date: date
    end_date: date
    watermark: int
    rows: list[TrialBalanceRow] = field(default_factory=list)

    def _total(self, attr: str) -> int:
        return sum(getattr(r, attr) for r in self.rows if r.is_posting_account)

    @property
    def totals(self) -> dict[str, int]:
        return {
            name: self._total(name)
            for name in (
                "opening_debit", "opening_credit", "period_debit",
                "period_credit", "closing_debit", "closing_credit",
            )
        }

    @property
    def is_balanced(self) -> bool:
        t = self.totals
        return (
            t["opening_debit"] == t["opening_credit"]
            and t["period_debit"] == t["period_credit"]
            and t["closing_debit"] == t["closing_credit"]
        )

    @property
    def abnormal_accounts(self) -> list[str]:
        return [r.account_code for r in self.rows if r.is_posting_account and r.is_abnormal]

    def row(self, code: str) -> TrialBalanceRow | None:
        return next((r for r in self.rows if r.account_code == code), None)


class TrialBalanceService:
    """
    Service - Bảng cân đối số phát sinh.
    Số liệu của TK chi tiết được cộng dồn lên các TK tổng hợp.
    """

    def __init__(self, journal_repo: IJournalEntryRepository, registry: ChartOfAccountsRegistry):
        self.journal_repo = journal_repo
        self.registry = registry

    def build(self, start_date: date, end_date: date, watermark: int | None = None) -> TrialBalance:
        watermark = self.journal_repo.watermark if watermark is None else watermark
        entries = self.journal_repo.get_by_period(date.min, end_date, watermark)

        rows: dict[str, TrialBalanceRow] = {}

        def row_for(code: str, posting: bool) -> TrialBalanceRow:
            row = rows.get(code)
            if row is None:
                account = self.registry.lookup(code) if self.registry.exists(code) else None
                row = rows[code] = TrialBalanceRow(
                    account_code=code,
                    account_name=account.name if account else "",
                    level=len(code) - 2,
                    nature=account.nature if account else AccountNature.BOTH,
                    is_posting_account=posting,
                )
            elif posting:
                row.is_posting_account = True
            return row

        for entry in entries:
            in_period = entry.entry_date >= start_date
            for line in entry.lines:
                targets = [row_for(line.account_code, True)]
                targets += [row_for(code, False) for code in self.registry.ancestors(line.account_code)]
                for row in targets:
                    if in_period:
                        row.period_debit += line.debit
                        row.period_credit += line.credit
                    else:
                        row.opening_net += line.debit - line.credit

        return TrialBalance(
            start_date=start_date,
            end_date=end_date,
            watermark=watermark,
            rows=[rows[code] for code in sorted(rows)],
        )


def _net_debit(entries: Iterable[JournalEntry], prefixes: tuple[str, ...]) -> int:
    total = 0
    for entry in entries:
        for line in entry.lines:
            if line.account_code.startswith(prefixes):
                total += line.debit - line.credit
    return total


def _turnover(entries: Iterable[JournalEntry], prefixes: tuple[str, ...], debit_side: bool) -> int:
    """Phát sinh một vế, trừ đi phần bị hủy bởi bút toán đối ứng."""
    total = 0
    for entry in entries:
        for line in entry.lines:
            if not line.account_code.startswith(prefixes):
                continue
            if entry.is_reversal:
                total -= line.credit if debit_side else line.debit
            else:
                total += line.debit if debit_side else line.credit
    return total


@dataclass(frozen=True)
class StatementRow:
    code: str
    name: str
    value: int


# (mã số, chỉ tiêu, TK, vế: +1 lấy Nợ - Có, -1 lấy Có - Nợ)
_B02_SOURCE_ROWS = {
    "01": ("Doanh thu bán hàng và cung cấp dịch vụ", ("511",), -1),
    "02": ("Các khoản giảm trừ doanh thu", ("521",), 1),
    "11": ("Giá vốn hàng bán", ("632",), 1),
    "21": ("Doanh thu hoạt động tài chính", ("515",), -1),
    "22": ("Chi phí tài chính", ("635",), 1),
    "23": ("Trong đó: Chi phí lãi vay", ("6351",), 1),
    "24": ("Chi phí quản lý kinh doanh", ("642",), 1),
    "31": ("Thu nhập khác", ("711",), -1),
    "32": ("Chi phí khác", ("811",), 1),
    "51": ("Chi phí thuế thu nhập doanh nghiệp", ("821",), 1),
}


@dataclass
class IncomeStatement:
    """Báo cáo kết quả hoạt động kinh doanh (Mẫu B02-DNN)."""
    start_date: date
    end_date: date
    rows: list[StatementRow] = field(default_factory=list)

    def value(self, code: str) -> int:
        return next(r.value for r in self.rows if r.code == code)

    @property
    def gross_profit(self) -> int:
        return self.value("20")

    @property
    def net_profit(self) -> int:
        return self.value("60")


class IncomeStatementService:

    def __init__(self, journal_repo: IJournalEntryRepository):
        self.journal_repo = journal_repo

    def build(self, start_date: date, end_date: date, watermark: int | None = None) -> IncomeStatement:
        entries = self.journal_repo.get_by_period(start_date, end_date, watermark)
        v = {
            code: sign * _net_debit(entries, prefixes)
            for code, (_, prefixes, sign) in _B02_SOURCE_ROWS.items()
        }
        v["10"] = v["01"] - v["02"]
        v["20"] = v["10"] - v["11"]
        v["30"] = v["20"] + v["21"] - v["22"] - v["24"]
        v["40"] = v["31"] - v["32"]
        v["50"] = v["30"] + v["40"]
        v["60"] = v["50"] - v["51"]

        names = {code: name for code, (name, _, _) in _B02_SOURCE_ROWS.items()}
        names.update({
            "10": "Doanh thu thuần về bán hàng và cung cấp dịch vụ",
            "20": "Lợi nhuận gộp về bán hàng và cung cấp dịch vụ",
            "30": "Lợi nhuận thuần từ hoạt động kinh doanh",
            "40": "Lợi nhuận khác",
            "50": "Tổng lợi nhuận kế toán trước thuế",
            "60": "Lợi nhuận sau thuế thu nhập doanh nghiệp",
        })
        return IncomeStatement(
            start_date=start_date,
            end_date=end_date,
            rows=[StatementRow(code, names[code], v[code]) for code in sorted(v)],
        )


@dataclass(frozen=True)
class TaxSummary:
    start_date: date
    end_date: date
    vat_output: int
    vat_input: int
    pit_withheld: int
    insurance_payable: int

    @property
    def vat_payable(self) -> int:
        """Thuế GTGT phải nộp; số âm là thuế còn được khấu trừ chuyển kỳ sau."""
        return self.vat_output - self.vat_input


class TaxSummaryService:
    """Tổng hợp thuế GTGT, thuế TNCN và bảo hiểm phải nộp từ sổ cái."""

    def __init__(self, journal_repo: IJournalEntryRepository):
        self.journal_repo = journal_repo

    def build(self, start_date: date, end_date: date, watermark: int | None = None) -> TaxSummary:
        entries = self.journal_repo.get_by_period(start_date, end_date, watermark)
        return TaxSummary(
            start_date=start_date,
            end_date=end_date,
            vat_output=_turnover(entries, ("33311",), debit_side=False),
            vat_input=_turnover(entries, ("133",), debit_side=True),
            pit_withheld=_turnover(entries, ("3335",), debit_side=False),
            insurance_payable=_turnover(entries, ("3383", "3384", "3386"), debit_side=False),
        )


def account_balances(
    journal_repo: IJournalEntryRepository, as_of: date, watermark: int | None = None
) -> dict[str, int]:
    """Số dư ròng (Nợ - Có) của từng TK chi tiết tới ngày as_of."""
    balances: dict[str, int] = defaultdict(int)
    for entry in journal_repo.get_by_period(date.min, as_of, watermark):
        for line in entry.lines:
            balances[line.account_code] += line.debit - line.credit
    return dict(balances)
