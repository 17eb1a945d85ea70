"""
Application service - điểm vào của các use case ghi sổ.

Gom danh mục TK, sổ cái, sổ kho và bộ máy ghi sổ; giữ kho chứng từ
trong tiến trình thay cho hệ thống nghiệp vụ bên ngoài.
"""

import logging
import threading
from datetime import date
from functools import lru_cache

from sme_ledger.core.config import Settings, get_settings, load_rule_book
from sme_ledger.domain.chart_of_accounts import ChartOfAccountsRegistry
from sme_ledger.domain.costing import InventoryBook
from sme_ledger.domain.entities import PayrollRun, SourceDocument
from sme_ledger.domain.exceptions import ValidationError
from sme_ledger.domain.ledger import JournalLedger
from sme_ledger.domain.payroll import PayrollSummary, summarize_payroll
from sme_ledger.domain.period_lock import PeriodLock, PeriodLockRegistry
from sme_ledger.domain.posting import CancellationResult, PostingEngine, PostingResult
from sme_ledger.domain.services import (
    IJournalEntryRepository,
    IncomeStatement,
    IncomeStatementService,
    TaxSummary,
    TaxSummaryService,
    TrialBalance,
    TrialBalanceService,
)
from sme_ledger.domain.tax import TaxRuleBook

logger = logging.getLogger(__name__)


class DocumentStore:
    """Kho chứng từ gốc trong bộ nhớ."""

    def __init__(self):
        self._documents: dict[str, SourceDocument] = {}
        self._lock = threading.Lock()

    def add(self, document: SourceDocument) -> SourceDocument:
        with self._lock:
            if document.id in self._documents:
                raise ValidationError(
                    f"Chứng từ {document.id} đã tồn tại", code=ValidationError.DUPLICATE_CODE
                )
            self._documents[document.id] = document
        return document

    def get(self, document_id: str) -> SourceDocument:
        document = self._documents.get(document_id)
        if document is None:
            raise ValidationError(
                f"Không tìm thấy chứng từ {document_id}", code=ValidationError.NOT_FOUND
            )
        return document

    def list(self) -> list[SourceDocument]:
        return list(self._documents.values())


class Bookkeeping:

    def __init__(
        self,
        journal_repo: IJournalEntryRepository | None = None,
        registry: ChartOfAccountsRegistry | None = None,
        inventory: InventoryBook | None = None,
        rule_book: TaxRuleBook | None = None,
        allow_negative_stock: bool = False,
        period_locks: PeriodLockRegistry | None = None,
    ):
        self.registry = ChartOfAccountsRegistry.with_default_chart() if registry is None else registry
        self.journal_repo = JournalLedger() if journal_repo is None else journal_repo
        self.inventory = InventoryBook() if inventory is None else inventory
        self.rule_book = TaxRuleBook() if rule_book is None else rule_book
        self.period_locks = PeriodLockRegistry() if period_locks is None else period_locks
        self.registry.bind_postings_lookup(self.journal_repo.has_postings)
        self.documents = DocumentStore()
        self.engine = PostingEngine(
            self.registry,
            self.journal_repo,
            self.inventory,
            self.rule_book,
            allow_negative_stock=allow_negative_stock,
            period_locks=self.period_locks,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Bookkeeping":
        journal_repo: IJournalEntryRepository
        if settings.ledger_backend == "sql":
            from sme_ledger.infrastructure.database import engine, init_db
            from sme_ledger.infrastructure.database.repository import SqlJournalEntryRepository

            init_db(engine)
            journal_repo = SqlJournalEntryRepository(engine)
        else:
            journal_repo = JournalLedger()

        logger.info(
            f"Bookkeeping ready: backend={settings.ledger_backend} "
            f"allow_negative_stock={settings.allow_negative_stock}"
        )
        return cls(
            journal_repo=journal_repo,
            rule_book=load_rule_book(settings),
            allow_negative_stock=settings.allow_negative_stock,
        )

    # Documents

    def submit(self, document: SourceDocument) -> SourceDocument:
        return self.documents.add(document)

    def edit(self, document_id: str, **changes) -> SourceDocument:
        document = self.documents.get(document_id)
        document.edit(**{k: v for k, v in changes.items() if v is not None})
        return document

    def post(self, document_id: str) -> PostingResult:
        return self.engine.post(self.documents.get(document_id))

    def cancel(self, document_id: str, reason: str) -> CancellationResult:
        return self.engine.cancel(self.documents.get(document_id), reason)

    # Period locks

    def lock_period(self, period: str, locked_by: str | None = None) -> PeriodLock:
        return self.period_locks.lock(period, locked_by)

    def unlock_period(self, period: str, reason: str) -> PeriodLock:
        return self.period_locks.unlock(period, reason)

    # Reports

    def trial_balance(self, start_date: date, end_date: date, watermark: int | None = None) -> TrialBalance:
        return TrialBalanceService(self.journal_repo, self.registry).build(start_date, end_date, watermark)

    def income_statement(self, start_date: date, end_date: date) -> IncomeStatement:
        return IncomeStatementService(self.journal_repo).build(start_date, end_date)

    def tax_summary(self, start_date: date, end_date: date) -> TaxSummary:
        return TaxSummaryService(self.journal_repo).build(start_date, end_date)

    def payroll_summary(self, document_id: str) -> PayrollSummary:
        document = self.documents.get(document_id)
        if not isinstance(document, PayrollRun):
            raise ValidationError(
                f"Chứng từ {document_id} không phải bảng lương", code=ValidationError.NOT_FOUND
            )
        return summarize_payroll(document, self.rule_book.for_date(document.document_date))


@lru_cache
def get_bookkeeping() -> Bookkeeping:
    """Dependency - Bookkeeping dùng chung cho toàn ứng dụng."""
    return Bookkeeping.from_settings(get_settings())
