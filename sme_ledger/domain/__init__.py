"""Domain layer - Pure Python business logic."""

from sme_ledger.domain.chart_of_accounts import ChartOfAccountsRegistry
from sme_ledger.domain.costing import InventoryBook, apply_issue, apply_receipt
from sme_ledger.domain.entities import (
    Account,
    BankTransaction,
    InventoryPosition,
    Invoice,
    InvoiceLine,
    JournalEntry,
    PayrollLine,
    PayrollRun,
    SourceDocument,
    WarehouseLine,
    WarehouseVoucher,
)
from sme_ledger.domain.exceptions import (
    AccountingError,
    InsufficientStockError,
    IntegrityError,
    StateError,
    UnbalancedEntryError,
    ValidationError,
)
from sme_ledger.domain.ledger import JournalLedger
from sme_ledger.domain.period_lock import PeriodLock, PeriodLockRegistry
from sme_ledger.domain.posting import PostingEngine, compose_entry
from sme_ledger.domain.services import (
    IJournalEntryRepository,
    IncomeStatementService,
    TaxSummaryService,
    TrialBalanceService,
)
from sme_ledger.domain.tax import TaxRuleBook, TaxRuleSet
from sme_ledger.domain.value_objects import (
    AccountCode,
    AccountNature,
    DocumentStatus,
    JournalLine,
    SourceType,
)
