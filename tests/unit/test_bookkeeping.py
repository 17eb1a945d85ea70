"""
Unit tests - Bookkeeping: lắp ghép danh mục TK, sổ cái, sổ kho và khóa sổ.
"""

from datetime import date
from decimal import Decimal

import pytest

from sme_ledger.application.bookkeeping import Bookkeeping
from sme_ledger.domain.chart_of_accounts import ChartOfAccountsRegistry
from sme_ledger.domain.costing import InventoryBook
from sme_ledger.domain.entities import Invoice, InvoiceLine
from sme_ledger.domain.exceptions import StateError, ValidationError
from sme_ledger.domain.ledger import JournalLedger
from sme_ledger.domain.period_lock import PeriodLockRegistry
from sme_ledger.domain.value_objects import AccountCode, AccountNature, InvoiceDirection


def other_revenue_invoice() -> Invoice:
    return Invoice(
        document_date=date(2025, 3, 15),
        description="Thu nhập cho thuê mặt bằng",
        direction=InvoiceDirection.OUTPUT,
        lines=[InvoiceLine(quantity=Decimal("1"), unit_price=5_000_000, account_code=AccountCode("5119"))],
    )


class TestInjectedComponents:
    """Các thành phần truyền vào được dùng nguyên, kể cả khi đang rỗng."""

    def test_empty_ledger_is_kept(self):
        ledger = JournalLedger()
        books = Bookkeeping(journal_repo=ledger)
        assert books.journal_repo is ledger
        assert books.engine.journal_repo is ledger

    def test_empty_registry_and_inventory_are_kept(self):
        registry = ChartOfAccountsRegistry()
        inventory = InventoryBook()
        period_locks = PeriodLockRegistry()
        books = Bookkeeping(registry=registry, inventory=inventory, period_locks=period_locks)
        assert books.registry is registry
        assert books.inventory is inventory
        assert books.period_locks is period_locks
        assert len(books.registry) == 0

    def test_posting_lands_in_injected_ledger(self, sales_invoice):
        ledger = JournalLedger()
        books = Bookkeeping(journal_repo=ledger)
        books.submit(sales_invoice)
        books.post(sales_invoice.id)
        assert ledger.watermark == 1


class TestPostingsSurviveRestart:
    """Danh mục TK mới dựng lại vẫn thấy phát sinh đã có trong sổ cái."""

    @pytest.fixture
    def ledger(self) -> JournalLedger:
        ledger = JournalLedger()
        books = Bookkeeping(journal_repo=ledger)
        books.registry.register("5119", "Doanh thu cho thuê", nature=AccountNature.CREDIT)
        invoice = books.submit(other_revenue_invoice())
        books.post(invoice.id)
        return ledger

    def test_account_with_ledger_postings_cannot_be_deactivated(self, ledger):
        books = Bookkeeping(journal_repo=ledger)
        books.registry.register("5119", "Doanh thu cho thuê", nature=AccountNature.CREDIT)
        with pytest.raises(ValidationError) as exc:
            books.registry.deactivate("5119")
        assert exc.value.code == ValidationError.HAS_POSTINGS
        assert books.registry.lookup("5119").is_active

    def test_no_child_under_account_with_ledger_postings(self, ledger):
        books = Bookkeeping(journal_repo=ledger)
        books.registry.register("5119", "Doanh thu cho thuê", nature=AccountNature.CREDIT)
        with pytest.raises(ValidationError) as exc:
            books.registry.register("51191", "Cho thuê kho", nature=AccountNature.CREDIT)
        assert exc.value.code == ValidationError.HAS_POSTINGS

    def test_account_without_postings_can_be_deactivated(self, ledger):
        books = Bookkeeping(journal_repo=ledger)
        books.registry.register("5119", "Doanh thu cho thuê", nature=AccountNature.CREDIT)
        books.registry.register("1113", "Vàng tiền tệ")
        assert books.registry.deactivate("1113").is_active is False


class TestPeriodLocks:

    def test_lock_blocks_posting_and_unlock_reopens(self, sales_invoice):
        books = Bookkeeping()
        books.submit(sales_invoice)
        books.lock_period("2025-03", locked_by="KTT")

        with pytest.raises(StateError) as exc:
            books.post(sales_invoice.id)
        assert exc.value.code == StateError.PERIOD_LOCKED
        assert books.journal_repo.watermark == 0

        books.unlock_period("2025-03", "Điều chỉnh số liệu kiểm toán")
        assert books.post(sales_invoice.id).entry.sequence == 1
