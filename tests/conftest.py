"""
Pytest configuration and fixtures.
"""

from datetime import date
from decimal import Decimal

import pytest

from sme_ledger.domain.chart_of_accounts import ChartOfAccountsRegistry
from sme_ledger.domain.costing import InventoryBook
from sme_ledger.domain.entities import (
    InventoryPosition,
    Invoice,
    InvoiceLine,
    WarehouseLine,
    WarehouseVoucher,
)
from sme_ledger.domain.ledger import JournalLedger
from sme_ledger.domain.posting import PostingEngine
from sme_ledger.domain.tax import TaxRuleBook
from sme_ledger.domain.value_objects import (
    InvoiceDirection,
    ProductId,
    WarehouseDirection,
    WarehouseSubtype,
)


@pytest.fixture
def registry() -> ChartOfAccountsRegistry:
    return ChartOfAccountsRegistry.with_default_chart()


@pytest.fixture
def ledger() -> JournalLedger:
    return JournalLedger()


@pytest.fixture
def inventory() -> InventoryBook:
    return InventoryBook([
        InventoryPosition(ProductId("HH01"), Decimal("150"), 95_000),
    ])


@pytest.fixture
def rule_book() -> TaxRuleBook:
    return TaxRuleBook()


@pytest.fixture
def engine(registry, ledger, inventory, rule_book) -> PostingEngine:
    return PostingEngine(registry, ledger, inventory, rule_book)


@pytest.fixture
def sales_invoice() -> Invoice:
    return Invoice(
        document_number="HD0000123",
        document_date=date(2025, 3, 15),
        description="Bán hàng Công ty ABC",
        counterpart="KH001",
        direction=InvoiceDirection.OUTPUT,
        lines=[InvoiceLine(quantity=Decimal("100"), unit_price=120_000, vat_rate=5)],
    )


@pytest.fixture
def sale_issue() -> WarehouseVoucher:
    return WarehouseVoucher(
        document_number="PX0001",
        document_date=date(2025, 3, 15),
        description="Xuất kho bán hàng",
        direction=WarehouseDirection.ISSUE,
        reason=WarehouseSubtype.SALE,
        lines=[WarehouseLine(product_id=ProductId("HH01"), quantity=Decimal("50"))],
    )
