"""
Unit tests - Bộ máy ghi sổ: quy tắc hạch toán, ghi sổ, hủy, toàn vẹn dữ liệu.
"""

import threading
from datetime import date, timezone
from decimal import Decimal

import pytest

from sme_ledger.domain import posting
from sme_ledger.domain.chart_of_accounts import ChartOfAccountsRegistry
from sme_ledger.domain.entities import (
    BankTransaction,
    Invoice,
    InvoiceLine,
    PayrollLine,
    PayrollRun,
    WarehouseLine,
    WarehouseVoucher,
)
from sme_ledger.domain.exceptions import (
    InsufficientStockError,
    StateError,
    UnbalancedEntryError,
    ValidationError,
)
from sme_ledger.domain.ledger import JournalLedger
from sme_ledger.domain.posting import PostingEngine, compose_entry
from sme_ledger.domain.value_objects import (
    BankTransactionType,
    DocumentStatus,
    InvoiceDirection,
    JournalLine,
    PaymentMethod,
    ProductId,
    WarehouseDirection,
    WarehouseSubtype,
)


def as_tuples(entry) -> list[tuple[str, int, int]]:
    return [(line.account_code, line.debit, line.credit) for line in entry.lines]


def receipt(qty, price, reason=WarehouseSubtype.PURCHASE, product="HH01", **kwargs) -> WarehouseVoucher:
    return WarehouseVoucher(
        document_date=date(2025, 3, 10),
        direction=WarehouseDirection.RECEIPT,
        reason=reason,
        lines=[WarehouseLine(product_id=ProductId(product), quantity=Decimal(qty), unit_price=price)],
        **kwargs,
    )


def issue(qty, reason=WarehouseSubtype.SALE, product="HH01") -> WarehouseVoucher:
    return WarehouseVoucher(
        document_date=date(2025, 3, 20),
        direction=WarehouseDirection.ISSUE,
        reason=reason,
        lines=[WarehouseLine(product_id=ProductId(product), quantity=Decimal(qty))],
    )


def bank(transaction_type, amount, is_credit, **kwargs) -> BankTransaction:
    return BankTransaction(
        document_date=date(2025, 3, 25),
        description=kwargs.pop("description", "Giao dịch ngân hàng"),
        transaction_type=transaction_type,
        is_credit=is_credit,
        amount=amount,
        **kwargs,
    )


class TestInvoicePosting:
    """Test hạch toán hóa đơn GTGT."""

    def test_sales_invoice_scenario(self, engine, ledger, sales_invoice):
        result = engine.post(sales_invoice)
        assert as_tuples(result.entry) == [
            ("131", 12_600_000, 0),
            ("5111", 0, 12_000_000),
            ("33311", 0, 600_000),
        ]
        assert result.entry.is_balanced()
        assert result.entry.sequence == 1
        assert sales_invoice.status == DocumentStatus.POSTED
        assert len(ledger) == 1

    def test_purchase_invoice_coalesces_by_account(self, engine):
        invoice = Invoice(
            document_date=date(2025, 3, 5),
            direction=InvoiceDirection.INPUT,
            lines=[
                InvoiceLine(quantity=Decimal("10"), unit_price=100_000, vat_rate=10),
                InvoiceLine(quantity=Decimal("5"), unit_price=200_000, vat_rate=10),
                InvoiceLine(quantity=Decimal("1"), unit_price=500_000, vat_rate=8, account_code="6427"),
            ],
        )
        result = engine.post(invoice)
        assert as_tuples(result.entry) == [
            ("1561", 2_000_000, 0),
            ("6427", 500_000, 0),
            ("1331", 240_000, 0),
            ("331", 0, 2_740_000),
        ]

    def test_cash_sale_uses_cash_account(self, engine, sales_invoice):
        sales_invoice.payment_method = PaymentMethod.CASH
        result = engine.post(sales_invoice)
        assert result.entry.lines[0].account_code == "1111"

    def test_not_taxable_line_has_no_vat_line(self, engine):
        invoice = Invoice(
            document_date=date(2025, 3, 5),
            direction=InvoiceDirection.OUTPUT,
            lines=[InvoiceLine(quantity=Decimal("1"), unit_price=1_000_000, vat_rate=-1,
                               account_code="5113")],
        )
        result = engine.post(invoice)
        assert as_tuples(result.entry) == [("131", 1_000_000, 0), ("5113", 0, 1_000_000)]

    def test_posting_to_parent_account_rejected(self, engine, ledger, sales_invoice):
        sales_invoice.lines[0].account_code = "511"
        with pytest.raises(ValidationError) as exc:
            engine.post(sales_invoice)
        assert exc.value.code == ValidationError.IS_PARENT
        assert sales_invoice.status == DocumentStatus.DRAFT
        assert len(ledger) == 0

    def test_posting_to_inactive_account_rejected(self, engine, registry, sales_invoice):
        registry.register("5119", "Doanh thu khác")
        registry.deactivate("5119")
        sales_invoice.lines[0].account_code = "5119"
        with pytest.raises(ValidationError) as exc:
            engine.post(sales_invoice)
        assert exc.value.code == ValidationError.INACTIVE

    def test_posting_to_unknown_account_rejected(self, engine, sales_invoice):
        sales_invoice.lines[0].account_code = "5199"
        with pytest.raises(ValidationError) as exc:
            engine.post(sales_invoice)
        assert exc.value.code == ValidationError.NOT_FOUND

    def test_invoice_without_lines_rejected(self, engine):
        invoice = Invoice(document_date=date(2025, 3, 5), direction=InvoiceDirection.OUTPUT)
        with pytest.raises(ValidationError) as exc:
            engine.post(invoice)
        assert exc.value.code == ValidationError.MISSING_FIELD

    def test_zero_amount_invoice_rejected(self, engine):
        invoice = Invoice(
            document_date=date(2025, 3, 5),
            direction=InvoiceDirection.OUTPUT,
            lines=[InvoiceLine(quantity=Decimal("1"), unit_price=0)],
        )
        with pytest.raises(ValidationError) as exc:
            engine.post(invoice)
        assert exc.value.code == ValidationError.EMPTY_ENTRY

    def test_posted_accounts_are_recorded(self, engine, registry, sales_invoice):
        engine.post(sales_invoice)
        assert registry.has_postings("5111")


class TestDocumentLifecycle:
    """Test vòng đời chứng từ: Nháp -> Đã ghi sổ -> Đã hủy."""

    def test_post_twice_rejected(self, engine, ledger, sales_invoice):
        engine.post(sales_invoice)
        with pytest.raises(StateError) as exc:
            engine.post(sales_invoice)
        assert exc.value.code == StateError.NOT_DRAFT
        assert len(ledger) == 1

    def test_cancel_posted_invoice_appends_exact_negation(self, engine, ledger, sales_invoice):
        original = engine.post(sales_invoice).entry
        result = engine.cancel(sales_invoice, "Khách hàng hủy đơn")

        reversal = result.reversal
        assert reversal.reverses_entry_id == original.id
        assert as_tuples(reversal) == [
            (code, credit, debit) for code, debit, credit in as_tuples(original)
        ]
        assert sales_invoice.status == DocumentStatus.CANCELLED
        assert sales_invoice.cancel_reason == "Khách hàng hủy đơn"
        assert len(ledger) == 2

        net: dict[str, int] = {}
        for entry in ledger.snapshot():
            for line in entry.lines:
                net[line.account_code] = net.get(line.account_code, 0) + line.debit - line.credit
        assert all(value == 0 for value in net.values())

    def test_timestamps_are_utc(self, engine, sales_invoice):
        original = engine.post(sales_invoice).entry
        reversal = engine.cancel(sales_invoice, "Khách hàng hủy đơn").reversal
        assert original.posted_at.tzinfo == timezone.utc
        assert reversal.posted_at.tzinfo == timezone.utc
        assert reversal.entry_date == original.entry_date

    def test_document_locks_are_released(self, engine, inventory, sale_issue, sales_invoice):
        engine.post(sales_invoice)
        engine.post(sale_issue)
        engine.cancel(sale_issue, "Xuất nhầm")
        assert len(engine._locks) == 0
        assert len(inventory._locks) == 0

    def test_cancel_draft_has_no_ledger_effect(self, engine, ledger, sales_invoice):
        result = engine.cancel(sales_invoice, "Lập nhầm")
        assert result.reversal is None
        assert sales_invoice.status == DocumentStatus.CANCELLED
        assert len(ledger) == 0

    def test_cancel_twice_rejected(self, engine, sales_invoice):
        engine.cancel(sales_invoice, "Lập nhầm")
        with pytest.raises(StateError) as exc:
            engine.cancel(sales_invoice, "Lập nhầm")
        assert exc.value.code == StateError.ALREADY_CANCELLED

    def test_post_cancelled_rejected(self, engine, sales_invoice):
        engine.cancel(sales_invoice, "Lập nhầm")
        with pytest.raises(StateError):
            engine.post(sales_invoice)

    def test_cancel_requires_reason(self, engine, sales_invoice):
        with pytest.raises(ValidationError):
            engine.cancel(sales_invoice, "  ")

    def test_edit_only_while_draft(self, engine, sales_invoice):
        sales_invoice.edit(description="Bán hàng Công ty XYZ")
        assert sales_invoice.description == "Bán hàng Công ty XYZ"
        engine.post(sales_invoice)
        with pytest.raises(StateError):
            sales_invoice.edit(description="Sửa sau ghi sổ")

    def test_concurrent_posts_of_same_document(self, engine, ledger, sales_invoice):
        outcomes = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            try:
                engine.post(sales_invoice)
                outcomes.append("posted")
            except StateError:
                outcomes.append("rejected")

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("posted") == 1
        assert outcomes.count("rejected") == 7
        assert len(ledger) == 1


class TestWarehousePosting:
    """Test hạch toán phiếu nhập/xuất kho và giá vốn."""

    def test_sale_issue_scenario(self, engine, inventory, sale_issue):
        result = engine.post(sale_issue)
        assert as_tuples(result.entry) == [("632", 4_750_000, 0), ("1561", 0, 4_750_000)]
        position = inventory.position("HH01")
        assert position.quantity_on_hand == 100
        assert position.average_unit_cost == 95_000

    def test_purchase_receipt_updates_average(self, engine, inventory):
        result = engine.post(receipt(50, 105_000, product="HH02"))
        assert as_tuples(result.entry) == [("1561", 5_250_000, 0), ("331", 0, 5_250_000)]
        engine.post(receipt(50, 95_000, product="HH02"))
        assert inventory.position("HH02").average_unit_cost == 100_000
        assert inventory.position("HH02").quantity_on_hand == 100

    def test_receipt_without_price_uses_current_average(self, engine):
        result = engine.post(receipt(10, None, reason=WarehouseSubtype.RETURN_SALE))
        assert as_tuples(result.entry) == [("1561", 950_000, 0), ("632", 0, 950_000)]

    def test_line_inventory_account_overrides_default(self, engine):
        voucher = receipt(10, 20_000, product="NVL01")
        voucher.lines[0].inventory_account = "152"
        result = engine.post(voucher)
        assert result.entry.lines[0].account_code == "152"

    def test_production_use(self, engine, inventory):
        engine.post(receipt(100, 20_000, product="NVL01"))
        result = engine.post(issue(40, reason=WarehouseSubtype.PRODUCTION_USE, product="NVL01"))
        assert as_tuples(result.entry) == [("154", 800_000, 0), ("152", 0, 800_000)]

    def test_insufficient_stock_leaves_everything_untouched(self, engine, ledger, inventory):
        voucher = issue(200)
        with pytest.raises(InsufficientStockError):
            engine.post(voucher)
        assert voucher.status == DocumentStatus.DRAFT
        assert len(ledger) == 0
        assert inventory.position("HH01").quantity_on_hand == 150
        assert inventory.movements() == []

    def test_negative_stock_allowed_by_configuration(self, registry, ledger, inventory, rule_book):
        engine = PostingEngine(registry, ledger, inventory, rule_book, allow_negative_stock=True)
        result = engine.post(issue(200))
        assert result.warnings
        assert inventory.position("HH01").quantity_on_hand == -50
        assert inventory.movements("HH01")[-1].negative_stock is True

    def test_reason_must_match_direction(self, engine):
        voucher = receipt(10, 1_000, reason=WarehouseSubtype.SALE)
        with pytest.raises(ValidationError):
            engine.post(voucher)

    def test_zero_price_receipt_rejected(self, engine, ledger, inventory):
        voucher = receipt(10, 0, reason=WarehouseSubtype.OTHER_IN, product="MAU01")
        with pytest.raises(ValidationError) as exc:
            engine.post(voucher)
        assert exc.value.code == ValidationError.INVALID_AMOUNT
        assert voucher.status == DocumentStatus.DRAFT
        assert len(ledger) == 0
        assert inventory.movements("MAU01") == []

    def test_receipt_without_price_needs_existing_average(self, engine, inventory):
        voucher = receipt(10, None, reason=WarehouseSubtype.INVENTORY_SURPLUS, product="MAU01")
        with pytest.raises(ValidationError) as exc:
            engine.post(voucher)
        assert exc.value.code == ValidationError.INVALID_AMOUNT
        assert inventory.position("MAU01").quantity_on_hand == 0

    def test_issue_without_cost_basis_rejected(self, registry, ledger, inventory, rule_book):
        engine = PostingEngine(registry, ledger, inventory, rule_book, allow_negative_stock=True)
        with pytest.raises(ValidationError) as exc:
            engine.post(issue(5, product="MAU01"))
        assert exc.value.code == ValidationError.INVALID_AMOUNT
        assert inventory.position("MAU01").quantity_on_hand == 0

    def test_multi_line_issue_is_sequential_per_product(self, engine, inventory):
        voucher = issue(100)
        voucher.lines.append(WarehouseLine(product_id=ProductId("HH01"), quantity=Decimal("60")))
        with pytest.raises(InsufficientStockError):
            engine.post(voucher)
        assert inventory.position("HH01").quantity_on_hand == 150

    def test_cancel_receipt_restores_average(self, engine, inventory):
        engine.post(receipt(100, 90_000, product="HH02"))
        second = receipt(50, 105_000, product="HH02")
        engine.post(second)
        assert inventory.position("HH02").average_unit_cost == 95_000

        engine.cancel(second, "Nhập nhầm")
        position = inventory.position("HH02")
        assert position.quantity_on_hand == 100
        assert position.average_unit_cost == 90_000

    def test_cancel_issue_returns_quantity(self, engine, inventory, sale_issue):
        engine.post(sale_issue)
        result = engine.cancel(sale_issue, "Khách trả lại")
        assert as_tuples(result.reversal) == [("632", 0, 4_750_000), ("1561", 4_750_000, 0)]
        assert inventory.position("HH01").quantity_on_hand == 150
        assert inventory.position("HH01").average_unit_cost == 95_000

    def test_stock_card_records_movements(self, engine, inventory, sale_issue):
        engine.post(sale_issue)
        card = inventory.movements("HH01")
        assert len(card) == 1
        assert card[0].amount == 4_750_000
        assert card[0].balance_quantity == 100

    def test_concurrent_issues_on_same_product(self, engine, inventory, ledger):
        vouchers = [issue(15) for _ in range(10)]
        errors = []

        def worker(voucher):
            try:
                engine.post(voucher)
            except InsufficientStockError as exc:
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(v,)) for v in vouchers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert inventory.position("HH01").quantity_on_hand == 0
        assert sum(e.total_debit for e in ledger.snapshot()) == 150 * 95_000


class TestBankPosting:
    """Test hạch toán giao dịch ngân hàng."""

    def test_collection(self, engine):
        result = engine.post(bank(BankTransactionType.COLLECTION, 5_000_000, True))
        assert as_tuples(result.entry) == [("1121", 5_000_000, 0), ("131", 0, 5_000_000)]

    def test_fee(self, engine):
        result = engine.post(bank(BankTransactionType.FEE, 11_000, False))
        assert as_tuples(result.entry) == [("6427", 11_000, 0), ("1121", 0, 11_000)]

    def test_tax_payment_with_counter_account(self, engine):
        result = engine.post(
            bank(BankTransactionType.TAX_PAYMENT, 227_500, False, counter_account="3335")
        )
        assert as_tuples(result.entry) == [("3335", 227_500, 0), ("1121", 0, 227_500)]

    def test_direction_mismatch_rejected(self, engine):
        with pytest.raises(ValidationError):
            engine.post(bank(BankTransactionType.PAYMENT, 1_000_000, True))

    def test_transfer_requires_counter_account(self, engine):
        with pytest.raises(ValidationError) as exc:
            engine.post(bank(BankTransactionType.TRANSFER_IN, 1_000_000, True))
        assert exc.value.code == ValidationError.MISSING_FIELD

    def test_transfer_between_bank_accounts(self, engine):
        result = engine.post(
            bank(BankTransactionType.TRANSFER_IN, 1_000_000, True, counter_account="1122")
        )
        assert as_tuples(result.entry) == [("1121", 1_000_000, 0), ("1122", 0, 1_000_000)]

    def test_non_positive_amount_rejected(self, engine):
        with pytest.raises(ValidationError) as exc:
            engine.post(bank(BankTransactionType.DEPOSIT, 0, True))
        assert exc.value.code == ValidationError.INVALID_AMOUNT

    def test_description_required(self, engine):
        with pytest.raises(ValidationError):
            engine.post(bank(BankTransactionType.DEPOSIT, 1_000, True, description=""))


class TestPayrollPosting:
    """Test hạch toán bảng lương."""

    def test_payroll_accrual(self, engine):
        run = PayrollRun(
            document_date=date(2025, 1, 31),
            period="2025-01",
            lines=[PayrollLine(employee_id="NV001", gross_salary=20_000_000, allowances=1_000_000,
                               insurance_base=10_000_000, dependent_count=1)],
        )
        result = engine.post(run)
        assert as_tuples(result.entry) == [
            ("6421", 23_200_000, 0),
            ("334", 1_277_500, 0),
            ("334", 0, 21_000_000),
            ("3383", 0, 2_600_000),
            ("3384", 0, 450_000),
            ("3386", 0, 200_000),
            ("3335", 0, 227_500),
        ]

    def test_rates_follow_document_date(self, engine):
        def run(on):
            return PayrollRun(
                document_date=on,
                period=on.strftime("%Y-%m"),
                lines=[PayrollLine(employee_id="NV009", gross_salary=60_000_000,
                                   insurance_base=60_000_000)],
            )

        def social_credit(entry):
            return next(line.credit for line in entry.lines if line.account_code == "3383")

        # BHXH: 8% người lao động + 18% doanh nghiệp (gồm 0,5% TNLĐ-BNN), tối đa 20 lần lương cơ sở
        before = engine.post(run(date(2024, 6, 30))).entry
        after = engine.post(run(date(2024, 7, 31))).entry
        assert social_credit(before) == 36_000_000 * 26 // 100
        assert social_credit(after) == 46_800_000 * 26 // 100


class TestPostingContract:
    """Test bút toán lệch Nợ/Có là lỗi nghiêm trọng, không ghi gì vào sổ."""

    def test_unbalanced_rule_output_aborts_posting(self, engine, ledger, sales_invoice, monkeypatch):
        monkeypatch.setattr(
            posting,
            "build_lines",
            lambda rule, document, derivation: [
                JournalLine("131", debit=100), JournalLine("5111", credit=90),
            ],
        )
        with pytest.raises(UnbalancedEntryError) as exc:
            engine.post(sales_invoice)
        assert exc.value.recoverable is False
        assert sales_invoice.status == DocumentStatus.DRAFT
        assert len(ledger) == 0

    def test_compose_entry_is_pure(self, registry, inventory, rule_book, sale_issue):
        rules = rule_book.for_date(sale_issue.document_date)
        snapshot = inventory.snapshot(["HH01"])
        first = compose_entry(sale_issue, registry, snapshot, rules)
        second = compose_entry(sale_issue, registry, snapshot, rules)
        assert as_tuples(first.entry) == as_tuples(second.entry)
        assert first.positions == second.positions
        assert inventory.position("HH01").quantity_on_hand == 150
        assert sale_issue.status == DocumentStatus.DRAFT

    def test_unknown_rule(self, registry, inventory, rule_book, sales_invoice):
        with pytest.raises(ValidationError) as exc:
            compose_entry(
                sales_invoice, registry, {}, rule_book.for_date(sales_invoice.document_date),
                rule_table={},
            )
        assert exc.value.code == ValidationError.UNKNOWN_RULE

    def test_every_posted_entry_balances(self, engine, ledger, sales_invoice, sale_issue):
        engine.post(sales_invoice)
        engine.post(sale_issue)
        engine.post(bank(BankTransactionType.COLLECTION, 12_600_000, True))
        engine.cancel(sales_invoice, "Hủy")
        for entry in ledger.snapshot():
            assert sum(line.debit for line in entry.lines) == sum(line.credit for line in entry.lines)
            assert all((line.debit == 0) != (line.credit == 0) for line in entry.lines)

    def test_child_account_racing_a_posting(self, rule_book):
        """Mở TK con và ghi sổ vào TK đó cùng lúc: chỉ một trong hai thành công."""
        for _ in range(20):
            registry = ChartOfAccountsRegistry.with_default_chart()
            engine = PostingEngine(registry, JournalLedger(), rule_book=rule_book)
            invoice = Invoice(
                document_date=date(2025, 3, 15),
                direction=InvoiceDirection.OUTPUT,
                lines=[InvoiceLine(quantity=Decimal("1"), unit_price=1_000_000, account_code="5118")],
            )
            barrier = threading.Barrier(2)
            outcomes = {}

            def post():
                barrier.wait()
                try:
                    engine.post(invoice)
                    outcomes["post"] = "ok"
                except ValidationError as exc:
                    outcomes["post"] = exc.code

            def register():
                barrier.wait()
                try:
                    registry.register("51181", "Doanh thu khác - chi tiết")
                    outcomes["register"] = "ok"
                except ValidationError as exc:
                    outcomes["register"] = exc.code

            threads = [threading.Thread(target=post), threading.Thread(target=register)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            assert sorted(outcomes.values()) in (
                [ValidationError.HAS_POSTINGS, "ok"],
                [ValidationError.IS_PARENT, "ok"],
            )
