"""
API Routers - Sổ cái và báo cáo tổng hợp.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query

from sme_ledger.application.bookkeeping import Bookkeeping, get_bookkeeping
from sme_ledger.application.dto.accounting_dto import (
    IncomeStatementDTO,
    InventoryPositionDTO,
    JournalEntryResponseDTO,
    StockMovementDTO,
    TaxSummaryDTO,
    TrialBalanceDTO,
)

router = APIRouter(prefix="/reports", tags=["Báo cáo"])


@router.get("/journal-entries", response_model=list[JournalEntryResponseDTO])
def get_journal_entries(
    start_date: date = Query(date.min, description="Từ ngày"),
    end_date: date = Query(date.max, description="Đến ngày"),
    account_code: str | None = Query(None, description="Lọc theo TK"),
    books: Bookkeeping = Depends(get_bookkeeping),
):
    """Sổ nhật ký chung."""
    entries = books.journal_repo.get_by_period(start_date, end_date)
    if account_code:
        entries = [e for e in entries if any(line.account_code == account_code for line in e.lines)]
    return [JournalEntryResponseDTO.model_validate(e) for e in entries]


@router.get("/trial-balance", response_model=TrialBalanceDTO)
def get_trial_balance(
    start_date: date = Query(..., description="Từ ngày"),
    end_date: date = Query(..., description="Đến ngày"),
    watermark: int | None = Query(None, ge=0, description="Chỉ tính bút toán có sequence <= watermark"),
    books: Bookkeeping = Depends(get_bookkeeping),
):
    """
    Bảng cân đối số phát sinh.

    Kiểm tra cân đối Nợ = Có và TK có số dư bất thường.
    """
    return TrialBalanceDTO.model_validate(books.trial_balance(start_date, end_date, watermark))


@router.get("/income-statement", response_model=IncomeStatementDTO)
def get_income_statement(
    start_date: date = Query(..., description="Từ ngày"),
    end_date: date = Query(..., description="Đến ngày"),
    books: Bookkeeping = Depends(get_bookkeeping),
):
    """Báo cáo kết quả hoạt động kinh doanh - Mẫu B02-DNN."""
    return IncomeStatementDTO.model_validate(books.income_statement(start_date, end_date))


@router.get("/tax-summary", response_model=TaxSummaryDTO)
def get_tax_summary(
    start_date: date = Query(..., description="Từ ngày"),
    end_date: date = Query(..., description="Đến ngày"),
    books: Bookkeeping = Depends(get_bookkeeping),
):
    """Tổng hợp thuế GTGT, thuế TNCN và bảo hiểm phải nộp."""
    return TaxSummaryDTO.model_validate(books.tax_summary(start_date, end_date))


@router.get("/inventory", response_model=list[InventoryPositionDTO])
def get_inventory_positions(books: Bookkeeping = Depends(get_bookkeeping)):
    """Tồn kho và giá vốn bình quân hiện tại."""
    return [InventoryPositionDTO.model_validate(p) for p in books.inventory.positions()]


@router.get("/inventory/{product_id}/stock-card", response_model=list[StockMovementDTO])
def get_stock_card(product_id: str, books: Bookkeeping = Depends(get_bookkeeping)):
    """Thẻ kho của một mặt hàng."""
    return [StockMovementDTO.model_validate(m) for m in books.inventory.movements(product_id)]
