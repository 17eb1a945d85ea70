"""
API Routers - Chứng từ gốc: lập, sửa, ghi sổ, hủy.
"""

from fastapi import APIRouter, Depends, status

from sme_ledger.application.bookkeeping import Bookkeeping, get_bookkeeping
from sme_ledger.application.dto.accounting_dto import (
    BankTransactionCreateDTO,
    CancellationResponseDTO,
    CancelRequestDTO,
    DocumentResponseDTO,
    DocumentUpdateDTO,
    InventoryPositionDTO,
    InvoiceCreateDTO,
    JournalEntryResponseDTO,
    PayrollRunCreateDTO,
    PayrollSummaryDTO,
    PostingResponseDTO,
    WarehouseVoucherCreateDTO,
)

router = APIRouter(prefix="/documents", tags=["Chứng từ"])


@router.post("/invoices", response_model=DocumentResponseDTO, status_code=status.HTTP_201_CREATED)
def submit_invoice(dto: InvoiceCreateDTO, books: Bookkeeping = Depends(get_bookkeeping)):
    """Lập hóa đơn GTGT ở trạng thái Nháp."""
    return DocumentResponseDTO.from_domain(books.submit(dto.to_domain()))


@router.post(
    "/warehouse-vouchers", response_model=DocumentResponseDTO, status_code=status.HTTP_201_CREATED
)
def submit_warehouse_voucher(
    dto: WarehouseVoucherCreateDTO, books: Bookkeeping = Depends(get_bookkeeping)
):
    """Lập phiếu nhập/xuất kho ở trạng thái Nháp."""
    return DocumentResponseDTO.from_domain(books.submit(dto.to_domain()))


@router.post(
    "/bank-transactions", response_model=DocumentResponseDTO, status_code=status.HTTP_201_CREATED
)
def submit_bank_transaction(
    dto: BankTransactionCreateDTO, books: Bookkeeping = Depends(get_bookkeeping)
):
    return DocumentResponseDTO.from_domain(books.submit(dto.to_domain()))


@router.post("/payroll-runs", response_model=DocumentResponseDTO, status_code=status.HTTP_201_CREATED)
def submit_payroll_run(dto: PayrollRunCreateDTO, books: Bookkeeping = Depends(get_bookkeeping)):
    return DocumentResponseDTO.from_domain(books.submit(dto.to_domain()))


@router.get("", response_model=list[DocumentResponseDTO])
def list_documents(books: Bookkeeping = Depends(get_bookkeeping)):
    return [DocumentResponseDTO.from_domain(doc) for doc in books.documents.list()]


@router.get("/{document_id}", response_model=DocumentResponseDTO)
def get_document(document_id: str, books: Bookkeeping = Depends(get_bookkeeping)):
    return DocumentResponseDTO.from_domain(books.documents.get(document_id))


@router.patch("/{document_id}", response_model=DocumentResponseDTO)
def update_document(
    document_id: str, dto: DocumentUpdateDTO, books: Bookkeeping = Depends(get_bookkeeping)
):
    """Sửa chứng từ - chỉ cho phép khi còn Nháp."""
    return DocumentResponseDTO.from_domain(books.edit(document_id, **dto.model_dump()))


@router.get("/{document_id}/preview", response_model=JournalEntryResponseDTO)
def preview_document(document_id: str, books: Bookkeeping = Depends(get_bookkeeping)):
    """Xem trước bút toán sẽ sinh ra, không ghi sổ."""
    composition = books.engine.preview(books.documents.get(document_id))
    return JournalEntryResponseDTO.model_validate(composition.entry)


@router.post("/{document_id}/post", response_model=PostingResponseDTO)
def post_document(document_id: str, books: Bookkeeping = Depends(get_bookkeeping)):
    """
    Ghi sổ chứng từ.

    - Chỉ chứng từ Nháp mới được ghi sổ
    - Bút toán luôn cân đối Nợ = Có
    - Phiếu kho cập nhật giá vốn bình quân cùng lúc với ghi sổ
    """
    result = books.post(document_id)
    return PostingResponseDTO(
        document=DocumentResponseDTO.from_domain(books.documents.get(document_id)),
        entry=JournalEntryResponseDTO.model_validate(result.entry),
        positions=[InventoryPositionDTO.model_validate(p) for p in result.positions],
        warnings=list(result.warnings),
    )


@router.post("/{document_id}/cancel", response_model=CancellationResponseDTO)
def cancel_document(
    document_id: str, dto: CancelRequestDTO, books: Bookkeeping = Depends(get_bookkeeping)
):
    """Hủy chứng từ. Chứng từ đã ghi sổ được ghi bút toán đối ứng."""
    result = books.cancel(document_id, dto.reason)
    return CancellationResponseDTO(
        document=DocumentResponseDTO.from_domain(books.documents.get(document_id)),
        reversal=JournalEntryResponseDTO.model_validate(result.reversal) if result.reversal else None,
    )


@router.get("/{document_id}/payroll-summary", response_model=PayrollSummaryDTO)
def get_payroll_summary(document_id: str, books: Bookkeeping = Depends(get_bookkeeping)):
    return PayrollSummaryDTO.model_validate(books.payroll_summary(document_id))
