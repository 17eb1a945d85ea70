"""
API Routers - Danh mục tài khoản (TT133/2016).
"""

from fastapi import APIRouter, Depends, Query, status

from sme_ledger.application.bookkeeping import Bookkeeping, get_bookkeeping
from sme_ledger.application.dto.accounting_dto import (
    AccountCreateDTO,
    AccountResponseDTO,
    AccountUpdateDTO,
)
from sme_ledger.domain.value_objects import AccountClass, AccountStatus

router = APIRouter(prefix="/accounts", tags=["Hệ thống tài khoản"])


@router.get("", response_model=list[AccountResponseDTO])
def list_accounts(
    account_class: AccountClass | None = Query(None, description="Loại tài khoản"),
    account_status: AccountStatus | None = Query(None, alias="status", description="Trạng thái"),
    books: Bookkeeping = Depends(get_bookkeeping),
):
    """Danh sách tài khoản, sắp xếp theo mã."""
    return [
        AccountResponseDTO.from_domain(account, books.registry)
        for account in books.registry.accounts(account_class, account_status)
    ]


@router.get("/{code}", response_model=AccountResponseDTO)
def get_account(code: str, books: Bookkeeping = Depends(get_bookkeeping)):
    return AccountResponseDTO.from_domain(books.registry.lookup(code), books.registry)


@router.get("/{code}/children", response_model=list[AccountResponseDTO])
def get_children(code: str, books: Bookkeeping = Depends(get_bookkeeping)):
    """TK con trực tiếp."""
    return [
        AccountResponseDTO.from_domain(child, books.registry)
        for child in books.registry.children(code)
    ]


@router.post("", response_model=AccountResponseDTO, status_code=status.HTTP_201_CREATED)
def register_account(dto: AccountCreateDTO, books: Bookkeeping = Depends(get_bookkeeping)):
    """
    Mở tài khoản mới.

    - Mã TK con = mã TK cha + 1 chữ số
    - TK cha phải tồn tại và chưa phát sinh bút toán
    """
    account = books.registry.register(
        dto.code,
        dto.name,
        parent_code=dto.parent_code,
        nature=dto.nature,
        detail_required=dto.detail_required,
        name_en=dto.name_en,
    )
    return AccountResponseDTO.from_domain(account, books.registry)


@router.patch("/{code}", response_model=AccountResponseDTO)
def update_account(code: str, dto: AccountUpdateDTO, books: Bookkeeping = Depends(get_bookkeeping)):
    account = books.registry.update(code, **dto.model_dump())
    return AccountResponseDTO.from_domain(account, books.registry)


@router.post("/{code}/deactivate", response_model=AccountResponseDTO)
def deactivate_account(code: str, books: Bookkeeping = Depends(get_bookkeeping)):
    """Ngừng sử dụng TK. Không áp dụng cho TK hệ thống, TK có TK con hoặc đã phát sinh."""
    account = books.registry.deactivate(code)
    return AccountResponseDTO.from_domain(account, books.registry)
