"""
API Routers - Khóa sổ kế toán theo kỳ.
"""

from fastapi import APIRouter, Depends

from sme_ledger.application.bookkeeping import Bookkeeping, get_bookkeeping
from sme_ledger.application.dto.accounting_dto import (
    PeriodLockDTO,
    PeriodLockRequestDTO,
    PeriodUnlockRequestDTO,
)

router = APIRouter(prefix="/periods", tags=["Khóa sổ"])


@router.get("", response_model=list[PeriodLockDTO])
def list_period_locks(books: Bookkeeping = Depends(get_bookkeeping)):
    """Các kỳ đã từng khóa sổ."""
    return [PeriodLockDTO.model_validate(lock) for lock in books.period_locks.locks()]


@router.get("/{period}", response_model=PeriodLockDTO)
def get_period_lock(period: str, books: Bookkeeping = Depends(get_bookkeeping)):
    return PeriodLockDTO.model_validate(books.period_locks.get(period))


@router.post("/{period}/lock", response_model=PeriodLockDTO)
def lock_period(
    period: str, dto: PeriodLockRequestDTO, books: Bookkeeping = Depends(get_bookkeeping)
):
    """
    Khóa sổ kỳ kế toán (YYYY-MM).

    - Kỳ đã khóa không nhận thêm bút toán
    - Hủy chứng từ của kỳ đã khóa ghi bút toán đối ứng vào kỳ mở kế tiếp
    """
    return PeriodLockDTO.model_validate(books.lock_period(period, dto.locked_by))


@router.post("/{period}/unlock", response_model=PeriodLockDTO)
def unlock_period(
    period: str, dto: PeriodUnlockRequestDTO, books: Bookkeeping = Depends(get_bookkeeping)
):
    """Mở khóa sổ, bắt buộc nêu lý do."""
    return PeriodLockDTO.model_validate(books.unlock_period(period, dto.reason))
