"""
Period Lock - Khóa sổ kế toán theo kỳ tháng (YYYY-MM).

Kỳ đã khóa không nhận thêm bút toán. Hủy chứng từ thuộc kỳ đã khóa được
ghi bút toán đối ứng vào kỳ đang mở gần nhất sau kỳ gốc.
"""

import logging
import re
import threading
from dataclasses import dataclass, replace
from datetime import date, datetime

from .entities import utcnow
from .exceptions import StateError, ValidationError
from .value_objects import PeriodStatus

logger = logging.getLogger(__name__)

_PERIOD_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")
MIN_UNLOCK_REASON_LENGTH = 10


def period_of(on: date) -> str:
    return f"{on.year:04d}-{on.month:02d}"


def parse_period(period: str) -> tuple[int, int]:
    match = _PERIOD_PATTERN.match(period or "")
    if match is None:
        raise ValidationError(
            f"Kỳ kế toán không hợp lệ: {period!r} (định dạng YYYY-MM)",
            code=ValidationError.INVALID_PERIOD,
        )
    return int(match.group(1)), int(match.group(2))


def next_period_start(period: str) -> date:
    year, month = parse_period(period)
    return date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)


@dataclass(frozen=True)
class PeriodLock:
    period: str
    status: PeriodStatus = PeriodStatus.OPEN
    locked_by: str | None = None
    locked_at: datetime | None = None
    unlocked_at: datetime | None = None
    unlock_reason: str | None = None

    @property
    def is_locked(self) -> bool:
        return self.status == PeriodStatus.LOCKED


class PeriodLockRegistry:
    """Danh sách kỳ đã khóa/mở khóa. Kỳ chưa từng khóa được coi là đang mở."""

    def __init__(self):
        self._periods: dict[str, PeriodLock] = {}
        self._lock = threading.Lock()

    def get(self, period: str) -> PeriodLock:
        parse_period(period)
        with self._lock:
            return self._periods.get(period) or PeriodLock(period)

    def is_locked(self, period: str) -> bool:
        return self.get(period).is_locked

    def is_date_locked(self, on: date) -> bool:
        return self.is_locked(period_of(on))

    def lock(self, period: str, locked_by: str | None = None) -> PeriodLock:
        parse_period(period)
        with self._lock:
            current = self._periods.get(period) or PeriodLock(period)
            if current.is_locked:
                raise StateError(f"Kỳ {period} đã khóa sổ", code=StateError.PERIOD_LOCKED)
            locked = replace(
                current,
                status=PeriodStatus.LOCKED,
                locked_by=locked_by,
                locked_at=utcnow(),
                unlocked_at=None,
                unlock_reason=None,
            )
            self._periods[period] = locked
        logger.info(f"Locked period {period} by {locked_by or '-'}")
        return locked

    def unlock(self, period: str, reason: str) -> PeriodLock:
        """Mở khóa sổ, bắt buộc có lý do."""
        parse_period(period)
        if not reason or len(reason.strip()) < MIN_UNLOCK_REASON_LENGTH:
            raise ValidationError(
                f"Lý do mở khóa phải có ít nhất {MIN_UNLOCK_REASON_LENGTH} ký tự",
                code=ValidationError.MISSING_FIELD,
            )
        with self._lock:
            current = self._periods.get(period)
            if current is None or not current.is_locked:
                raise StateError(
                    f"Kỳ {period} đang mở, không cần mở khóa", code=StateError.PERIOD_OPEN
                )
            unlocked = replace(
                current,
                status=PeriodStatus.OPEN,
                unlocked_at=utcnow(),
                unlock_reason=reason.strip(),
            )
            self._periods[period] = unlocked
        logger.warning(f"Unlocked period {period}: {reason.strip()}")
        return unlocked

    def locks(self) -> list[PeriodLock]:
        with self._lock:
            return [self._periods[p] for p in sorted(self._periods)]

    def guard(self, on: date) -> None:
        period = period_of(on)
        if self.is_locked(period):
            raise StateError(
                f"Kỳ kế toán {period} đã khóa. Không thể thay đổi số liệu, "
                f"vui lòng ghi bút toán điều chỉnh vào kỳ đang mở",
                code=StateError.PERIOD_LOCKED,
            )

    def first_open_date(self, on: date) -> date:
        """Ngày ghi sổ hợp lệ sớm nhất từ ngày `on`: chính nó nếu kỳ đang mở, nếu không là đầu kỳ mở kế tiếp."""
        with self._lock:
            current = on
            while True:
                lock = self._periods.get(period_of(current))
                if lock is None or not lock.is_locked:
                    return current
                current = next_period_start(lock.period)
