"""
Journal Ledger - Sổ nhật ký chung dạng chỉ ghi thêm (in-memory).
"""

import logging
import threading
from datetime import date

from .entities import JournalEntry
from .exceptions import UnbalancedEntryError
from .services import IJournalEntryRepository
from .value_objects import AccountCode, SourceType

logger = logging.getLogger(__name__)


class JournalLedger(IJournalEntryRepository):
    """
    Sổ cái trong bộ nhớ. Mỗi bút toán được gán sequence tăng dần khi ghi;
    người đọc lấy bản chụp tới một mốc sequence mà không cần khóa.
    """

    def __init__(self):
        self._entries: list[JournalEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: JournalEntry) -> JournalEntry:
        if not entry.is_balanced():
            raise UnbalancedEntryError(entry.total_debit, entry.total_credit, entry.source_id)
        with self._lock:
            stored = entry.with_sequence(len(self._entries) + 1)
            self._entries.append(stored)
        logger.info(
            f"Ledger append #{stored.sequence} {stored.source_type.value}/{stored.source_id} "
            f"amount={stored.total_debit}"
        )
        return stored

    @property
    def watermark(self) -> int:
        return len(self._entries)

    def snapshot(self, watermark: int | None = None) -> list[JournalEntry]:
        limit = self.watermark if watermark is None else min(watermark, self.watermark)
        return self._entries[:limit]

    def get_by_source(self, source_type: SourceType, source_id: str) -> list[JournalEntry]:
        return [
            e for e in self.snapshot()
            if e.source_type == source_type and e.source_id == source_id
        ]

    def get_by_period(
        self, start_date: date, end_date: date, watermark: int | None = None
    ) -> list[JournalEntry]:
        return [e for e in self.snapshot(watermark) if start_date <= e.entry_date <= end_date]

    def get_by_account(self, account_code: AccountCode) -> list[JournalEntry]:
        return [
            e for e in self.snapshot()
            if any(line.account_code == account_code for line in e.lines)
        ]

    def __len__(self) -> int:
        return self.watermark
