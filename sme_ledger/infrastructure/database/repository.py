"""
SQL journal repository - sổ cái lưu trong CSDL, chỉ ghi thêm.
"""

import logging
from datetime import date, datetime, timezone

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlmodel import Session, col, select

from sme_ledger.domain.entities import JournalEntry
from sme_ledger.domain.exceptions import UnbalancedEntryError
from sme_ledger.domain.services import IJournalEntryRepository
from sme_ledger.domain.value_objects import AccountCode, JournalLine, SourceType
from sme_ledger.infrastructure.database.models import JournalEntryRecord, JournalLineRecord

logger = logging.getLogger(__name__)


def _aware(value: datetime) -> datetime:
    """Thời điểm ghi sổ luôn lưu theo UTC; SQLite trả về datetime không có múi giờ."""
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class SqlJournalEntryRepository(IJournalEntryRepository):
    """Mỗi lần ghi sổ là một transaction: bút toán và các dòng được ghi cùng lúc hoặc không ghi."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def append(self, entry: JournalEntry) -> JournalEntry:
        if not entry.is_balanced():
            raise UnbalancedEntryError(entry.total_debit, entry.total_credit, entry.source_id)

        with Session(self.engine) as session:
            record = JournalEntryRecord(
                id=entry.id,
                source_type=entry.source_type.value,
                source_id=entry.source_id,
                entry_date=entry.entry_date,
                posted_at=_aware(entry.posted_at).astimezone(timezone.utc),
                description=entry.description,
                reverses_entry_id=entry.reverses_entry_id,
            )
            session.add(record)
            session.flush()
            sequence = record.sequence
            for number, line in enumerate(entry.lines, start=1):
                session.add(JournalLineRecord(
                    entry_sequence=sequence,
                    line_number=number,
                    account_code=line.account_code,
                    debit=line.debit,
                    credit=line.credit,
                    memo=line.memo,
                ))
            session.commit()

        logger.info(f"Stored journal entry #{sequence} {entry.source_type.value}/{entry.source_id}")
        return entry.with_sequence(sequence)

    @property
    def watermark(self) -> int:
        with Session(self.engine) as session:
            return session.exec(select(func.max(JournalEntryRecord.sequence))).one() or 0

    def _load(self, session: Session, statement) -> list[JournalEntry]:
        records = session.exec(statement.order_by(JournalEntryRecord.sequence)).all()
        if not records:
            return []

        sequences = [r.sequence for r in records]
        line_rows = session.exec(
            select(JournalLineRecord)
            .where(col(JournalLineRecord.entry_sequence).in_(sequences))
            .order_by(JournalLineRecord.entry_sequence, JournalLineRecord.line_number)
        ).all()
        lines_by_entry: dict[int, list[JournalLine]] = {seq: [] for seq in sequences}
        for row in line_rows:
            lines_by_entry[row.entry_sequence].append(JournalLine(
                account_code=AccountCode(row.account_code),
                debit=row.debit,
                credit=row.credit,
                memo=row.memo,
            ))

        return [
            JournalEntry(
                id=r.id,
                source_type=SourceType(r.source_type),
                source_id=r.source_id,
                entry_date=r.entry_date,
                posted_at=_aware(r.posted_at),
                description=r.description,
                reverses_entry_id=r.reverses_entry_id,
                lines=tuple(lines_by_entry[r.sequence]),
                sequence=r.sequence,
            )
            for r in records
        ]

    def snapshot(self, watermark: int | None = None) -> list[JournalEntry]:
        statement = select(JournalEntryRecord)
        if watermark is not None:
            statement = statement.where(JournalEntryRecord.sequence <= watermark)
        with Session(self.engine) as session:
            return self._load(session, statement)

    def get_by_source(self, source_type: SourceType, source_id: str) -> list[JournalEntry]:
        statement = select(JournalEntryRecord).where(
            JournalEntryRecord.source_type == source_type.value,
            JournalEntryRecord.source_id == source_id,
        )
        with Session(self.engine) as session:
            return self._load(session, statement)

    def get_by_period(
        self, start_date: date, end_date: date, watermark: int | None = None
    ) -> list[JournalEntry]:
        statement = select(JournalEntryRecord).where(
            JournalEntryRecord.entry_date >= start_date,
            JournalEntryRecord.entry_date <= end_date,
        )
        if watermark is not None:
            statement = statement.where(JournalEntryRecord.sequence <= watermark)
        with Session(self.engine) as session:
            return self._load(session, statement)

    def get_by_account(self, account_code: AccountCode) -> list[JournalEntry]:
        posted = select(JournalLineRecord.entry_sequence).where(
            JournalLineRecord.account_code == account_code
        )
        statement = select(JournalEntryRecord).where(col(JournalEntryRecord.sequence).in_(posted))
        with Session(self.engine) as session:
            return self._load(session, statement)

    def has_postings(self, account_code: AccountCode) -> bool:
        with Session(self.engine) as session:
            count = session.exec(
                select(func.count()).select_from(JournalLineRecord)
                .where(JournalLineRecord.account_code == account_code)
            ).one()
        return count > 0
