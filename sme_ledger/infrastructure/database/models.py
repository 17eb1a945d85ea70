"""
Infrastructure - SQLModel database models and configurations.
"""

from datetime import date, datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime
from sqlmodel import Field, SQLModel


class JournalEntryRecord(SQLModel, table=True):
    """Bút toán đã ghi sổ. Chỉ insert, không update/delete."""

    __tablename__ = "journal_entry"

    sequence: int | None = Field(default=None, primary_key=True)
    id: str = Field(unique=True, index=True)
    source_type: str = Field(index=True)
    source_id: str = Field(index=True)
    entry_date: date = Field(index=True)
    posted_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    description: str = ""
    reverses_entry_id: str | None = Field(default=None, index=True)


class JournalLineRecord(SQLModel, table=True):
    """Dòng bút toán."""

    __tablename__ = "journal_line"

    id: int | None = Field(default=None, primary_key=True)
    entry_sequence: int = Field(foreign_key="journal_entry.sequence", index=True)
    line_number: int
    account_code: str = Field(index=True)
    debit: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    credit: int = Field(default=0, sa_column=Column(BigInteger, nullable=False, default=0))
    memo: str = ""


def get_engine_url(database_type: str = "sqlite") -> str:
    """Lấy database URL từ environment."""
    import os

    db_type = database_type or os.getenv("DATABASE_TYPE", "sqlite")

    if db_type == "sqlite":
        db_path = os.getenv("DATABASE_PATH", "./data/ledger.db")
        return f"sqlite:///{db_path}"
    elif db_type == "postgresql":
        host = os.getenv("DB_HOST", "localhost")
        port = os.getenv("DB_PORT", "5432")
        dbname = os.getenv("DB_NAME", "ledger")
        user = os.getenv("DB_USER", "postgres")
        password = os.getenv("DB_PASSWORD", "postgres")
        return f"postgresql://{user}:{password}@{host}:{port}/{dbname}"
    else:
        raise ValueError(f"Unsupported database type: {db_type}")
