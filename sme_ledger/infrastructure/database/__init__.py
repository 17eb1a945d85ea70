"""
Database initialization.
"""

import os
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel

from sme_ledger.infrastructure.database.models import (
    JournalEntryRecord,
    JournalLineRecord,
    get_engine_url,
)

DATABASE_URL = get_engine_url(os.getenv("DATABASE_TYPE", "sqlite"))

if "sqlite" in DATABASE_URL:
    engine = create_engine(DATABASE_URL, echo=False, connect_args={"check_same_thread": False})
else:
    engine = create_engine(DATABASE_URL, echo=False)

__all__ = ["JournalEntryRecord", "JournalLineRecord", "engine", "init_db"]


def init_db(bind: Engine | None = None) -> None:
    """Initialize database - create all tables."""
    bind = bind or engine
    if bind.url.drivername.startswith("sqlite") and bind.url.database not in (None, "", ":memory:"):
        Path(bind.url.database).parent.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(bind=bind)
