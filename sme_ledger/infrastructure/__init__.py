"""Infrastructure layer."""

from sme_ledger.infrastructure.database import engine, init_db
from sme_ledger.infrastructure.database.models import JournalEntryRecord, JournalLineRecord
from sme_ledger.infrastructure.database.repository import SqlJournalEntryRepository
