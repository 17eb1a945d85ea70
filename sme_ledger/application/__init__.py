"""Application layer - Use cases and DTOs."""

from sme_ledger.application.bookkeeping import Bookkeeping, DocumentStore, get_bookkeeping
