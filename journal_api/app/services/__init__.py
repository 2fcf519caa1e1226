"""Persistence and request-level services for the journal API."""

from .journal import JournalService
from .ledger_store import InMemoryLedger, LedgerStore, ParquetLedger, create_store

__all__ = ["InMemoryLedger", "JournalService", "LedgerStore", "ParquetLedger", "create_store"]
