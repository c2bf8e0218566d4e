"""Ledger Store: data access for reconciliation records."""

from .ledger_store import LedgerSnapshot, LedgerStore, UnitOfWork

__all__ = ["LedgerSnapshot", "LedgerStore", "UnitOfWork"]
