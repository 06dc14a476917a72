"""
BlockLedger - Storage Package
===============================
Ledger persistence: database handle, UTXO/balance store, snapshots,
rollback.
"""

from block_ledger.storage.db import LedgerDatabase
from block_ledger.storage.snapshots import SnapshotManager
from block_ledger.storage.ledger_store import LedgerStore
from block_ledger.storage.rollback import RollbackEngine, RollbackResult

__all__ = [
    "LedgerDatabase",
    "SnapshotManager",
    "LedgerStore",
    "RollbackEngine",
    "RollbackResult",
]
