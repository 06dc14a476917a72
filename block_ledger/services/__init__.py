"""
BlockLedger - Services Package
================================
High-level service layer.
"""

from block_ledger.services.ledger_service import LedgerService

__all__ = [
    "LedgerService",
]
