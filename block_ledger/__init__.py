"""
BlockLedger - UTXO Block Ledger
=================================
Sequential block ingestion over a UTXO model, running balances and
bounded snapshot rollback.

Version: 1.0.0
Author: BlockLedger Team
License: MIT
"""

__version__ = "1.0.0"
__author__ = "BlockLedger Team"
__license__ = "MIT"

# Core imports
from block_ledger.domain.models import Block, Transaction, TxInput, TxOutput, UTXOKey
from block_ledger.services.ledger_service import LedgerService
from block_ledger.config import LedgerSettings, get_settings

__all__ = [
    # Version
    "__version__",

    # Core
    "Block",
    "Transaction",
    "TxInput",
    "TxOutput",
    "UTXOKey",
    "LedgerService",
    "LedgerSettings",
    "get_settings",
]
