"""
BlockLedger - Domain Package
==============================
Core domain logic of the ledger.
"""

# Models
from block_ledger.domain.models import (
    Transaction,
    TxInput,
    TxOutput,
    Block,
    UTXOKey,
)

# Hashing
from block_ledger.domain.crypto_core import compute_block_id

# Validation
from block_ledger.domain.validation import BlockValidator

__all__ = [
    # Models
    "Transaction",
    "TxInput",
    "TxOutput",
    "Block",
    "UTXOKey",

    # Hashing
    "compute_block_id",

    # Validation
    "BlockValidator",
]
