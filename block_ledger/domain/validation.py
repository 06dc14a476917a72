"""
BlockLedger - Block Validation
================================
Read-only checks run before a block is applied.

Validation Rules:
- Height: block.height == current height + 1
- Identity: block.id == SHA-256(height + concatenated tx ids)
- Balance: every input resolves to a currently unspent output, no output
  is consumed twice in the block, inputs sum exactly to outputs;
  issuance transactions (no inputs) must create a positive amount

The validator never mutates ledger state.
"""

from typing import Iterable, List, Optional, Set, TYPE_CHECKING

from block_ledger.domain.models import Block, Transaction, UTXOKey
from block_ledger.domain.crypto_core import ids_match
from block_ledger.constants import BLOCK_ID_HEX_LENGTH, MAX_AMOUNT
from block_ledger.errors import (
    InvalidHeightError,
    InvalidBlockIdError,
    InvalidBalanceError,
    UnresolvedInputError,
    DuplicateTransactionError,
)
from block_ledger.logging_setup import get_logger, PerformanceLogger

if TYPE_CHECKING:
    from block_ledger.storage.ledger_store import LedgerStore


# ============================================================================
# MODULE LOGGER
# ============================================================================

logger = get_logger("validation")


# ============================================================================
# BLOCK VALIDATION
# ============================================================================

class BlockValidator:
    """
    Block validator.

    Boolean checks (``validate_height``, ``validate_identity``,
    ``validate_balance``) answer yes/no; ``validate_block`` runs them in
    order and raises the matching error with details.

    Attributes:
        store: Ledger store used for read-only UTXO lookups
    """

    def __init__(self, store: "LedgerStore"):
        self.store = store

    # ========================================================================
    # BOOLEAN CHECKS
    # ========================================================================

    def validate_height(self, block: Block, current_height: int) -> bool:
        return block.height == current_height + 1

    def validate_identity(self, block: Block) -> bool:
        if len(block.id) != BLOCK_ID_HEX_LENGTH:
            return False
        return ids_match(block.compute_block_id(), block.id)

    def validate_balance(self, transactions: List[Transaction]) -> bool:
        return self._find_balance_error(transactions) is None

    # ========================================================================
    # FULL VALIDATION
    # ========================================================================

    def validate_block(self, block: Block, current_height: Optional[int] = None) -> None:
        """
        Full block validation.

        Args:
            block: Candidate block
            current_height: Ledger height; read from the store when omitted

        Raises:
            InvalidHeightError: Height is not current + 1
            InvalidBlockIdError: Id does not match content hash
            DuplicateTransactionError: Transaction id repeated or already recorded
            InvalidBalanceError: Unresolved input, double spend, or imbalance
        """
        if current_height is None:
            current_height = self.store.get_current_height()

        with PerformanceLogger(logger, f"validate_block({block.height})"):

            if not self.validate_height(block, current_height):
                raise InvalidHeightError(
                    f"Expected height {current_height + 1}, got {block.height}",
                    code="INVALID_HEIGHT",
                    details={"expected": current_height + 1, "got": block.height}
                )

            if not self.validate_identity(block):
                raise InvalidBlockIdError(
                    "Block id does not match height and transaction ids",
                    code="INVALID_BLOCK_ID",
                    details={"expected": block.compute_block_id(), "got": block.id}
                )

            self._check_unique_transactions(block.transactions)

            error = self._find_balance_error(block.transactions)
            if error is not None:
                raise error

        logger.debug(
            "Block validated",
            extra_data={"height": block.height, "tx_count": len(block.transactions)}
        )

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _check_unique_transactions(self, transactions: List[Transaction]) -> None:
        seen: Set[str] = set()
        for tx in transactions:
            if tx.id in seen:
                raise DuplicateTransactionError(
                    f"Transaction {tx.id} appears twice in block",
                    code="DUPLICATE_TXID",
                    details={"tx_id": tx.id}
                )
            seen.add(tx.id)

        existing = self.store.existing_transaction_ids(seen)
        if existing:
            raise DuplicateTransactionError(
                f"Transaction {existing[0]} already recorded",
                code="DUPLICATE_TXID",
                details={"tx_ids": existing}
            )

    def _find_balance_error(self, transactions: Iterable[Transaction]) -> Optional[InvalidBalanceError]:
        transactions = list(transactions)

        # One batch lookup for the whole block
        keys = [inp.utxo_key for tx in transactions for inp in tx.inputs]
        resolved = self.store.resolve_unspent(keys)
        consumed: Set[UTXOKey] = set()

        for tx in transactions:
            output_total = tx.total_output_value()

            if tx.is_coinbase():
                if output_total <= 0:
                    return InvalidBalanceError(
                        f"Issuance transaction {tx.id} must create a positive amount",
                        code="NON_POSITIVE_ISSUANCE",
                        details={"tx_id": tx.id, "output_total": str(output_total)}
                    )
                if output_total > MAX_AMOUNT:
                    return InvalidBalanceError(
                        f"Issuance transaction {tx.id} exceeds the maximum amount",
                        code="AMOUNT_OVERFLOW",
                        details={"tx_id": tx.id, "output_total": str(output_total)}
                    )
                continue

            input_total = 0
            for inp in tx.inputs:
                key = inp.utxo_key

                if key in consumed:
                    return UnresolvedInputError(
                        f"Output {key} spent twice in the same block",
                        code="DOUBLE_SPEND",
                        details={"tx_id": tx.id, "input": str(key)}
                    )

                source = resolved.get(key)
                if source is None:
                    return UnresolvedInputError(
                        f"Input {key} of transaction {tx.id} does not reference an unspent output",
                        code="UNRESOLVED_INPUT",
                        details={"tx_id": tx.id, "input": str(key)}
                    )

                consumed.add(key)
                input_total += source.value

            if input_total != output_total:
                return InvalidBalanceError(
                    f"Transaction {tx.id} inputs ({input_total}) do not equal outputs ({output_total})",
                    code="BALANCE_MISMATCH",
                    details={
                        "tx_id": tx.id,
                        "input_total": str(input_total),
                        "output_total": str(output_total),
                    }
                )

        return None


# ============================================================================
# EXPORT
# ============================================================================

__all__ = [
    "BlockValidator",
]
