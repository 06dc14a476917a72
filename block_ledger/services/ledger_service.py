"""
BlockLedger - Ledger Service
==============================
Caller-facing ledger operations.

Features:
- submit_block: validate then apply, returns applied height
- get_balance / get_current_height / get_unspent_outputs
- rollback: range checks then atomic revert
- Single-writer lock around mutations
- Audit trail for applied blocks and rollbacks
"""

from contextlib import contextmanager, nullcontext
from typing import List, Optional, Tuple
import threading

# Internal imports
from block_ledger.domain.models import Block, TxOutput, UTXOKey
from block_ledger.domain.validation import BlockValidator
from block_ledger.storage.db import LedgerDatabase
from block_ledger.storage.snapshots import SnapshotManager
from block_ledger.storage.ledger_store import LedgerStore
from block_ledger.storage.rollback import RollbackEngine, RollbackResult, check_rollback_range
from block_ledger.errors import ValidationError, ConflictError
from block_ledger.logging_setup import get_logger, AuditLogger
from block_ledger.config import LedgerSettings


# ============================================================================
# MODULE LOGGER
# ============================================================================

logger = get_logger("ledger_service")


# ============================================================================
# LEDGER SERVICE
# ============================================================================

class LedgerService:
    """
    Ledger service.

    Wires validator, store, snapshots and rollback engine on one database
    handle. Mutations are serialized by a process-wide lock; writers in
    other processes are stopped by the height constraint and surface as
    retryable ConflictError.

    Attributes:
        config: Ledger configuration
        db: Database handle
        store: UTXO/balance store
        validator: Block validator
        rollback_engine: Rollback engine
        audit: Audit logger

    Examples:
        >>> service = LedgerService.create(get_test_config())
        >>> service.submit_block(Block.create(1, [coinbase]))
        1
        >>> service.get_balance("addr1")
        10
    """

    def __init__(
        self,
        config: LedgerSettings,
        db: Optional[LedgerDatabase] = None,
        audit_logger: Optional[AuditLogger] = None
    ):
        self.config = config
        self._owns_db = db is None
        self.db = db or LedgerDatabase(config)

        self.snapshots = SnapshotManager(config.rollback_window)
        self.store = LedgerStore(self.db, self.snapshots)
        self.validator = BlockValidator(self.store)
        self.rollback_engine = RollbackEngine(self.db, self.snapshots, config.rollback_window)

        self.audit = audit_logger or AuditLogger(config.log_dir if config.log_to_file else None)

        self._write_lock = threading.RLock()

        # Stats
        self.blocks_applied = 0
        self.blocks_rejected = 0
        self.rollbacks = 0

    @classmethod
    def create(cls, config: LedgerSettings, **kwargs) -> "LedgerService":
        """Build a service and create the schema if missing"""
        service = cls(config, **kwargs)
        service.db.create_tables()
        return service

    @contextmanager
    def _read_guard(self):
        # A single shared connection cannot serve a read during a write
        guard = self._write_lock if self.db.is_shared_connection else nullcontext()
        with guard:
            yield

    # ========================================================================
    # MUTATIONS
    # ========================================================================

    def submit_block(self, block: Block) -> int:
        """
        Validate and apply a block.

        Args:
            block: Candidate block

        Returns:
            int: Applied height

        Raises:
            InvalidHeightError, InvalidBlockIdError, InvalidBalanceError:
                block rejected, state unchanged
            DuplicateHeightError, SerializationConflictError: concurrent
                writer won, retry after re-reading the height
            DatabaseError: storage failure, state unchanged
        """
        with self._write_lock:
            current = self.store.get_current_height()

            try:
                self.validator.validate_block(block, current)
                self.store.apply(block)
            except (ValidationError, ConflictError) as e:
                self.blocks_rejected += 1
                logger.warning(
                    "Block rejected",
                    extra_data={"height": block.height, "error": e.code, "reason": e.message}
                )
                raise

            self.blocks_applied += 1

        self.audit.log_block_applied(block.height, block.id, len(block.transactions))
        return block.height

    def rollback(self, target_height: int) -> int:
        """
        Revert the ledger to ``target_height``.

        Returns:
            int: New current height

        Raises:
            InvalidRollbackHeightError: target outside [0, current]
            RollbackTooFarError: more than rollback_window blocks back
            DatabaseError: storage failure, state unchanged
        """
        with self._write_lock:
            current = self.store.get_current_height()
            check_rollback_range(target_height, current, self.config.rollback_window)

            result: RollbackResult = self.rollback_engine.rollback_to(target_height)
            self.rollbacks += 1

        self.audit.log_rollback(result.from_height, result.to_height, result.addresses_restored)
        return result.to_height

    # ========================================================================
    # READS
    # ========================================================================

    def get_balance(self, address: str) -> int:
        with self._read_guard():
            return self.store.get_balance(address)

    def get_current_height(self) -> int:
        with self._read_guard():
            return self.store.get_current_height()

    def get_unspent_outputs(self, address: str) -> List[Tuple[UTXOKey, TxOutput]]:
        with self._read_guard():
            return self.store.get_unspent_outputs(address)

    def get_block_id(self, height: int) -> Optional[str]:
        with self._read_guard():
            return self.store.get_block_id(height)

    def verify_balances(self) -> dict:
        """Running balances that disagree with the UTXO set (empty when consistent)"""
        with self._read_guard():
            return self.store.find_balance_mismatches()

    # ========================================================================
    # STATISTICS
    # ========================================================================

    def get_statistics(self) -> dict:
        with self._read_guard():
            return {
                "height": self.store.get_current_height(),
                "unspent_outputs": self.store.count_unspent(),
                "blocks_applied": self.blocks_applied,
                "blocks_rejected": self.blocks_rejected,
                "rollbacks": self.rollbacks,
                "rollback_window": self.config.rollback_window,
            }

    def close(self) -> None:
        """Release audit handler and, if owned, the database"""
        self.audit.close()
        if self._owns_db:
            self.db.close()

    def __repr__(self) -> str:
        return f"LedgerService(window={self.config.rollback_window})"


# ============================================================================
# EXPORT
# ============================================================================

__all__ = [
    "LedgerService",
]
