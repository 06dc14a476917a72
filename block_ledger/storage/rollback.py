"""
BlockLedger - Rollback Engine
===============================
Atomic revert of the ledger to an earlier height.

Algorithm (single transaction):
    1. Collect addresses owning outputs created or spent above the target
    2. Un-spend outputs spent above the target
    3. Delete outputs created above the target
    4. Delete transactions and blocks above the target
    5. Restore balances of the collected addresses from their nearest
       snapshot at or below the target, per address; addresses without a
       retained snapshot are recomputed from the reverted UTXO set
    6. Discard snapshots above the target

Addresses outside step 1 did not change above the target, so their
running balances are already correct and are left untouched.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Set

from sqlalchemy import select, update, delete, or_
from sqlalchemy.orm import Session

from block_ledger.storage.db import LedgerDatabase
from block_ledger.storage.models_orm import BlockORM, TransactionORM, OutputORM
from block_ledger.storage.snapshots import SnapshotManager
from block_ledger.storage.ledger_store import (
    query_current_height,
    query_unspent_sums,
    write_balance,
)
from block_ledger.constants import DEFAULT_ROLLBACK_WINDOW
from block_ledger.errors import InvalidRollbackHeightError, RollbackTooFarError
from block_ledger.logging_setup import get_logger, PerformanceLogger


logger = get_logger("rollback")


@dataclass(frozen=True)
class RollbackResult:
    """Summary of a completed rollback"""

    from_height: int
    to_height: int
    blocks_removed: int
    addresses_restored: int
    from_snapshots: int
    recomputed: int

    def to_dict(self) -> dict:
        return asdict(self)


def check_rollback_range(target_height: int, current_height: int, window: int) -> None:
    """
    Raise when a rollback target is out of bounds.

    Raises:
        InvalidRollbackHeightError: target outside [0, current_height]
        RollbackTooFarError: current_height - target_height > window
    """
    if isinstance(target_height, bool) or not isinstance(target_height, int):
        raise InvalidRollbackHeightError(
            f"Rollback height must be an integer, got {target_height!r}",
            code="INVALID_ROLLBACK_HEIGHT",
            details={"target": repr(target_height)}
        )

    if target_height < 0 or target_height > current_height:
        raise InvalidRollbackHeightError(
            f"Rollback height {target_height} outside [0, {current_height}]",
            code="INVALID_ROLLBACK_HEIGHT",
            details={"target": target_height, "current": current_height}
        )

    if current_height - target_height > window:
        raise RollbackTooFarError(
            f"Cannot roll back more than {window} blocks "
            f"(current {current_height}, target {target_height})",
            code="ROLLBACK_TOO_FAR",
            details={"target": target_height, "current": current_height, "window": window}
        )


class RollbackEngine:
    """
    Reverts blocks above a target height.

    Attributes:
        db: Database handle
        snapshots: Snapshot manager used for balance lookback
        window: Max blocks revertible from the tip
    """

    def __init__(
        self,
        db: LedgerDatabase,
        snapshots: SnapshotManager,
        window: int = DEFAULT_ROLLBACK_WINDOW
    ):
        self.db = db
        self.snapshots = snapshots
        self.window = window

    def rollback_to(self, target_height: int) -> RollbackResult:
        """
        Revert the ledger to the state right after ``target_height``.

        Range is re-checked inside the transaction; a violation aborts
        it with no effect.

        Raises:
            InvalidRollbackHeightError, RollbackTooFarError: out of range
            DatabaseError: storage failure (nothing persisted)
        """
        with PerformanceLogger(logger, f"rollback_to({target_height})", threshold_ms=5000):
            with self.db.transaction() as session:
                current = query_current_height(session)
                check_rollback_range(target_height, current, self.window)

                if target_height == current:
                    return RollbackResult(current, target_height, 0, 0, 0, 0)

                affected = self._affected_addresses(session, target_height)

                self._revert_outputs(session, target_height)
                blocks_removed = self._delete_above(session, target_height)

                from_snapshots, recomputed = self._restore_balances(session, target_height, affected)

                self.snapshots.discard_above(session, target_height)

        result = RollbackResult(
            from_height=current,
            to_height=target_height,
            blocks_removed=blocks_removed,
            addresses_restored=len(affected),
            from_snapshots=from_snapshots,
            recomputed=recomputed,
        )

        logger.info("Rollback completed", extra_data=result.to_dict())
        return result

    # ========================================================================
    # STEPS
    # ========================================================================

    def _affected_addresses(self, session: Session, target_height: int) -> Set[str]:
        return set(
            session.execute(
                select(OutputORM.address)
                .where(or_(
                    OutputORM.block_height > target_height,
                    OutputORM.spent_at_height > target_height,
                ))
                .distinct()
            ).scalars()
        )

    def _revert_outputs(self, session: Session, target_height: int) -> None:
        session.execute(
            update(OutputORM)
            .where(OutputORM.spent_at_height > target_height)
            .values(is_spent=False, spent_by_tx_id=None, spent_at_height=None)
            .execution_options(synchronize_session=False)
        )
        session.execute(
            delete(OutputORM)
            .where(OutputORM.block_height > target_height)
            .execution_options(synchronize_session=False)
        )

    def _delete_above(self, session: Session, target_height: int) -> int:
        session.execute(
            delete(TransactionORM)
            .where(TransactionORM.block_height > target_height)
            .execution_options(synchronize_session=False)
        )
        result = session.execute(
            delete(BlockORM)
            .where(BlockORM.height > target_height)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    def _restore_balances(self, session: Session, target_height: int, addresses: Set[str]):
        restored: Dict[str, int] = self.snapshots.balances_at(session, target_height, addresses)

        # Last change pruned out of the window, or never funded before target
        missing = addresses - set(restored)
        recomputed = query_unspent_sums(session, missing) if missing else {}

        for address in sorted(addresses):
            balance = restored.get(address, recomputed.get(address, 0))
            write_balance(session, address, balance, target_height)

        session.flush()

        if missing:
            logger.debug(
                "Balances recomputed from unspent outputs",
                extra_data={"count": len(missing), "target": target_height}
            )

        return len(restored), len(missing)


__all__ = [
    "RollbackEngine",
    "RollbackResult",
    "check_rollback_range",
]
