"""
BlockLedger - Balance Snapshots
=================================
Per-(height, address) balance snapshots bounding rollback cost.

Every applied block records the new balance of each address it touched.
Rows older than the retention window are pruned after each block, so the
table holds at most ``window`` heights of history independent of chain
length.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, delete, func
from sqlalchemy.orm import Session

from block_ledger.storage.models_orm import SnapshotORM
from block_ledger.constants import DEFAULT_ROLLBACK_WINDOW, SQL_IN_CHUNK_SIZE
from block_ledger.logging_setup import get_logger


logger = get_logger("snapshots")


def chunked(items: List, size: int = SQL_IN_CHUNK_SIZE) -> Iterable[List]:
    """Split a list into IN-clause sized chunks"""
    for start in range(0, len(items), size):
        yield items[start:start + size]


class SnapshotManager:
    """
    Writes, prunes and reads balance snapshots.

    All methods run inside the caller's session so snapshot writes commit
    or abort together with the block or rollback that produced them.

    Attributes:
        window (int): Retention window in heights
    """

    def __init__(self, window: int = DEFAULT_ROLLBACK_WINDOW):
        if window < 1:
            raise ValueError(f"Snapshot window must be >= 1, got {window}")
        self.window = window

    # ========================================================================
    # WRITE
    # ========================================================================

    def record(self, session: Session, height: int, balances: Dict[str, int]) -> int:
        """
        Upsert one snapshot row per address.

        Args:
            session: Open transaction
            height: Height of the block just applied
            balances: address -> balance after that block

        Returns:
            int: Rows written
        """
        for address in sorted(balances):
            session.merge(SnapshotORM(height=height, address=address, balance=balances[address]))
        session.flush()
        return len(balances)

    def prune(self, session: Session, window: Optional[int] = None) -> int:
        """
        Delete rows older than the retention window.

        Removes rows with ``height < max_snapshot_height - (window - 1)``.

        Returns:
            int: Rows deleted
        """
        window = window or self.window
        max_height = session.execute(select(func.max(SnapshotORM.height))).scalar()
        if max_height is None:
            return 0

        cutoff = max_height - (window - 1)
        result = session.execute(
            delete(SnapshotORM)
            .where(SnapshotORM.height < cutoff)
            .execution_options(synchronize_session=False)
        )
        deleted = result.rowcount or 0

        if deleted:
            logger.debug(
                "Snapshots pruned",
                extra_data={"cutoff": cutoff, "deleted": deleted}
            )
        return deleted

    def discard_above(self, session: Session, height: int) -> int:
        """Delete rows describing heights above ``height``"""
        result = session.execute(
            delete(SnapshotORM)
            .where(SnapshotORM.height > height)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    # ========================================================================
    # READ
    # ========================================================================

    def balances_at(self, session: Session, height: int, addresses: Iterable[str]) -> Dict[str, int]:
        """
        Nearest snapshot at or below ``height``, per address.

        Each address is looked up independently, since addresses last
        changed at different heights. Addresses without such a row are
        absent from the result.
        """
        found: Dict[str, int] = {}
        address_list = sorted(set(addresses))

        for chunk in chunked(address_list):
            latest = (
                select(
                    SnapshotORM.address.label("address"),
                    func.max(SnapshotORM.height).label("height"),
                )
                .where(SnapshotORM.height <= height, SnapshotORM.address.in_(chunk))
                .group_by(SnapshotORM.address)
                .subquery()
            )
            rows = session.execute(
                select(SnapshotORM.address, SnapshotORM.balance).join(
                    latest,
                    (SnapshotORM.address == latest.c.address) & (SnapshotORM.height == latest.c.height),
                )
            )
            for address, balance in rows:
                found[address] = balance

        return found

    def get_snapshot(self, session: Session, height: int, address: str) -> Optional[int]:
        row = session.get(SnapshotORM, (height, address))
        return row.balance if row is not None else None

    def snapshot_heights(self, session: Session) -> List[int]:
        """Distinct heights present in the table, ascending"""
        return list(
            session.execute(
                select(SnapshotORM.height).distinct().order_by(SnapshotORM.height)
            ).scalars()
        )

    def height_range(self, session: Session) -> Tuple[Optional[int], Optional[int]]:
        """(min, max) snapshot height, (None, None) when empty"""
        return session.execute(
            select(func.min(SnapshotORM.height), func.max(SnapshotORM.height))
        ).one()

    def count(self, session: Session) -> int:
        return session.execute(select(func.count()).select_from(SnapshotORM)).scalar_one()


__all__ = [
    "SnapshotManager",
    "chunked",
]
