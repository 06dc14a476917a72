"""
BlockLedger - Ledger Store
============================
UTXO set and running balances, persisted through SQLAlchemy.

Features:
- Atomic block application (one DB transaction per block)
- Spent outputs kept as history with spending attribution
- O(1) balance reads from the running balance table
- Snapshot write + prune inside the same transaction

The store trusts the validator for semantic checks but re-checks every
input while holding the row, so a block that slipped past validation
still cannot double-spend.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from block_ledger.domain.models import Block, TxOutput, UTXOKey
from block_ledger.storage.db import LedgerDatabase
from block_ledger.storage.models_orm import (
    BlockORM,
    TransactionORM,
    OutputORM,
    BalanceORM,
)
from block_ledger.storage.snapshots import SnapshotManager, chunked
from block_ledger.constants import GENESIS_HEIGHT, MAX_AMOUNT
from block_ledger.errors import (
    DuplicateHeightError,
    DuplicateTransactionError,
    UnresolvedInputError,
    InvalidBalanceError,
    DatabaseCorruptionError,
)
from block_ledger.logging_setup import get_logger, PerformanceLogger


# ============================================================================
# MODULE LOGGER
# ============================================================================

logger = get_logger("store")


# ============================================================================
# SESSION-LEVEL QUERIES
# ============================================================================

def query_current_height(session: Session) -> int:
    """Max applied height, GENESIS_HEIGHT for an empty ledger"""
    height = session.execute(select(func.max(BlockORM.height))).scalar()
    return height if height is not None else GENESIS_HEIGHT


def query_unspent_sums(session: Session, addresses: Iterable[str]) -> Dict[str, int]:
    """Sum of unspent output values per address (addresses with none omitted)"""
    sums: Dict[str, int] = {}
    for chunk in chunked(sorted(set(addresses))):
        rows = session.execute(
            select(OutputORM.address, func.sum(OutputORM.value))
            .where(OutputORM.address.in_(chunk), OutputORM.is_spent.is_(False))
            .group_by(OutputORM.address)
        )
        for address, total in rows:
            sums[address] = int(total)
    return sums


def write_balance(session: Session, address: str, balance: int, height: int) -> None:
    """Upsert a running balance; zero removes the row"""
    row = session.get(BalanceORM, address)

    if balance == 0:
        if row is not None:
            session.delete(row)
        return

    if row is None:
        session.add(BalanceORM(address=address, balance=balance, updated_height=height))
    else:
        row.balance = balance
        row.updated_height = height


# ============================================================================
# LEDGER STORE
# ============================================================================

class LedgerStore:
    """
    Owner of blocks, outputs, balances and snapshots.

    Attributes:
        db: Database handle
        snapshots: Snapshot manager, invoked inside apply()

    Examples:
        >>> store = LedgerStore(db, SnapshotManager(2000))
        >>> store.apply(block)
        >>> store.get_balance("addr1")
        10
    """

    def __init__(self, db: LedgerDatabase, snapshots: SnapshotManager):
        self.db = db
        self.snapshots = snapshots

    # ========================================================================
    # READS
    # ========================================================================

    def get_current_height(self) -> int:
        with self.db.read_session() as session:
            return query_current_height(session)

    def get_balance(self, address: str) -> int:
        """Running balance, 0 for an unknown address"""
        with self.db.read_session() as session:
            row = session.get(BalanceORM, address)
            return row.balance if row is not None else 0

    def get_all_balances(self) -> Dict[str, int]:
        """Every non-zero running balance"""
        with self.db.read_session() as session:
            rows = session.execute(select(BalanceORM.address, BalanceORM.balance))
            return {address: balance for address, balance in rows}

    def resolve_unspent(self, keys: Iterable[UTXOKey]) -> Dict[UTXOKey, TxOutput]:
        """
        Batch lookup of currently unspent outputs.

        Args:
            keys: Output references to resolve

        Returns:
            Dict[UTXOKey, TxOutput]: Only keys naming an existing unspent
            output are present
        """
        wanted = set(keys)
        if not wanted:
            return {}

        resolved: Dict[UTXOKey, TxOutput] = {}
        tx_ids = sorted({key.tx_id for key in wanted})

        with self.db.read_session() as session:
            for chunk in chunked(tx_ids):
                rows = session.execute(
                    select(OutputORM.tx_id, OutputORM.output_index, OutputORM.address, OutputORM.value)
                    .where(OutputORM.tx_id.in_(chunk), OutputORM.is_spent.is_(False))
                )
                for tx_id, index, address, value in rows:
                    key = UTXOKey(tx_id, index)
                    if key in wanted:
                        resolved[key] = TxOutput(address=address, value=value)

        return resolved

    def get_unspent_outputs(self, address: str) -> List[Tuple[UTXOKey, TxOutput]]:
        """Unspent outputs owned by an address, oldest first"""
        with self.db.read_session() as session:
            rows = session.execute(
                select(OutputORM.tx_id, OutputORM.output_index, OutputORM.value)
                .where(OutputORM.address == address, OutputORM.is_spent.is_(False))
                .order_by(OutputORM.block_height, OutputORM.tx_id, OutputORM.output_index)
            )
            return [
                (UTXOKey(tx_id, index), TxOutput(address=address, value=value))
                for tx_id, index, value in rows
            ]

    def get_block_id(self, height: int) -> Optional[str]:
        with self.db.read_session() as session:
            return session.execute(
                select(BlockORM.id).where(BlockORM.height == height)
            ).scalar_one_or_none()

    def existing_transaction_ids(self, tx_ids: Iterable[str]) -> List[str]:
        """Subset of ``tx_ids`` already recorded in the ledger"""
        found: List[str] = []
        with self.db.read_session() as session:
            for chunk in chunked(sorted(set(tx_ids))):
                found.extend(
                    session.execute(
                        select(TransactionORM.id).where(TransactionORM.id.in_(chunk))
                    ).scalars()
                )
        return found

    def count_unspent(self) -> int:
        with self.db.read_session() as session:
            return session.execute(
                select(func.count()).select_from(OutputORM).where(OutputORM.is_spent.is_(False))
            ).scalar_one()

    def find_balance_mismatches(self) -> Dict[str, Tuple[int, int]]:
        """
        Compare running balances against the UTXO set.

        Returns:
            Dict[str, Tuple[int, int]]: address -> (running, recomputed)
            for every address where the two disagree; empty when consistent
        """
        with self.db.read_session() as session:
            running = {
                address: balance
                for address, balance in session.execute(select(BalanceORM.address, BalanceORM.balance))
            }
            addresses = set(running) | set(
                session.execute(
                    select(OutputORM.address).where(OutputORM.is_spent.is_(False)).distinct()
                ).scalars()
            )
            recomputed = query_unspent_sums(session, addresses)

        return {
            address: (running.get(address, 0), recomputed.get(address, 0))
            for address in sorted(addresses)
            if running.get(address, 0) != recomputed.get(address, 0)
        }

    # ========================================================================
    # APPLY
    # ========================================================================

    def apply(self, block: Block) -> Dict[str, int]:
        """
        Apply a validated block as one atomic unit.

        Steps:
            1. Insert the block row (height unique)
            2. Per transaction: insert it, spend its inputs, create its outputs
            3. Update running balances and write snapshots
            4. Prune snapshots outside the window

        Args:
            block: Block already accepted by the validator

        Returns:
            Dict[str, int]: New balance of every touched address

        Raises:
            DuplicateHeightError: Height already applied
            DuplicateTransactionError: Transaction id already recorded
            UnresolvedInputError: Input missing or already spent
            DatabaseError: Storage failure (nothing persisted)
        """
        with PerformanceLogger(logger, f"apply_block({block.height})", threshold_ms=1000):
            with self.db.transaction() as session:
                self._insert_block(session, block)

                deltas: Dict[str, int] = defaultdict(int)
                seen_tx_ids = set()
                spent_in_block = set()

                for position, tx in enumerate(block.transactions):
                    if tx.id in seen_tx_ids:
                        raise DuplicateTransactionError(
                            f"Transaction {tx.id} appears twice in block {block.height}",
                            code="DUPLICATE_TXID",
                            details={"tx_id": tx.id, "height": block.height}
                        )
                    seen_tx_ids.add(tx.id)

                    self._insert_transaction(session, block.height, position, tx.id)

                    for inp in tx.inputs:
                        spent = self._spend_output(session, inp.utxo_key, tx.id, block.height, spent_in_block)
                        deltas[spent.address] -= spent.value

                    for index, output in enumerate(tx.outputs):
                        session.add(OutputORM(
                            tx_id=tx.id,
                            output_index=index,
                            address=output.address,
                            value=output.value,
                            is_spent=False,
                            block_height=block.height,
                        ))
                        deltas[output.address] += output.value

                balances = self._apply_deltas(session, deltas, block.height)

                self.snapshots.record(session, block.height, balances)
                self.snapshots.prune(session)

        logger.info(
            "Block applied",
            extra_data={
                "height": block.height,
                "block_id": block.id[:16] + "...",
                "tx_count": len(block.transactions),
                "addresses": len(balances),
            }
        )

        return balances

    def _insert_block(self, session: Session, block: Block) -> None:
        session.add(BlockORM(id=block.id, height=block.height, tx_count=len(block.transactions)))
        try:
            session.flush()
        except IntegrityError as e:
            raise DuplicateHeightError(
                f"Block at height {block.height} already exists",
                code="DUPLICATE_HEIGHT",
                details={"height": block.height}
            ) from e

    def _insert_transaction(self, session: Session, height: int, position: int, tx_id: str) -> None:
        session.add(TransactionORM(id=tx_id, block_height=height, position=position))
        try:
            session.flush()
        except IntegrityError as e:
            raise DuplicateTransactionError(
                f"Transaction {tx_id} already recorded",
                code="DUPLICATE_TXID",
                details={"tx_id": tx_id}
            ) from e

    def _spend_output(
        self,
        session: Session,
        key: UTXOKey,
        spender_tx_id: str,
        height: int,
        spent_in_block: set,
    ) -> OutputORM:
        if key in spent_in_block:
            raise UnresolvedInputError(
                f"Input {key} spends an output already consumed in this block",
                code="DOUBLE_SPEND",
                details={"tx_id": key.tx_id, "index": key.index, "spender": spender_tx_id}
            )

        output = session.execute(
            select(OutputORM)
            .where(OutputORM.tx_id == key.tx_id, OutputORM.output_index == key.index)
            .with_for_update()
        ).scalar_one_or_none()

        if output is None or output.is_spent:
            raise UnresolvedInputError(
                f"Input {key} does not reference an unspent output",
                code="UNRESOLVED_INPUT",
                details={"tx_id": key.tx_id, "index": key.index, "spender": spender_tx_id}
            )

        output.is_spent = True
        output.spent_by_tx_id = spender_tx_id
        output.spent_at_height = height
        spent_in_block.add(key)
        return output

    def _apply_deltas(self, session: Session, deltas: Dict[str, int], height: int) -> Dict[str, int]:
        balances: Dict[str, int] = {}

        for address in sorted(deltas):
            row = session.get(BalanceORM, address, with_for_update=True)
            current = row.balance if row is not None else 0
            new_balance = current + deltas[address]

            if new_balance < 0:
                raise DatabaseCorruptionError(
                    f"Balance of {address} would become negative",
                    code="NEGATIVE_BALANCE",
                    details={"address": address, "balance": current, "delta": deltas[address]}
                )

            if new_balance > MAX_AMOUNT:
                raise InvalidBalanceError(
                    f"Balance of {address} would exceed the maximum amount",
                    code="BALANCE_OVERFLOW",
                    details={"address": address, "balance": str(current), "delta": str(deltas[address])}
                )

            write_balance(session, address, new_balance, height)
            balances[address] = new_balance

        session.flush()
        return balances


# ============================================================================
# EXPORT
# ============================================================================

__all__ = [
    "LedgerStore",
    "query_current_height",
    "query_unspent_sums",
    "write_balance",
]
