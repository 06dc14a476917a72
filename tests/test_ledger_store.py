"""
BlockLedger - Ledger Store Tests
==================================
Unit tests for block application and lookups.
"""

import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError

from block_ledger.domain.models import Block, UTXOKey, TxOutput
from block_ledger.errors import (
    DatabaseError,
    DuplicateHeightError,
    DuplicateTransactionError,
    UnresolvedInputError,
)
from block_ledger.storage.ledger_store import LedgerStore
from block_ledger.storage.models_orm import OutputORM, SnapshotORM, TransactionORM
from block_ledger.storage.snapshots import SnapshotManager

from helpers import coinbase, transfer


def table_counts(db):
    with db.read_session() as session:
        return {
            name: session.execute(select(func.count()).select_from(model)).scalar_one()
            for name, model in (
                ("transactions", TransactionORM),
                ("outputs", OutputORM),
                ("snapshots", SnapshotORM),
            )
        }


class TestApply:
    """Test LedgerStore.apply"""

    def test_empty_ledger(self, store):
        assert store.get_current_height() == 0
        assert store.get_balance("nobody") == 0
        assert store.get_block_id(1) is None

    def test_scenario_balances(self, store, scenario_blocks):
        store.apply(scenario_blocks[0])
        assert store.get_balance("addr1") == 10

        store.apply(scenario_blocks[1])
        assert store.get_current_height() == 2
        assert store.get_balance("addr1") == 0
        assert store.get_balance("addr2") == 4
        assert store.get_balance("addr3") == 6
        assert store.get_block_id(2) == scenario_blocks[1].id

    def test_apply_returns_touched_balances(self, store, scenario_blocks):
        store.apply(scenario_blocks[0])
        touched = store.apply(scenario_blocks[1])
        assert touched == {"addr1": 0, "addr2": 4, "addr3": 6}

    def test_zero_balance_rows_removed(self, store, scenario_blocks):
        for block in scenario_blocks:
            store.apply(block)
        assert "addr1" not in store.get_all_balances()

    def test_spent_outputs_kept_with_attribution(self, store, database, scenario_blocks):
        for block in scenario_blocks:
            store.apply(block)

        with database.read_session() as session:
            spent = session.get(OutputORM, ("tx1", 0))
            assert spent.is_spent
            assert spent.spent_by_tx_id == "tx2"
            assert spent.spent_at_height == 2

    def test_outputs_indexed_by_position(self, store, scenario_blocks):
        for block in scenario_blocks:
            store.apply(block)

        assert store.get_unspent_outputs("addr3") == [(UTXOKey("tx2", 1), TxOutput("addr3", 6))]
        assert store.count_unspent() == 2

    def test_resolve_unspent(self, store, scenario_blocks):
        for block in scenario_blocks:
            store.apply(block)

        resolved = store.resolve_unspent([UTXOKey("tx1", 0), UTXOKey("tx2", 0), UTXOKey("tx2", 9)])
        assert resolved == {UTXOKey("tx2", 0): TxOutput("addr2", 4)}
        assert store.resolve_unspent([]) == {}

    def test_snapshot_per_touched_address(self, store, database, scenario_blocks):
        for block in scenario_blocks:
            store.apply(block)

        with database.read_session() as session:
            assert store.snapshots.get_snapshot(session, 1, "addr1") == 10
            assert store.snapshots.get_snapshot(session, 2, "addr1") == 0
            assert store.snapshots.get_snapshot(session, 2, "addr2") == 4
            assert store.snapshots.get_snapshot(session, 1, "addr2") is None

    def test_empty_block(self, store):
        store.apply(Block.create(1, []))
        assert store.get_current_height() == 1

    def test_balances_match_unspent_outputs(self, store):
        store.apply(Block.create(1, [coinbase("cb1", ("a", 50), ("b", 20))]))
        store.apply(Block.create(2, [
            transfer("t1", [("cb1", 0)], [("b", 30), ("c", 20)]),
            coinbase("cb2", ("a", 5)),
        ]))
        store.apply(Block.create(3, [transfer("t2", [("t1", 0), ("cb1", 1)], [("a", 50)])]))

        assert store.find_balance_mismatches() == {}
        assert store.get_all_balances() == {"a": 55, "c": 20}


class TestApplyFailures:
    """Test atomicity of failed applies"""

    def test_duplicate_height(self, store, scenario_blocks):
        store.apply(scenario_blocks[0])
        other = Block.create(1, [coinbase("other", ("x", 1))])

        with pytest.raises(DuplicateHeightError):
            store.apply(other)
        assert store.get_balance("x") == 0

    def test_duplicate_transaction(self, store, scenario_blocks):
        store.apply(scenario_blocks[0])
        with pytest.raises(DuplicateTransactionError):
            store.apply(Block.create(2, [coinbase("tx1", ("x", 1))]))
        assert store.get_current_height() == 1

    def test_duplicate_transaction_within_block(self, store):
        block = Block.create(1, [coinbase("cb", ("x", 1)), coinbase("cb", ("y", 1))])
        with pytest.raises(DuplicateTransactionError):
            store.apply(block)
        assert store.get_current_height() == 0

    def test_unresolved_input_in_second_transaction(self, store, database, scenario_blocks):
        for block in scenario_blocks:
            store.apply(block)
        before = (store.get_all_balances(), table_counts(database))

        block = Block.create(3, [
            transfer("tx3", [("tx2", 0)], [("addr4", 4)]),
            transfer("tx4", [("missing", 0)], [("addr5", 1)]),
        ])
        with pytest.raises(UnresolvedInputError):
            store.apply(block)

        assert store.get_current_height() == 2
        assert (store.get_all_balances(), table_counts(database)) == before
        assert store.resolve_unspent([UTXOKey("tx2", 0)])

    def test_double_spend_within_block(self, store, scenario_blocks):
        for block in scenario_blocks:
            store.apply(block)

        block = Block.create(3, [
            transfer("tx3", [("tx2", 0)], [("addr4", 4)]),
            transfer("tx4", [("tx2", 0)], [("addr5", 4)]),
        ])
        with pytest.raises(UnresolvedInputError):
            store.apply(block)
        assert store.get_balance("addr4") == 0
        assert store.get_balance("addr2") == 4

    def test_driver_failure_in_prune(self, store, database, scenario_blocks, monkeypatch):
        store.apply(scenario_blocks[0])
        before = (store.get_all_balances(), table_counts(database))

        def failing_prune(session, window=None):
            raise OperationalError("DELETE FROM snapshots", {}, Exception("disk I/O error"))

        monkeypatch.setattr(store.snapshots, "prune", failing_prune)

        with pytest.raises(DatabaseError):
            store.apply(scenario_blocks[1])

        assert store.get_current_height() == 1
        assert store.get_block_id(2) is None
        assert (store.get_all_balances(), table_counts(database)) == before
        assert store.resolve_unspent([UTXOKey("tx1", 0)])

    def test_driver_failure_through_service(self, chain, monkeypatch):
        chain.submit(coinbase("cb1", ("a", 10)))
        before = chain.state()

        def failing_prune(session, window=None):
            raise OperationalError("DELETE FROM snapshots", {}, Exception("disk I/O error"))

        monkeypatch.setattr(chain.service.snapshots, "prune", failing_prune)

        with pytest.raises(DatabaseError):
            chain.submit(transfer("t1", [("cb1", 0)], [("b", 10)]))

        assert chain.state() == before
        assert chain.service.get_statistics()["blocks_applied"] == 1


class TestFileBackedStore:
    """Test store on a file database"""

    def test_state_survives_reopen(self, file_database, scenario_blocks):
        store = LedgerStore(file_database, SnapshotManager(2000))
        for block in scenario_blocks:
            store.apply(block)
        file_database.close()

        from block_ledger.storage.db import LedgerDatabase
        reopened = LedgerDatabase(file_database.config)
        try:
            store = LedgerStore(reopened, SnapshotManager(2000))
            assert store.get_current_height() == 2
            assert store.get_balance("addr3") == 6
        finally:
            reopened.close()
