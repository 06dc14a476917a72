"""
BlockLedger - Validation Tests
================================
Unit tests for BlockValidator.
"""

import pytest

from block_ledger.domain.models import Block
from block_ledger.errors import (
    InvalidHeightError,
    InvalidBlockIdError,
    InvalidBalanceError,
    UnresolvedInputError,
    DuplicateTransactionError,
    ValidationError,
)

from helpers import coinbase, transfer


@pytest.fixture
def funded_store(store, scenario_blocks):
    """Store holding the two scenario blocks"""
    for block in scenario_blocks:
        store.apply(block)
    return store


class TestHeightAndIdentity:
    """Test height continuity and identity checks"""

    def test_validate_height(self, validator):
        block = Block.create(1, [coinbase("cb", ("a", 1))])
        assert validator.validate_height(block, 0)
        assert not validator.validate_height(block, 1)

    def test_wrong_height_rejected(self, validator):
        block = Block.create(3, [coinbase("cb", ("a", 1))])
        with pytest.raises(InvalidHeightError) as exc_info:
            validator.validate_block(block, 0)
        assert exc_info.value.details == {"expected": 1, "got": 3}

    def test_validate_identity(self, validator):
        good = Block.create(1, [coinbase("cb", ("a", 1))])
        bad = Block(id="0" * 64, height=1, transactions=good.transactions)
        short = Block(id=good.id[:10], height=1, transactions=good.transactions)

        assert validator.validate_identity(good)
        assert not validator.validate_identity(bad)
        assert not validator.validate_identity(short)

    def test_mutated_tx_id_rejected(self, validator):
        good = Block.create(1, [coinbase("cb", ("a", 1))])
        tampered = Block(id=good.id, height=1, transactions=[coinbase("cb2", ("a", 1))])
        with pytest.raises(InvalidBlockIdError):
            validator.validate_block(tampered, 0)

    def test_height_checked_before_identity(self, validator):
        block = Block(id="0" * 64, height=7, transactions=[])
        with pytest.raises(InvalidHeightError):
            validator.validate_block(block, 0)

    def test_current_height_read_from_store(self, funded_store, validator):
        block = Block.create(3, [coinbase("cb3", ("a", 1))])
        validator.validate_block(block)


class TestBalance:
    """Test UTXO balance rules"""

    def test_positive_issuance_accepted(self, validator):
        assert validator.validate_balance([coinbase("cb", ("a", 1))])

    @pytest.mark.parametrize("outputs", [[], [("a", 0)], [("a", 0), ("b", 0)]])
    def test_non_positive_issuance_rejected(self, validator, outputs):
        assert not validator.validate_balance([coinbase("cb", *outputs)])

    def test_exact_balance_accepted(self, funded_store, validator):
        tx = transfer("tx3", [("tx2", 0)], [("addr4", 1), ("addr5", 3)])
        assert validator.validate_balance([tx])

    @pytest.mark.parametrize("value", [3, 5])
    def test_one_unit_imbalance_rejected(self, funded_store, validator, value):
        tx = transfer("tx3", [("tx2", 0)], [("addr4", value)])
        assert not validator.validate_balance([tx])

        block = Block.create(3, [tx])
        with pytest.raises(InvalidBalanceError) as exc_info:
            validator.validate_block(block, 2)
        assert exc_info.value.code == "BALANCE_MISMATCH"

    def test_spent_output_rejected(self, funded_store, validator):
        tx = transfer("tx3", [("tx1", 0)], [("addr4", 10)])
        with pytest.raises(UnresolvedInputError):
            validator.validate_block(Block.create(3, [tx]), 2)

    @pytest.mark.parametrize("reference", [("missing", 0), ("tx2", 5)])
    def test_unknown_output_rejected(self, funded_store, validator, reference):
        tx = transfer("tx3", [reference], [("addr4", 4)])
        assert not validator.validate_balance([tx])

    def test_in_block_double_spend_rejected(self, funded_store, validator):
        first = transfer("tx3", [("tx2", 0)], [("addr4", 4)])
        second = transfer("tx4", [("tx2", 0)], [("addr5", 4)])

        with pytest.raises(InvalidBalanceError) as exc_info:
            validator.validate_block(Block.create(3, [first, second]), 2)
        assert exc_info.value.code == "DOUBLE_SPEND"

    def test_same_input_twice_in_one_transaction(self, funded_store, validator):
        tx = transfer("tx3", [("tx2", 0), ("tx2", 0)], [("addr4", 8)])
        assert not validator.validate_balance([tx])

    def test_unresolved_input_is_balance_error(self):
        assert issubclass(UnresolvedInputError, InvalidBalanceError)
        assert issubclass(InvalidBalanceError, ValidationError)


class TestDuplicates:
    """Test transaction id uniqueness"""

    def test_duplicate_in_block(self, validator):
        block = Block.create(1, [coinbase("cb", ("a", 1)), coinbase("cb", ("b", 1))])
        with pytest.raises(DuplicateTransactionError):
            validator.validate_block(block, 0)

    def test_duplicate_of_recorded_transaction(self, funded_store, validator):
        block = Block.create(3, [coinbase("tx1", ("a", 1))])
        with pytest.raises(DuplicateTransactionError):
            validator.validate_block(block, 2)

    def test_validation_does_not_mutate(self, funded_store, validator):
        balances = funded_store.get_all_balances()
        tx = transfer("tx3", [("tx2", 0)], [("addr4", 4)])

        validator.validate_block(Block.create(3, [tx]), 2)

        assert funded_store.get_current_height() == 2
        assert funded_store.get_all_balances() == balances
