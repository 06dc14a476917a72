"""
BlockLedger - Model Tests
===========================
Unit tests for domain models and hashing.
"""

import hashlib
from decimal import Decimal

import pytest

from block_ledger.constants import MAX_AMOUNT, parse_amount, to_base_units, validate_amount
from block_ledger.domain.crypto_core import compute_block_id, ids_match
from block_ledger.domain.models import Block, Transaction, TxInput, TxOutput, UTXOKey
from block_ledger.errors import InvalidBlockError

from helpers import coinbase, transfer


class TestAmounts:
    """Test Amount helpers"""

    def test_validate_amount_accepts_ints_in_range(self):
        assert validate_amount(0)
        assert validate_amount(10)
        assert validate_amount(MAX_AMOUNT)

    def test_validate_amount_rejects_other_types(self):
        assert not validate_amount(-1)
        assert not validate_amount(MAX_AMOUNT + 1)
        assert not validate_amount(1.0)
        assert not validate_amount(True)
        assert not validate_amount("10")

    def test_parse_amount_accepts_digit_strings(self):
        assert parse_amount("42") == 42
        assert parse_amount(7) == 7

    @pytest.mark.parametrize("raw", ["1.5", "-3", "", "abc", 2.0, False, None])
    def test_parse_amount_rejects_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_amount(raw)


class TestCoinUnits:
    """Test coin to base unit conversion"""

    def test_whole_and_fractional_coins(self):
        assert to_base_units(1) == 100_000_000
        assert to_base_units("0.5") == 50_000_000
        assert to_base_units("0.00000001") == 1
        assert to_base_units(Decimal("21000000")) == 2_100_000_000_000_000
        assert to_base_units(" 0.1 ") == 10_000_000

    @pytest.mark.parametrize("raw", ["0.000000001", "-1", "abc", "NaN", "Infinity", "1e999999999", 0.5, True, None])
    def test_rejects_inexact_or_invalid(self, raw):
        with pytest.raises(ValueError):
            to_base_units(raw)

    def test_rejects_out_of_range(self):
        with pytest.raises(ValueError):
            to_base_units("92233720369")


class TestBlockId:
    """Test content-addressed block ids"""

    def test_block_id_is_sha256_of_height_and_tx_ids(self):
        expected = hashlib.sha256(b"3txAtxB").hexdigest()
        assert compute_block_id(3, ["txA", "txB"]) == expected

    def test_empty_block_id_hashes_height_only(self):
        assert compute_block_id(5, []) == hashlib.sha256(b"5").hexdigest()

    def test_block_id_depends_on_order(self):
        assert compute_block_id(1, ["a", "b"]) != compute_block_id(1, ["b", "a"])

    def test_ids_match(self):
        block_id = compute_block_id(1, ["tx1"])
        assert ids_match(block_id, block_id)
        assert not ids_match(block_id, block_id.upper())


class TestModels:
    """Test model construction and wire form"""

    def test_block_create_has_valid_id(self):
        block = Block.create(1, [coinbase("tx1", ("addr1", 10))])
        assert block.has_valid_id()
        assert len(block.id) == 64

    def test_mutated_tx_id_breaks_identity(self):
        block = Block.create(1, [coinbase("tx1", ("addr1", 10))])
        tampered = Block(id=block.id, height=1, transactions=[coinbase("tx1x", ("addr1", 10))])
        assert not tampered.has_valid_id()

    def test_block_height_must_be_positive(self):
        with pytest.raises(InvalidBlockError):
            Block(id="x", height=0, transactions=[])

    def test_output_rejects_float_value(self):
        with pytest.raises(InvalidBlockError):
            TxOutput("addr1", 1.5)

    def test_output_rejects_empty_address(self):
        with pytest.raises(InvalidBlockError):
            TxOutput("", 1)

    def test_input_rejects_negative_index(self):
        with pytest.raises(InvalidBlockError):
            TxInput("tx1", -1)

    def test_coinbase_detection(self):
        assert coinbase("cb", ("a", 1)).is_coinbase()
        assert not transfer("t", [("cb", 0)], [("b", 1)]).is_coinbase()

    def test_utxo_key_from_input(self):
        assert TxInput("tx1", 2).utxo_key == UTXOKey("tx1", 2)
        assert str(UTXOKey("tx1", 2)) == "tx1:2"

    def test_block_from_dict(self):
        data = {
            "id": compute_block_id(2, ["tx2"]),
            "height": 2,
            "transactions": [{
                "id": "tx2",
                "inputs": [{"txId": "tx1", "index": 0}],
                "outputs": [{"address": "addr2", "value": "4"}, {"address": "addr3", "value": 6}],
            }],
        }
        block = Block.from_dict(data)

        assert block.has_valid_id()
        tx = block.transactions[0]
        assert tx.inputs[0] == TxInput("tx1", 0)
        assert [out.value for out in tx.outputs] == [4, 6]
        assert block.to_dict()["transactions"][0]["inputs"] == [{"txId": "tx1", "index": 0}]

    def test_from_dict_missing_fields(self):
        with pytest.raises(InvalidBlockError) as exc_info:
            Block.from_dict({"id": "x", "height": 1})
        assert exc_info.value.code == "MALFORMED_PAYLOAD"

    def test_from_dict_non_list_transactions(self):
        with pytest.raises(InvalidBlockError):
            Block.from_dict({"id": "x", "height": 1, "transactions": "tx1"})

    def test_transaction_total_output_value(self):
        tx = coinbase("cb", ("a", 3), ("b", 4))
        assert tx.total_output_value() == 7
        assert Transaction("t", [], []).total_output_value() == 0
