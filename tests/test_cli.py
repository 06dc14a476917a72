"""
BlockLedger - CLI Tests
=========================
Command tests with typer's CliRunner.
"""

import json

import pytest
from typer.testing import CliRunner

from block_ledger.cli.main import app
from block_ledger.domain.crypto_core import compute_block_id
from block_ledger.domain.models import Block

from helpers import coinbase, transfer


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def cli(runner, temp_data_dir):
    """Invoke the CLI against a temp database"""
    url = f"sqlite:///{temp_data_dir / 'cli.db'}"
    env = {"BLOCKLEDGER_LOG_TO_FILE": "false", "BLOCKLEDGER_ROLLBACK_WINDOW": "2000"}

    def invoke(*args):
        return runner.invoke(app, ["--database-url", url, *args], env=env)

    return invoke


def write_block(directory, block: Block):
    path = directory / f"block{block.height}.json"
    path.write_text(json.dumps(block.to_dict()), encoding="utf-8")
    return path


class TestCommands:
    """Test CLI commands"""

    def test_init_db(self, cli):
        result = cli("init-db")
        assert result.exit_code == 0
        assert "Database initialized" in result.output

    def test_height_on_empty_ledger(self, cli):
        result = cli("height")
        assert result.exit_code == 0
        assert "Height: 0" in result.output

    def test_submit_balance_rollback(self, cli, temp_data_dir):
        first = Block.create(1, [coinbase("tx1", ("addr1", 10))])
        second = Block.create(2, [transfer("tx2", [("tx1", 0)], [("addr2", 4), ("addr3", 6)])])

        assert cli("submit", str(write_block(temp_data_dir, first))).exit_code == 0
        result = cli("submit", str(write_block(temp_data_dir, second)))
        assert result.exit_code == 0
        assert "height 2" in result.output

        assert "addr3: 6" in cli("balance", "addr3").output

        utxos = cli("utxos", "addr2")
        assert utxos.exit_code == 0
        assert "tx2" in utxos.output

        result = cli("rollback", "1")
        assert result.exit_code == 0
        assert "addr1: 10" in cli("balance", "addr1").output

        assert cli("verify").exit_code == 0

    def test_submit_invalid_block(self, cli, temp_data_dir):
        block = Block.create(4, [coinbase("tx1", ("addr1", 10))])
        result = cli("submit", str(write_block(temp_data_dir, block)))
        assert result.exit_code == 1
        assert "INVALID_HEIGHT" in result.output

    def test_submit_malformed_json(self, cli, temp_data_dir):
        path = temp_data_dir / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        assert cli("submit", str(path)).exit_code == 1

    def test_rollback_out_of_range(self, cli):
        result = cli("rollback", "5")
        assert result.exit_code == 1
        assert "INVALID_ROLLBACK_HEIGHT" in result.output

    def test_block_id(self, cli):
        result = cli("block-id", "2", "txA", "txB")
        assert result.exit_code == 0
        assert compute_block_id(2, ["txA", "txB"]) in result.output

    def test_empty_block_id(self, cli):
        result = cli("block-id", "1")
        assert compute_block_id(1, []) in result.output

    def test_utxos_empty(self, cli):
        result = cli("utxos", "nobody")
        assert result.exit_code == 0
        assert "No unspent outputs" in result.output

    def test_to_units(self, cli):
        result = cli("to-units", "0.5")
        assert result.exit_code == 0
        assert "50000000" in result.output

    def test_to_units_rejects_sub_unit_precision(self, cli):
        result = cli("to-units", "0.000000001")
        assert result.exit_code == 1
        assert "decimal places" in result.output

    def test_version(self, cli):
        result = cli("version")
        assert result.exit_code == 0
        assert "1.0.0" in result.output
