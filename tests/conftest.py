"""
BlockLedger - Pytest Configuration
====================================
Fixtures for testing.
"""

import pytest
from pathlib import Path
import tempfile
import shutil
from typing import List

# Internal imports
from block_ledger.config import get_test_config
from block_ledger.domain.models import Block
from block_ledger.domain.validation import BlockValidator
from block_ledger.logging_setup import AuditLogger
from block_ledger.services.ledger_service import LedgerService
from block_ledger.storage.db import LedgerDatabase
from block_ledger.storage.ledger_store import LedgerStore
from block_ledger.storage.rollback import RollbackEngine
from block_ledger.storage.snapshots import SnapshotManager

from helpers import ChainBuilder, coinbase, transfer


# ============================================================================
# CONFIGURATION FIXTURES
# ============================================================================

@pytest.fixture
def test_config():
    """Test configuration (in-memory SQLite, window 2000)"""
    return get_test_config()


@pytest.fixture
def small_window_config():
    """Test configuration with a 5-block rollback window"""
    return get_test_config(rollback_window=5)


@pytest.fixture
def temp_data_dir():
    """Temporary data directory"""
    temp_dir = Path(tempfile.mkdtemp())
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


# ============================================================================
# DATABASE FIXTURES
# ============================================================================

@pytest.fixture
def database(test_config):
    """In-memory database with schema"""
    db = LedgerDatabase(test_config)
    db.create_tables()
    yield db
    db.close()


@pytest.fixture
def file_database(temp_data_dir):
    """File-backed SQLite database with schema"""
    config = get_test_config(database_url=f"sqlite:///{temp_data_dir / 'ledger.db'}")
    db = LedgerDatabase(config)
    db.create_tables()
    yield db
    db.close()


# ============================================================================
# LEDGER FIXTURES
# ============================================================================

@pytest.fixture
def snapshots(test_config):
    return SnapshotManager(test_config.rollback_window)


@pytest.fixture
def store(database, snapshots):
    return LedgerStore(database, snapshots)


@pytest.fixture
def validator(store):
    return BlockValidator(store)


@pytest.fixture
def rollback_engine(database, snapshots, test_config):
    return RollbackEngine(database, snapshots, test_config.rollback_window)


@pytest.fixture
def service(test_config):
    """LedgerService on an in-memory database"""
    svc = LedgerService.create(test_config, audit_logger=AuditLogger())
    yield svc
    svc.close()


@pytest.fixture
def small_window_service(small_window_config):
    """LedgerService with a 5-block rollback window"""
    svc = LedgerService.create(small_window_config, audit_logger=AuditLogger())
    yield svc
    svc.close()


@pytest.fixture
def file_service(temp_data_dir):
    """LedgerService on a file-backed SQLite database"""
    config = get_test_config(database_url=f"sqlite:///{temp_data_dir / 'service.db'}")
    svc = LedgerService.create(config, audit_logger=AuditLogger())
    yield svc
    svc.close()


# ============================================================================
# BLOCK BUILDING FIXTURES
# ============================================================================

@pytest.fixture
def chain(service):
    return ChainBuilder(service)


@pytest.fixture
def small_chain(small_window_service):
    return ChainBuilder(small_window_service)


@pytest.fixture
def scenario_blocks() -> List[Block]:
    """Block 1 issues 10 to addr1, block 2 splits it into 4 + 6"""
    return [
        Block.create(1, [coinbase("tx1", ("addr1", 10))]),
        Block.create(2, [transfer("tx2", [("tx1", 0)], [("addr2", 4), ("addr3", 6)])]),
    ]
