"""
BlockLedger - ORM Models
==========================
SQLAlchemy ORM models for the ledger tables.

Amounts are BigInteger everywhere; no floating point column exists.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    PrimaryKeyConstraint,
)
from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


Base = declarative_base()


class BlockORM(Base):
    """Block ORM model"""
    __tablename__ = 'blocks'

    id = Column(String(64), primary_key=True)
    height = Column(Integer, unique=True, nullable=False)
    tx_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class TransactionORM(Base):
    """Transaction ORM model"""
    __tablename__ = 'transactions'

    id = Column(String(256), primary_key=True)
    block_height = Column(Integer, ForeignKey('blocks.height'), nullable=False)
    position = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index('idx_transactions_block_height', 'block_height'),
    )


class OutputORM(Base):
    """
    Output ORM model.

    Spent outputs are kept as history with their spending attribution;
    only rollback deletes outputs.
    """
    __tablename__ = 'outputs'

    tx_id = Column(String(256), ForeignKey('transactions.id'), nullable=False)
    output_index = Column(Integer, nullable=False)
    address = Column(String(256), nullable=False)
    value = Column(BigInteger, nullable=False)
    is_spent = Column(Boolean, nullable=False, default=False)
    spent_by_tx_id = Column(String(256), nullable=True)
    block_height = Column(Integer, nullable=False)
    spent_at_height = Column(Integer, nullable=True)

    __table_args__ = (
        PrimaryKeyConstraint('tx_id', 'output_index'),
        Index('idx_outputs_address_spent', 'address', 'is_spent'),
        Index('idx_outputs_spent_by', 'spent_by_tx_id'),
        Index('idx_outputs_block_height', 'block_height'),
        Index('idx_outputs_spent_at_height', 'spent_at_height'),
    )


class BalanceORM(Base):
    """Running balance per address (rows only for non-zero balances)"""
    __tablename__ = 'balances'

    address = Column(String(256), primary_key=True)
    balance = Column(BigInteger, nullable=False)
    updated_height = Column(Integer, nullable=False)


class SnapshotORM(Base):
    """Balance of an address right after the block at ``height``"""
    __tablename__ = 'snapshots'

    height = Column(Integer, nullable=False)
    address = Column(String(256), nullable=False)
    balance = Column(BigInteger, nullable=False)

    __table_args__ = (
        PrimaryKeyConstraint('height', 'address'),
        Index('idx_snapshots_address_height', 'address', 'height'),
    )


__all__ = [
    'Base',
    'BlockORM',
    'TransactionORM',
    'OutputORM',
    'BalanceORM',
    'SnapshotORM',
]
