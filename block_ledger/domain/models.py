"""
BlockLedger - Core Domain Models
==================================
Fundamental ledger data structures.

Models:
- TxInput: reference to a prior unspent output
- TxOutput: address + integer value
- Transaction: ordered inputs and outputs
- Block: height + ordered transactions, content-addressed id
- UTXOKey: (transaction id, output index)

All structures are immutable (frozen). Wire form follows the submit API:
inputs use the keys ``txId`` / ``index``.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Dict, Any

from block_ledger.constants import validate_amount, parse_amount, FIRST_BLOCK_HEIGHT
from block_ledger.domain.crypto_core import compute_block_id
from block_ledger.errors import InvalidBlockError, format_validation_error


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _require_keys(data: Any, keys: tuple, what: str) -> None:
    if not isinstance(data, dict):
        raise InvalidBlockError(
            f"{what} must be an object, got {type(data).__name__}",
            code="MALFORMED_PAYLOAD"
        )
    missing = [key for key in keys if key not in data]
    if missing:
        raise InvalidBlockError(
            f"{what} missing fields: {', '.join(missing)}",
            code="MALFORMED_PAYLOAD",
            details={"missing": missing}
        )


def _require_list(value: Any, field: str) -> list:
    if not isinstance(value, list):
        raise format_validation_error(field, value, "array", "MALFORMED_PAYLOAD")
    return value


# ============================================================================
# UTXO KEY
# ============================================================================

@dataclass(frozen=True, order=True)
class UTXOKey:
    """
    Unique output identifier.

    Attributes:
        tx_id (str): Id of the transaction that created the output
        index (int): Position in that transaction's output list
    """

    tx_id: str
    index: int

    def __str__(self) -> str:
        return f"{self.tx_id}:{self.index}"


# ============================================================================
# TRANSACTION OUTPUT
# ============================================================================

@dataclass(frozen=True)
class TxOutput:
    """
    Transaction output.

    Attributes:
        address (str): Owner address
        value (int): Amount in the smallest unit

    Examples:
        >>> TxOutput(address="addr1", value=10).value
        10
    """

    address: str
    value: int

    def __post_init__(self):
        if not self.address or not isinstance(self.address, str):
            raise format_validation_error("address", self.address, "non-empty string", "INVALID_OUTPUT_ADDRESS")

        if not validate_amount(self.value):
            raise format_validation_error("value", self.value, "integer amount within range", "INVALID_OUTPUT_VALUE")

    def to_dict(self) -> Dict[str, Any]:
        return {"address": self.address, "value": self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TxOutput:
        _require_keys(data, ("address", "value"), "Output")
        try:
            value = parse_amount(data["value"])
        except ValueError as e:
            raise format_validation_error("value", data["value"], "integer amount within range", "INVALID_OUTPUT_VALUE") from e
        return cls(address=data["address"], value=value)


# ============================================================================
# TRANSACTION INPUT
# ============================================================================

@dataclass(frozen=True)
class TxInput:
    """
    Transaction input, referencing an output of an earlier transaction.

    Attributes:
        source_tx_id (str): Id of the transaction that created the output
        output_index (int): Index of the output being spent
    """

    source_tx_id: str
    output_index: int

    def __post_init__(self):
        if not self.source_tx_id or not isinstance(self.source_tx_id, str):
            raise format_validation_error("txId", self.source_tx_id, "non-empty string", "INVALID_INPUT_TXID")

        if not _is_int(self.output_index) or self.output_index < 0:
            raise format_validation_error("index", self.output_index, "non-negative integer", "INVALID_OUTPUT_INDEX")

    @property
    def utxo_key(self) -> UTXOKey:
        return UTXOKey(self.source_tx_id, self.output_index)

    def to_dict(self) -> Dict[str, Any]:
        return {"txId": self.source_tx_id, "index": self.output_index}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> TxInput:
        _require_keys(data, ("txId", "index"), "Input")
        return cls(source_tx_id=data["txId"], output_index=data["index"])


# ============================================================================
# TRANSACTION
# ============================================================================

@dataclass(frozen=True)
class Transaction:
    """
    Value transfer.

    A transaction with no inputs issues new value (coinbase-style); its
    outputs must sum to a positive amount. Otherwise the input sum must
    equal the output sum exactly.

    Attributes:
        id (str): Transaction id, unique across the ledger
        inputs (List[TxInput]): Spent outputs, in order
        outputs (List[TxOutput]): Created outputs, indexed by position
    """

    id: str
    inputs: List[TxInput]
    outputs: List[TxOutput]

    def __post_init__(self):
        if not self.id or not isinstance(self.id, str):
            raise format_validation_error("id", self.id, "non-empty string", "INVALID_TXID")

    def is_coinbase(self) -> bool:
        """True for issuance transactions (no inputs)"""
        return len(self.inputs) == 0

    def total_output_value(self) -> int:
        return sum(output.value for output in self.outputs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "inputs": [inp.to_dict() for inp in self.inputs],
            "outputs": [out.to_dict() for out in self.outputs],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Transaction:
        _require_keys(data, ("id", "inputs", "outputs"), "Transaction")
        return cls(
            id=data["id"],
            inputs=[TxInput.from_dict(inp) for inp in _require_list(data["inputs"], "inputs")],
            outputs=[TxOutput.from_dict(out) for out in _require_list(data["outputs"], "outputs")],
        )

    def __repr__(self) -> str:
        return f"Transaction(id={self.id}, inputs={len(self.inputs)}, outputs={len(self.outputs)})"


# ============================================================================
# BLOCK
# ============================================================================

@dataclass(frozen=True)
class Block:
    """
    Ledger block.

    Attributes:
        id (str): SHA-256 hex of height + concatenated transaction ids
        height (int): Position in the chain, starting at 1
        transactions (List[Transaction]): Ordered transactions

    Examples:
        >>> coinbase = Transaction("tx1", [], [TxOutput("addr1", 10)])
        >>> block = Block.create(1, [coinbase])
        >>> block.has_valid_id()
        True
    """

    id: str
    height: int
    transactions: List[Transaction]

    def __post_init__(self):
        if not isinstance(self.id, str):
            raise format_validation_error("id", self.id, "string", "INVALID_BLOCK_ID")

        if not _is_int(self.height) or self.height < FIRST_BLOCK_HEIGHT:
            raise format_validation_error("height", self.height, f"integer >= {FIRST_BLOCK_HEIGHT}", "INVALID_BLOCK_HEIGHT")

    @classmethod
    def create(cls, height: int, transactions: List[Transaction]) -> Block:
        """Build a block with its content-addressed id"""
        return cls(
            id=compute_block_id(height, [tx.id for tx in transactions]),
            height=height,
            transactions=list(transactions),
        )

    def compute_block_id(self) -> str:
        return compute_block_id(self.height, [tx.id for tx in self.transactions])

    def has_valid_id(self) -> bool:
        return self.compute_block_id() == self.id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "height": self.height,
            "transactions": [tx.to_dict() for tx in self.transactions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Block:
        _require_keys(data, ("id", "height", "transactions"), "Block")
        return cls(
            id=data["id"],
            height=data["height"],
            transactions=[
                Transaction.from_dict(tx)
                for tx in _require_list(data["transactions"], "transactions")
            ],
        )

    def __repr__(self) -> str:
        return f"Block(height={self.height}, id={self.id[:16]}..., txs={len(self.transactions)})"


# ============================================================================
# EXPORT
# ============================================================================

__all__ = [
    "UTXOKey",
    "TxInput",
    "TxOutput",
    "Transaction",
    "Block",
]
