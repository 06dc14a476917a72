"""
BlockLedger - API Schemas
===========================
Pydantic models for API request/response validation.

Amounts travel as integers or decimal strings on the way in and as
decimal strings on the way out, so clients in languages without 64-bit
integers keep exact values.
"""

from typing import List, Union

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator

from block_ledger.constants import parse_amount
from block_ledger.domain.models import Block


# ============================================================================
# BASE SCHEMAS
# ============================================================================

class RootResponse(BaseModel):
    """Root endpoint response"""
    name: str = Field(..., description="Service name")
    version: str = Field(..., description="BlockLedger version")
    status: str = Field(..., description="Service status")


class HealthResponse(BaseModel):
    """Health check response"""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="BlockLedger version")
    height: int = Field(..., description="Current ledger height")


class ErrorResponse(BaseModel):
    """Error response"""
    error: str = Field(..., description="Error code")
    message: str = Field(..., description="Error message")
    details: dict = Field(default_factory=dict, description="Error details")


# ============================================================================
# BLOCK SCHEMAS
# ============================================================================

class TransactionInputSchema(BaseModel):
    """Transaction input schema"""
    model_config = ConfigDict(populate_by_name=True)

    tx_id: str = Field(..., alias="txId", min_length=1, description="Source transaction id")
    index: StrictInt = Field(..., ge=0, description="Source output index")


class TransactionOutputSchema(BaseModel):
    """Transaction output schema"""
    address: str = Field(..., min_length=1, description="Owner address")
    value: Union[StrictInt, str] = Field(..., description="Amount in the smallest unit")

    @field_validator("value")
    @classmethod
    def validate_value(cls, v):
        try:
            return parse_amount(v)
        except ValueError as e:
            raise ValueError(str(e))


class TransactionSchema(BaseModel):
    """Transaction schema"""
    id: str = Field(..., min_length=1, description="Transaction id")
    inputs: List[TransactionInputSchema] = Field(..., description="Spent outputs")
    outputs: List[TransactionOutputSchema] = Field(..., description="Created outputs")


class BlockRequest(BaseModel):
    """Block submission request"""
    id: str = Field(..., description="SHA-256 hex of height + transaction ids")
    height: StrictInt = Field(..., description="Block height")
    transactions: List[TransactionSchema] = Field(..., description="Ordered transactions")

    def to_block(self) -> Block:
        """Convert to the domain model"""
        return Block.from_dict(self.model_dump(by_alias=True))


class BlockAcceptedResponse(BaseModel):
    """Block accepted response"""
    message: str = Field(..., description="Confirmation")
    height: int = Field(..., description="Applied height")


# ============================================================================
# LEDGER SCHEMAS
# ============================================================================

class BalanceResponse(BaseModel):
    """Address balance response"""
    address: str = Field(..., description="Address")
    balance: str = Field(..., description="Balance in the smallest unit, decimal string")


class HeightResponse(BaseModel):
    """Current height response"""
    height: int = Field(..., description="Current ledger height")


class RollbackResponse(BaseModel):
    """Rollback response"""
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., description="Confirmation")
    rolled_back_to: int = Field(..., alias="rolledBackTo", description="New current height")


class UTXOSchema(BaseModel):
    """UTXO schema"""
    model_config = ConfigDict(populate_by_name=True)

    tx_id: str = Field(..., alias="txId", description="Transaction id")
    index: int = Field(..., description="Output index")
    value: str = Field(..., description="Amount, decimal string")


class AddressUTXOsResponse(BaseModel):
    """Address UTXOs response"""
    address: str = Field(..., description="Address")
    utxos: List[UTXOSchema] = Field(..., description="Unspent outputs")
    total: str = Field(..., description="Sum of values, decimal string")
    count: int = Field(..., description="Number of UTXOs")


__all__ = [
    "RootResponse",
    "HealthResponse",
    "ErrorResponse",
    "TransactionInputSchema",
    "TransactionOutputSchema",
    "TransactionSchema",
    "BlockRequest",
    "BlockAcceptedResponse",
    "BalanceResponse",
    "HeightResponse",
    "RollbackResponse",
    "UTXOSchema",
    "AddressUTXOsResponse",
]
