"""
BlockLedger - Core Constants
==============================
Immutable ledger constants and Amount helpers.

Amounts are plain Python ints in the smallest unit. No floating point is
accepted anywhere in ledger math.
"""

from decimal import Decimal, InvalidOperation
from typing import Final, Any, Union


# ============================================================================
# PROJECT IDENTIFICATION
# ============================================================================

LEDGER_NAME: Final[str] = "BlockLedger"
SOFTWARE_VERSION: Final[str] = "1.0.0"


# ============================================================================
# AMOUNTS
# ============================================================================

# Values are stored in 64-bit signed integer columns
MIN_AMOUNT: Final[int] = 0
MAX_AMOUNT: Final[int] = 2**63 - 1


def validate_amount(amount: Any) -> bool:
    """
    Check that a value is a valid Amount.

    Args:
        amount: Candidate value

    Returns:
        bool: True for an int within [MIN_AMOUNT, MAX_AMOUNT]

    Examples:
        >>> validate_amount(10)
        True
        >>> validate_amount(1.5)
        False
        >>> validate_amount(True)
        False
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        return False
    return MIN_AMOUNT <= amount <= MAX_AMOUNT


def parse_amount(value: Any) -> int:
    """
    Parse a wire amount: an int or a string of decimal digits.

    Args:
        value: Raw value from JSON/CLI

    Returns:
        int: Amount in the smallest unit

    Raises:
        ValueError: For floats, bools, signs, fractions or out-of-range values

    Examples:
        >>> parse_amount("42")
        42
        >>> parse_amount(7)
        7
    """
    if isinstance(value, str):
        text = value.strip()
        if not text.isdigit():
            raise ValueError(f"Amount must be a non-negative integer string, got {value!r}")
        amount = int(text)
    elif isinstance(value, int) and not isinstance(value, bool):
        amount = value
    else:
        raise ValueError(f"Amount must be an integer, got {type(value).__name__}")

    if not validate_amount(amount):
        raise ValueError(f"Amount out of range: {amount}")

    return amount


# 1 coin = 10^8 base units (satoshi-style)
COIN_DECIMALS: Final[int] = 8
BASE_UNITS_PER_COIN: Final[int] = 10**COIN_DECIMALS


def to_base_units(value: Union[int, str, Decimal]) -> int:
    """
    Convert a coin amount to integer base units, exactly.

    Accepts ints, decimal strings and Decimal; floats are rejected.

    Raises:
        ValueError: Negative, non-numeric, finer than 1 base unit, or out
            of range

    Examples:
        >>> to_base_units("0.5")
        50000000
        >>> to_base_units(1)
        100000000
        >>> to_base_units("0.00000001")
        1
    """
    if isinstance(value, bool) or not isinstance(value, (int, str, Decimal)):
        raise ValueError(f"Coin amount must be an int, decimal string or Decimal, got {type(value).__name__}")

    try:
        coins = Decimal(value.strip() if isinstance(value, str) else value)
    except InvalidOperation as e:
        raise ValueError(f"Invalid coin amount: {value!r}") from e

    if not coins.is_finite() or coins < 0:
        raise ValueError(f"Coin amount must be a non-negative number, got {value!r}")

    try:
        units = coins.scaleb(COIN_DECIMALS)
    except ArithmeticError as e:
        raise ValueError(f"Coin amount out of range: {value!r}") from e

    if units != units.to_integral_value():
        raise ValueError(f"Coin amount {value!r} has more than {COIN_DECIMALS} decimal places")

    amount = int(units)
    if not validate_amount(amount):
        raise ValueError(f"Amount out of range: {amount}")

    return amount


# ============================================================================
# BLOCK PARAMETERS
# ============================================================================

GENESIS_HEIGHT: Final[int] = 0  # Height of the empty ledger
FIRST_BLOCK_HEIGHT: Final[int] = 1

BLOCK_ID_HEX_LENGTH: Final[int] = 64  # SHA-256 hex digest


# ============================================================================
# ROLLBACK / SNAPSHOTS
# ============================================================================

# Max number of blocks that may be rolled back from the tip
DEFAULT_ROLLBACK_WINDOW: Final[int] = 2000

# Max bound parameters per IN (...) clause
SQL_IN_CHUNK_SIZE: Final[int] = 500


__all__ = [
    "LEDGER_NAME",
    "SOFTWARE_VERSION",
    "MIN_AMOUNT",
    "MAX_AMOUNT",
    "validate_amount",
    "parse_amount",
    "COIN_DECIMALS",
    "BASE_UNITS_PER_COIN",
    "to_base_units",
    "GENESIS_HEIGHT",
    "FIRST_BLOCK_HEIGHT",
    "BLOCK_ID_HEX_LENGTH",
    "DEFAULT_ROLLBACK_WINDOW",
    "SQL_IN_CHUNK_SIZE",
]
