"""
BlockLedger - Custom Exceptions
=================================
Exception hierarchy for granular ledger error handling.

Families:
- ValidationError: block rejected, caller fixes input and resubmits
- ConflictError: concurrent writer won, caller re-reads height and retries
- RangeError: rollback target out of bounds
- StorageError: persistence failure, transaction aborted in full
"""

from typing import Optional, Any


# ============================================================================
# BASE EXCEPTION
# ============================================================================

class LedgerException(Exception):
    """
    Base exception for every BlockLedger error.

    Attributes:
        message (str): Error message
        code (str): Error code (e.g. "INVALID_HEIGHT")
        details (dict): Additional details
        retryable (bool): Whether the same request may succeed on retry
    """

    retryable: bool = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Serialize exception for API/logging"""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            return f"[{self.code}] {self.message} | Details: {self.details}"
        return f"[{self.code}] {self.message}"


# ============================================================================
# CONFIGURATION ERRORS
# ============================================================================

class ConfigError(LedgerException):
    """System configuration error"""
    pass


class InvalidConfigError(ConfigError):
    """Invalid configuration"""
    pass


# ============================================================================
# VALIDATION ERRORS
# ============================================================================

class ValidationError(LedgerException):
    """Block validation error (base)"""
    pass


class InvalidBlockError(ValidationError):
    """Malformed block, transaction or output"""
    pass


class InvalidHeightError(ValidationError):
    """Block height is not current height + 1"""
    pass


class InvalidBlockIdError(ValidationError):
    """Block id does not match its content hash"""
    pass


class InvalidBalanceError(ValidationError):
    """Inputs and outputs do not balance, or an input cannot be resolved"""
    pass


class UnresolvedInputError(InvalidBalanceError):
    """Input references a missing or already spent output"""
    pass


class DuplicateTransactionError(ValidationError):
    """Transaction id already recorded in the ledger"""
    pass


# ============================================================================
# CONFLICT ERRORS
# ============================================================================

class ConflictError(LedgerException):
    """Write conflict with a concurrent writer (base)"""

    retryable = True


class DuplicateHeightError(ConflictError):
    """A block at this height already exists"""
    pass


class SerializationConflictError(ConflictError):
    """Backend aborted the transaction on a serialization failure"""
    pass


# ============================================================================
# RANGE ERRORS
# ============================================================================

class RangeError(LedgerException):
    """Rollback target outside the allowed range (base)"""
    pass


class InvalidRollbackHeightError(RangeError):
    """Rollback target outside [0, current height]"""
    pass


class RollbackTooFarError(RangeError):
    """Rollback target older than the retention window"""
    pass


# ============================================================================
# STORAGE ERRORS
# ============================================================================

class StorageError(LedgerException):
    """Storage/database error"""
    pass


class DatabaseError(StorageError):
    """Generic database error"""
    pass


class DatabaseConnectionError(DatabaseError):
    """Database connection error"""
    pass


class DatabaseCorruptionError(DatabaseError):
    """Persisted state violates a ledger invariant"""
    pass


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def format_validation_error(
    field: str,
    value: Any,
    expected: str,
    code: Optional[str] = None
) -> InvalidBlockError:
    """
    Build a formatted InvalidBlockError.

    Args:
        field: Name of the invalid field
        value: Received value
        expected: Expected value/type
        code: Custom error code

    Returns:
        InvalidBlockError: Formatted exception

    Example:
        >>> raise format_validation_error("value", -100, "non-negative integer")
    """
    return InvalidBlockError(
        message=f"Invalid field '{field}': expected {expected}, got {value!r}",
        code=code or "VALIDATION_FAILED",
        details={"field": field, "value": repr(value), "expected": expected}
    )


# ============================================================================
# EXPORT ALL
# ============================================================================

__all__ = [
    # Base
    "LedgerException",

    # Config
    "ConfigError",
    "InvalidConfigError",

    # Validation
    "ValidationError",
    "InvalidBlockError",
    "InvalidHeightError",
    "InvalidBlockIdError",
    "InvalidBalanceError",
    "UnresolvedInputError",
    "DuplicateTransactionError",

    # Conflict
    "ConflictError",
    "DuplicateHeightError",
    "SerializationConflictError",

    # Range
    "RangeError",
    "InvalidRollbackHeightError",
    "RollbackTooFarError",

    # Storage
    "StorageError",
    "DatabaseError",
    "DatabaseConnectionError",
    "DatabaseCorruptionError",

    # Helpers
    "format_validation_error",
]
