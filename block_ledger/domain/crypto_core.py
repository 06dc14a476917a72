"""
BlockLedger - Hashing Primitives
==================================
Content-addressed identity for blocks.

Block id = SHA-256 over the UTF-8 text of the decimal height followed by
the concatenated transaction ids, rendered as lowercase hex.
"""

import hashlib
import hmac
from typing import Iterable


def compute_sha256(data: bytes) -> bytes:
    """
    Compute SHA-256 digest.

    Examples:
        >>> compute_sha256(b"").hex()
        'e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855'
    """
    return hashlib.sha256(data).digest()


def compute_sha256_hex(data: bytes) -> str:
    """SHA-256 digest as lowercase hex"""
    return compute_sha256(data).hex()


def block_id_preimage(height: int, tx_ids: Iterable[str]) -> bytes:
    """Bytes hashed into a block id"""
    return (str(height) + "".join(tx_ids)).encode("utf-8")


def compute_block_id(height: int, tx_ids: Iterable[str]) -> str:
    """
    Compute the content-addressed block id.

    Args:
        height: Block height
        tx_ids: Transaction ids in block order

    Returns:
        str: 64 lowercase hex characters

    Examples:
        >>> compute_block_id(1, ["tx1"]) == compute_sha256_hex(b"1tx1")
        True
    """
    return compute_sha256_hex(block_id_preimage(height, tx_ids))


def ids_match(expected: str, actual: str) -> bool:
    """Exact id comparison, constant time"""
    return hmac.compare_digest(expected.encode("utf-8"), actual.encode("utf-8"))


__all__ = [
    "compute_sha256",
    "compute_sha256_hex",
    "block_id_preimage",
    "compute_block_id",
    "ids_match",
]
