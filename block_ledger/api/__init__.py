"""
BlockLedger - API Package
===========================
REST API for ledger interaction.
"""

from block_ledger.api.rest_api import create_app

__all__ = [
    "create_app",
]
