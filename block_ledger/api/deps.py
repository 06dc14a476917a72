"""
BlockLedger - API Dependencies
================================
FastAPI dependency injection utilities.

The service lives on ``app.state``; there is no module-level handle.
"""

from fastapi import HTTPException, Request, status

from block_ledger.services.ledger_service import LedgerService
from block_ledger.config import LedgerSettings


def get_service(request: Request) -> LedgerService:
    """
    Get ledger service instance.

    Dependency for FastAPI routes.
    """
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Ledger not initialized"
        )
    return service


def get_config(request: Request) -> LedgerSettings:
    """Get configuration instance"""
    return request.app.state.config


__all__ = [
    'get_service',
    'get_config',
]
