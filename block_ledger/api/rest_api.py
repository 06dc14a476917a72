"""
BlockLedger - REST API
========================
HTTP surface of the ledger.

Endpoints:
- POST /blocks - Submit a block
- GET /balance/{address} - Address balance
- POST /rollback?height=N - Revert to a height
- GET /height - Current height
- GET /utxos/{address} - Unspent outputs of an address
- GET /health - Health check
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, Query, Request, status
from fastapi.responses import JSONResponse

# Internal imports
from block_ledger.api.deps import get_service
from block_ledger.api.middleware import RequestIDMiddleware, RequestLoggingMiddleware
from block_ledger.api.schemas import (
    RootResponse,
    HealthResponse,
    ErrorResponse,
    BlockRequest,
    BlockAcceptedResponse,
    BalanceResponse,
    HeightResponse,
    RollbackResponse,
    UTXOSchema,
    AddressUTXOsResponse,
)
from block_ledger.services.ledger_service import LedgerService
from block_ledger.errors import (
    LedgerException,
    ValidationError,
    RangeError,
    ConflictError,
)
from block_ledger.constants import LEDGER_NAME, SOFTWARE_VERSION
from block_ledger.logging_setup import get_logger
from block_ledger.config import LedgerSettings, get_settings


# ============================================================================
# MODULE LOGGER
# ============================================================================

logger = get_logger("api")


# ============================================================================
# ERROR MAPPING
# ============================================================================

def status_for(exc: LedgerException) -> int:
    """HTTP status for a ledger error"""
    if isinstance(exc, (ValidationError, RangeError)):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, ConflictError):
        return status.HTTP_409_CONFLICT
    return status.HTTP_500_INTERNAL_SERVER_ERROR


# Documented error bodies, as produced by LedgerException.to_dict()
ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse, "description": "Rejected by validation or range checks"},
    status.HTTP_409_CONFLICT: {"model": ErrorResponse, "description": "Concurrent writer conflict, retryable"},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse, "description": "Storage failure"},
}

READ_ERROR_RESPONSES = {
    status.HTTP_500_INTERNAL_SERVER_ERROR: ERROR_RESPONSES[status.HTTP_500_INTERNAL_SERVER_ERROR],
}


async def ledger_exception_handler(request: Request, exc: LedgerException) -> JSONResponse:
    status_code = status_for(exc)
    request_id = getattr(request.state, "request_id", "unknown")

    log = logger.error if status_code >= 500 else logger.warning
    log(
        f"[{request_id}] {request.method} {request.url.path} failed: {exc.code}",
        extra_data={"status": status_code, "error": exc.code, "reason": exc.message}
    )

    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=status_code, content=ErrorResponse(**exc.to_dict()).model_dump(), headers=headers)


# ============================================================================
# APP FACTORY
# ============================================================================

def create_app(
    service: Optional[LedgerService] = None,
    settings: Optional[LedgerSettings] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        service: Ledger service; built from settings when omitted
        settings: Configuration; cached settings when omitted

    Returns:
        FastAPI: Configured app

    Examples:
        >>> app = create_app(LedgerService.create(get_test_config()))
    """
    settings = settings or (service.config if service is not None else get_settings())
    owns_service = service is None
    if service is None:
        service = LedgerService.create(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("API started", extra_data={"height": service.get_current_height()})
        yield
        if owns_service:
            service.close()
        logger.info("API stopped")

    app = FastAPI(
        title=f"{LEDGER_NAME} API",
        description="REST API for the BlockLedger UTXO ledger",
        version=SOFTWARE_VERSION,
        lifespan=lifespan,
    )

    app.state.service = service
    app.state.config = settings

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(LedgerException, ledger_exception_handler)

    _register_routes(app)
    return app


# ============================================================================
# ROUTES
# ============================================================================

def _register_routes(app: FastAPI) -> None:

    @app.get("/", response_model=RootResponse)
    async def root():
        """Root endpoint"""
        return RootResponse(name=f"{LEDGER_NAME} API", version=SOFTWARE_VERSION, status="running")

    @app.get("/health", response_model=HealthResponse)
    def health(service: LedgerService = Depends(get_service)):
        """Health check"""
        return HealthResponse(status="ok", version=SOFTWARE_VERSION, height=service.get_current_height())

    @app.post("/blocks", response_model=BlockAcceptedResponse, responses=ERROR_RESPONSES)
    def submit_block(request: BlockRequest, service: LedgerService = Depends(get_service)):
        """Submit a block"""
        height = service.submit_block(request.to_block())
        return BlockAcceptedResponse(message="Block added successfully", height=height)

    @app.get("/balance/{address}", response_model=BalanceResponse, responses=READ_ERROR_RESPONSES)
    def get_balance(address: str, service: LedgerService = Depends(get_service)):
        """Get address balance"""
        return BalanceResponse(address=address, balance=str(service.get_balance(address)))

    @app.post("/rollback", response_model=RollbackResponse, responses=ERROR_RESPONSES)
    def rollback(
        height: int = Query(..., description="Target height"),
        service: LedgerService = Depends(get_service)
    ):
        """Roll back to a height"""
        new_height = service.rollback(height)
        return RollbackResponse(message="Rollback completed successfully", rolled_back_to=new_height)

    @app.get("/height", response_model=HeightResponse, responses=READ_ERROR_RESPONSES)
    def get_height(service: LedgerService = Depends(get_service)):
        """Get current height"""
        return HeightResponse(height=service.get_current_height())

    @app.get("/utxos/{address}", response_model=AddressUTXOsResponse, responses=READ_ERROR_RESPONSES)
    def get_utxos(address: str, service: LedgerService = Depends(get_service)):
        """Get unspent outputs of an address"""
        utxos = service.get_unspent_outputs(address)
        return AddressUTXOsResponse(
            address=address,
            utxos=[
                UTXOSchema(tx_id=key.tx_id, index=key.index, value=str(output.value))
                for key, output in utxos
            ],
            total=str(sum(output.value for _, output in utxos)),
            count=len(utxos),
        )


__all__ = [
    "create_app",
    "status_for",
]
