"""Map commerce errors to HTTP responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from commerce.errors import (
    CommerceError,
    IllegalTransitionError,
    InsufficientStockError,
    InvalidCartError,
    OutOfStockAtCreationError,
    PaymentReconciliationConflictError,
    StorageConflictError,
    UnknownProductError,
)
from commerce.payment.gateway.port import GatewayError

logger = structlog.get_logger(__name__)

STATUS_CODES = {
    InvalidCartError: 400,
    UnknownProductError: 404,
    OutOfStockAtCreationError: 409,
    IllegalTransitionError: 409,
    InsufficientStockError: 409,
    PaymentReconciliationConflictError: 409,
    StorageConflictError: 503,
}


async def commerce_error_handler(request: Request, exc: CommerceError) -> JSONResponse:
    status_code = STATUS_CODES.get(type(exc), 400)
    logger.info("Request failed", path=request.url.path, status_code=status_code, error=exc.code)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    logger.warning("Payment gateway error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=502, content={"error": "gateway_error", "message": str(exc)})


def register_error_handlers(app: FastAPI) -> None:
    """Protean's ValidationError/ObjectNotFoundError handlers plus the commerce taxonomy."""
    register_exception_handlers(app)
    app.add_exception_handler(CommerceError, commerce_error_handler)
    app.add_exception_handler(GatewayError, gateway_error_handler)
