"""Commerce FastAPI application.

Web server for checkout, payment reconciliation, order administration and
inventory. Commands are processed synchronously within each request.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the config overlay from domain.toml.
from commerce.domain import commerce  # noqa: E402
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

commerce.init()

_DOMAIN_PREFIXES = ("/orders", "/payments", "/inventory", "/admin")


def _resolve_domain(path: str):
    """Return the domain serving the given request path, or None."""
    if path.startswith(_DOMAIN_PREFIXES):
        return commerce
    return None


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Commerce API",
    description="Order lifecycle and inventory consistency",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the Protean domain context and bind request logging context."""
    from commerce.utils.logging import bind_request_context, clear_request_context

    domain = _resolve_domain(request.url.path)
    if domain is None:
        # Health check, docs
        return await call_next(request)

    bind_request_context(
        request_id=request.headers.get("x-request-id"),
        method=request.method,
        path=request.url.path,
    )
    try:
        with domain.domain_context():
            response = await call_next(request)
    finally:
        clear_request_context()
    return response


# ---------------------------------------------------------------------------
# Routers and error handlers
# ---------------------------------------------------------------------------
from commerce.api import (  # noqa: E402
    admin_router,
    inventory_router,
    order_router,
    payment_router,
    register_error_handlers,
)

app.include_router(order_router)
app.include_router(payment_router)
app.include_router(inventory_router)
app.include_router(admin_router)
register_error_handlers(app)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": commerce.name})
