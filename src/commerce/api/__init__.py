from commerce.api.errors import register_error_handlers
from commerce.api.routes import admin_router, inventory_router, order_router, payment_router

__all__ = [
    "admin_router",
    "inventory_router",
    "order_router",
    "payment_router",
    "register_error_handlers",
]
