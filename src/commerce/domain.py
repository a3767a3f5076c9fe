"""Commerce core — order lifecycle and inventory consistency.

Turns a cart into a paid, fulfillable order while keeping stock counts,
payment state and order status consistent under concurrent access.
"""

from protean.domain import Domain

from commerce.utils.logging import configure_logging, get_logger

configure_logging()

logger = get_logger(__name__)

commerce = Domain(name="commerce")
