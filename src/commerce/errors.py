"""Error taxonomy for the commerce core.

Every error carries the context needed to render a specific message to the
caller (order id, requested vs. current status or quantity). ``to_dict()``
is what the HTTP layer returns as the response body.
"""


class CommerceError(Exception):
    """Base class for all commerce errors."""

    code = "commerce_error"

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, **self.context}


class InvalidCartError(CommerceError):
    """The cart references unknown, inactive or malformed lines.

    Recoverable: the caller re-fetches the cart and tries again.
    """

    code = "invalid_cart"

    def __init__(self, problems: list[dict]) -> None:
        summary = "; ".join(f"{p.get('product_id') or '-'}: {p['reason']}" for p in problems)
        super().__init__(f"Cart cannot be checked out: {summary}", problems=problems)
        self.problems = problems


class OutOfStockAtCreationError(CommerceError):
    code = "out_of_stock"

    def __init__(self, product_id: str, requested: int, available: int) -> None:
        super().__init__(
            f"Only {available} unit(s) of {product_id} in stock, {requested} requested",
            product_id=product_id,
            requested=requested,
            available=available,
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class IllegalTransitionError(CommerceError):
    """A status change outside the transition table, or by the wrong actor."""

    code = "illegal_transition"

    def __init__(self, order_id: str, current: str, requested: str, actor: str, allowed: list[str] | None = None) -> None:
        super().__init__(
            f"Order {order_id} cannot move from {current} to {requested} as {actor}",
            order_id=order_id,
            current=current,
            requested=requested,
            actor=actor,
            allowed=allowed or [],
        )
        self.order_id = order_id
        self.current = current
        self.requested = requested
        self.actor = actor
        self.allowed = allowed or []


class InsufficientStockError(CommerceError):
    """Payment succeeded but stock could not be decremented.

    Never retried against the customer's money. The order is flagged for
    manual reconciliation instead.
    """

    code = "insufficient_stock"

    def __init__(self, order_id: str, product_id: str, requested: int, available: int) -> None:
        super().__init__(
            f"Order {order_id} needs {requested} unit(s) of {product_id}, only {available} left",
            order_id=order_id,
            product_id=product_id,
            requested=requested,
            available=available,
        )
        self.order_id = order_id
        self.product_id = product_id
        self.requested = requested
        self.available = available


class PaymentReconciliationConflictError(CommerceError):
    """A duplicate, stale or out-of-order gateway event. Absorbed and logged."""

    code = "payment_reconciliation_conflict"

    def __init__(self, intent_id: str, attempt_status: str, incoming_status: str, reason: str) -> None:
        super().__init__(
            f"Ignoring {incoming_status} for intent {intent_id} ({attempt_status}): {reason}",
            intent_id=intent_id,
            attempt_status=attempt_status,
            incoming_status=incoming_status,
            reason=reason,
        )
        self.intent_id = intent_id
        self.attempt_status = attempt_status
        self.incoming_status = incoming_status
        self.reason = reason


class StorageConflictError(CommerceError):
    """Optimistic-lock or row-claim contention. Retried with backoff before surfacing."""

    code = "storage_conflict"

    def __init__(self, resource: str, key: str, detail: str = "concurrent modification") -> None:
        super().__init__(f"{resource} {key}: {detail}", resource=resource, key=key)
        self.resource = resource
        self.key = key


class UnknownProductError(CommerceError):
    code = "unknown_product"

    def __init__(self, product_id: str) -> None:
        super().__init__(f"Product {product_id} does not exist", product_id=product_id)
        self.product_id = product_id
