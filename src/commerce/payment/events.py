"""Domain events for the PaymentAttempt aggregate."""

from protean.fields import DateTime, Float, Identifier, String

from commerce.domain import commerce


@commerce.event(part_of="PaymentAttempt")
class PaymentAttemptOpened:
    """A gateway intent was opened for the full order amount."""

    __version__ = 1

    attempt_id = Identifier(required=True)
    order_id = Identifier(required=True)
    intent_id = String(required=True)
    client_secret = String(required=True)
    redirect_url = String(max_length=500)
    amount = Float(required=True)
    currency = String(required=True)
    opened_at = DateTime(required=True)


@commerce.event(part_of="PaymentAttempt")
class PaymentAttemptSucceeded:
    __version__ = 1

    attempt_id = Identifier(required=True)
    order_id = Identifier(required=True)
    intent_id = String(required=True)
    gateway_status_at = DateTime(required=True)
    event_id = String()
    source = String(required=True)  # client_confirmation | webhook


@commerce.event(part_of="PaymentAttempt")
class PaymentAttemptFailed:
    """The gateway reported a failed or canceled payment."""

    __version__ = 1

    attempt_id = Identifier(required=True)
    order_id = Identifier(required=True)
    intent_id = String(required=True)
    status = String(required=True)  # failed | canceled
    failure_reason = String(max_length=500)
    gateway_status_at = DateTime(required=True)
    event_id = String()
    source = String(required=True)


@commerce.event(part_of="PaymentAttempt")
class PaymentAttemptSuperseded:
    """A newer attempt replaced this one. The attempt is kept for audit."""

    __version__ = 1

    attempt_id = Identifier(required=True)
    order_id = Identifier(required=True)
    intent_id = String(required=True)
    superseded_at = DateTime(required=True)
