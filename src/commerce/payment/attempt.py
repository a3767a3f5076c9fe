"""PaymentAttempt aggregate (Event Sourced).

One attempt per gateway intent. An attempt only changes through
reconciliation against gateway-reported status:

    requires_payment → succeeded (terminal)
    requires_payment → failed → succeeded (customer retried on the same intent)
    requires_payment | failed → canceled (terminal)
    requires_payment | failed → superseded (a newer attempt replaced it)

The "already succeeded?" check and the flip happen in the same aggregate
write, guarded by the event store's expected version, so two reconciliation
sources racing on one intent cannot both flip it.
"""

from datetime import UTC, datetime
from enum import Enum

from protean import apply
from protean.fields import DateTime, Float, Identifier, String

from commerce.domain import commerce
from commerce.errors import PaymentReconciliationConflictError
from commerce.payment.events import (
    PaymentAttemptFailed,
    PaymentAttemptOpened,
    PaymentAttemptSucceeded,
    PaymentAttemptSuperseded,
)


class AttemptStatus(Enum):
    REQUIRES_PAYMENT = "requires_payment"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    SUPERSEDED = "superseded"


# Gateway statuses that carry an outcome. Anything else (processing,
# requires_action...) is progress we do not record.
OUTCOME_STATUSES = {AttemptStatus.SUCCEEDED, AttemptStatus.FAILED, AttemptStatus.CANCELED}


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


@commerce.aggregate(is_event_sourced=True)
class PaymentAttempt:
    order_id = Identifier(required=True)
    intent_id = String(required=True, max_length=255)
    client_secret = String(max_length=255)
    redirect_url = String(max_length=500)
    amount = Float(required=True, min_value=0.0)
    currency = String(max_length=3, required=True)
    status = String(choices=AttemptStatus, default=AttemptStatus.REQUIRES_PAYMENT.value)
    gateway_status_at = DateTime()
    last_event_id = String(max_length=255)
    failure_reason = String(max_length=500)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def open(cls, order_id, intent):
        """Record a freshly opened gateway intent."""
        attempt = cls._create_new()
        attempt.raise_(
            PaymentAttemptOpened(
                attempt_id=str(attempt.id),
                order_id=str(order_id),
                intent_id=intent.intent_id,
                client_secret=intent.client_secret,
                redirect_url=intent.redirect_url,
                amount=float(intent.amount),
                currency=intent.currency,
                opened_at=_as_utc(intent.updated_at) or datetime.now(UTC),
            )
        )
        return attempt

    def _conflict(self, incoming, reason):
        return PaymentReconciliationConflictError(self.intent_id, self.status, incoming.value, reason)

    def record_outcome(self, status, occurred_at=None, event_id=None, source="webhook", failure_reason=None) -> bool:
        """Apply a gateway-reported outcome.

        Returns True when the attempt changed, False for duplicates and
        non-outcome statuses. Raises PaymentReconciliationConflictError for
        events that must not change the attempt (stale, out of order, or
        contradicting a terminal state).
        """
        try:
            incoming = AttemptStatus(status)
        except ValueError:
            return False
        if incoming not in OUTCOME_STATUSES:
            return False

        current = AttemptStatus(self.status)
        occurred_at = _as_utc(occurred_at) or datetime.now(UTC)
        if event_id and event_id == self.last_event_id:
            return False
        if current == AttemptStatus.SUPERSEDED:
            raise self._conflict(incoming, "attempt was superseded by a newer attempt")
        if current == AttemptStatus.SUCCEEDED:
            if incoming == AttemptStatus.SUCCEEDED:
                return False
            raise self._conflict(incoming, "attempt already succeeded")
        if current == AttemptStatus.CANCELED:
            if incoming == AttemptStatus.CANCELED:
                return False
            raise self._conflict(incoming, "attempt was canceled")

        last_seen = _as_utc(self.gateway_status_at)
        if last_seen is not None and occurred_at < last_seen:
            raise self._conflict(incoming, "event is older than the last recorded gateway status")
        if incoming == current:
            return False

        if incoming == AttemptStatus.SUCCEEDED:
            self.raise_(
                PaymentAttemptSucceeded(
                    attempt_id=str(self.id),
                    order_id=str(self.order_id),
                    intent_id=self.intent_id,
                    gateway_status_at=occurred_at,
                    event_id=event_id,
                    source=source,
                )
            )
        else:
            self.raise_(
                PaymentAttemptFailed(
                    attempt_id=str(self.id),
                    order_id=str(self.order_id),
                    intent_id=self.intent_id,
                    status=incoming.value,
                    failure_reason=failure_reason,
                    gateway_status_at=occurred_at,
                    event_id=event_id,
                    source=source,
                )
            )
        return True

    def supersede(self) -> bool:
        if AttemptStatus(self.status) not in (AttemptStatus.REQUIRES_PAYMENT, AttemptStatus.FAILED):
            return False
        self.raise_(
            PaymentAttemptSuperseded(
                attempt_id=str(self.id),
                order_id=str(self.order_id),
                intent_id=self.intent_id,
                superseded_at=datetime.now(UTC),
            )
        )
        return True

    @property
    def succeeded(self) -> bool:
        return AttemptStatus(self.status) == AttemptStatus.SUCCEEDED

    # -------------------------------------------------------------------
    # @apply methods
    # -------------------------------------------------------------------
    @apply
    def _on_opened(self, event: PaymentAttemptOpened):
        self.id = event.attempt_id
        self.order_id = event.order_id
        self.intent_id = event.intent_id
        self.client_secret = event.client_secret
        self.redirect_url = event.redirect_url
        self.amount = event.amount
        self.currency = event.currency
        self.status = AttemptStatus.REQUIRES_PAYMENT.value
        self.created_at = event.opened_at
        self.updated_at = event.opened_at

    @apply
    def _on_succeeded(self, event: PaymentAttemptSucceeded):
        self.status = AttemptStatus.SUCCEEDED.value
        self.gateway_status_at = event.gateway_status_at
        self.last_event_id = event.event_id
        self.failure_reason = None
        self.updated_at = event.gateway_status_at

    @apply
    def _on_failed(self, event: PaymentAttemptFailed):
        self.status = event.status
        self.gateway_status_at = event.gateway_status_at
        self.last_event_id = event.event_id
        self.failure_reason = event.failure_reason
        self.updated_at = event.gateway_status_at

    @apply
    def _on_superseded(self, event: PaymentAttemptSuperseded):
        self.status = AttemptStatus.SUPERSEDED.value
        self.updated_at = event.superseded_at
