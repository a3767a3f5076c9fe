"""Order numbers: ORD-YYYYMMDD-NNNN, with a per-day sequence."""

from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError
from protean.fields import Integer, String
from protean.utils.globals import current_domain

from commerce.domain import commerce


@commerce.aggregate
class OrderSequence:
    """Last order number handed out on a given UTC day."""

    day = String(identifier=True, max_length=8)  # YYYYMMDD
    last_value = Integer(default=0, min_value=0)

    def next_value(self) -> int:
        self.last_value = (self.last_value or 0) + 1
        return self.last_value


def format_order_number(day: str, value: int) -> str:
    return f"ORD-{day}-{value:04d}"


def allocate_order_number(now: datetime | None = None) -> str:
    """Reserve the next order number for today.

    Runs inside the caller's unit of work, so the number is only consumed
    when the order itself is persisted.
    """
    day = (now or datetime.now(UTC)).strftime("%Y%m%d")
    repo = current_domain.repository_for(OrderSequence)
    try:
        sequence = repo.get(day)
    except ObjectNotFoundError:
        sequence = OrderSequence(day=day, last_value=0)

    value = sequence.next_value()
    repo.add(sequence)
    return format_order_number(day, value)
