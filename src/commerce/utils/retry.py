"""Bounded retry for optimistic-concurrency conflicts."""

import random
import time

import structlog
from protean.exceptions import ExpectedVersionError

from commerce.config import get_settings
from commerce.errors import StorageConflictError

logger = structlog.get_logger(__name__)

RETRYABLE = (StorageConflictError, ExpectedVersionError)


def retry_on_conflict(fn, *args, attempts: int | None = None, base_delay: float | None = None, **kwargs):
    """Call ``fn`` until it stops raising a retryable conflict.

    Backoff is exponential with jitter. Once ``attempts`` is exhausted the
    last conflict surfaces as ``StorageConflictError``.
    """
    settings = get_settings()
    attempts = attempts or settings.conflict_retries
    base_delay = settings.retry_base_delay if base_delay is None else base_delay

    for attempt in range(1, attempts + 1):
        try:
            return fn(*args, **kwargs)
        except RETRYABLE as exc:
            if attempt == attempts:
                logger.error(
                    "Conflict retries exhausted",
                    operation=getattr(fn, "__name__", repr(fn)),
                    attempts=attempts,
                    error=str(exc),
                )
                if isinstance(exc, StorageConflictError):
                    raise
                raise StorageConflictError("aggregate", getattr(fn, "__name__", "operation"), str(exc)) from exc

            delay = base_delay * (2 ** (attempt - 1)) * (1 + random.random())
            logger.debug(
                "Retrying after conflict",
                operation=getattr(fn, "__name__", repr(fn)),
                attempt=attempt,
                delay=round(delay, 4),
            )
            time.sleep(delay)
