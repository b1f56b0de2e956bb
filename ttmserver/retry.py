"""
Bounded retry for index writes.
"""

import logging
import time
from typing import Callable, Optional, TypeVar

from .exceptions import TransientBackendError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def with_retry(
    func: Callable[[], T],
    attempts: int = 5,
    delay: float = 10.0,
    on_error: Optional[Callable[[TransientBackendError, int], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``func`` until it succeeds or ``attempts`` runs out.

    Only TransientBackendError is retried; the last one is re-raised.

    Args:
        func: Zero-argument callable
        attempts: Total number of calls
        delay: Seconds to sleep between attempts
        on_error: Called with (error, attempt) after each failure
        sleep: Sleep function (tests pass a no-op)
    """
    if attempts < 1:
        raise ValueError(f"attempts must be at least 1, got {attempts}")

    last_error: Optional[TransientBackendError] = None

    for attempt in range(1, attempts + 1):
        try:
            return func()
        except TransientBackendError as e:
            last_error = e
            if on_error is not None:
                on_error(e, attempt)
            if attempt < attempts:
                logger.warning("Attempt %d/%d failed (%s), retrying in %ss", attempt, attempts, e, delay)
                if delay > 0:
                    sleep(delay)

    raise last_error
