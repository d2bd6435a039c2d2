"""Bounded retry with jittered exponential backoff."""

import logging
import random
import time

logger = logging.getLogger(__name__)


def backoff_delay(attempt, base=1.0, cap=10.0, jitter=True):
    """Delay in seconds before retry number *attempt* (1-based).

    ``min(base * 2**attempt, cap)``, scaled into [50%, 100%] when jittered
    so that concurrent retries against the same provider spread out.
    """
    delay = min(base * (2 ** attempt), cap)
    if jitter and delay > 0:
        delay *= random.uniform(0.5, 1.0)
    return delay


def retry_call(
    func,
    max_attempts,
    should_retry=None,
    base_delay=1.0,
    max_delay=10.0,
    sleep=time.sleep,
    label="operation",
):
    """Call ``func(attempt)`` until it returns or the budget is spent.

    ``should_retry(exc)`` decides whether an exception is worth another
    attempt; anything it rejects propagates immediately. When every attempt
    fails the last exception is re-raised.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        try:
            return func(attempt)
        except Exception as e:
            if attempt >= max_attempts or (should_retry and not should_retry(e)):
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                f"{label} failed (attempt {attempt}/{max_attempts}): {e}; "
                f"retrying in {delay:.1f}s"
            )
            sleep(delay)
