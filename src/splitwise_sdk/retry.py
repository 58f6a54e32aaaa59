import random
from typing import Callable

from .errors import SplitwiseError
from .types import RetryConfig


def should_retry(error: SplitwiseError, attempt: int, config: RetryConfig) -> bool:
    """True iff another attempt is allowed after ``attempt`` (0-based) failed with ``error``."""
    if attempt >= config.max_retries:
        return False
    return bool(getattr(error, "retryable", False))


def compute_delay(
    error: SplitwiseError,
    attempt: int,
    config: RetryConfig,
    rng: Callable[[], float] = random.random,
) -> float:
    """Seconds to wait before the attempt following ``attempt``.

    A server Retry-After hint is honoured as-is (capped at max_delay, no jitter).
    Otherwise full jitter over min(base_delay * 2**attempt, max_delay).
    """
    retry_after = getattr(error, "retry_after", None)
    if isinstance(retry_after, (int, float)) and retry_after >= 0:
        return min(float(retry_after), config.max_delay)

    # exponent clamp keeps the float product finite for absurd attempt counts
    ceiling = min(config.base_delay * (2 ** min(attempt, 64)), config.max_delay)
    if ceiling <= 0:
        return 0.0
    return round(rng() * ceiling, 3)
