"""
Provider error hierarchy and bounded retry for read-only gateway calls.

Only idempotent queries (wallet balances) go through ``with_retry``. Calls that
move money (transfer, batch submission) are attempted once; the batch status
query has its own poll loop (see ``engine.polling``).
"""

import asyncio
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger("payout_runner.retry")

RETRIABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}
MAX_RETRIES = 2
BASE_DELAY = 1.0
MAX_DELAY = 30.0


class ProviderError(Exception):
    """Base exception for wallet, payment and messaging provider errors."""

    def __init__(self, message: str, status_code: int = 500, retriable: bool = True, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.retriable = retriable
        self.code = code


class RateLimitError(ProviderError):
    """429 Too Many Requests from the provider."""

    def __init__(self, message: str = "Rate limited", retry_after: float | None = None):
        super().__init__(message, status_code=429, retriable=True)
        self.retry_after = retry_after


class PermanentError(ProviderError):
    """Non-retriable error (bad signature, invalid parameters, unknown account)."""

    def __init__(self, message: str, status_code: int = 400, code: Optional[str] = None):
        super().__init__(message, status_code=status_code, retriable=False, code=code)


def error_for_status(status_code: int, message: str, code: Optional[str] = None) -> ProviderError:
    """Map an HTTP error status onto the provider error hierarchy."""
    if status_code == 429:
        return RateLimitError(message)
    if status_code in RETRIABLE_STATUS_CODES:
        return ProviderError(message, status_code=status_code, retriable=True, code=code)
    return PermanentError(message, status_code=status_code, code=code)


async def with_retry(
    func: Callable[..., Any],
    *args: Any,
    max_retries: int = MAX_RETRIES,
    base_delay: float = BASE_DELAY,
    **kwargs: Any,
) -> Any:
    """
    Execute an async function with exponential backoff on retriable errors.

    Raises:
        ProviderError: On permanent failure or exhausted retries.
    """
    delay = base_delay

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except ProviderError as e:
            if not e.retriable or attempt >= max_retries:
                if e.retriable:
                    logger.error("Exhausted %d retries for provider call: %s", max_retries, e)
                raise

            sleep_for = min(delay, MAX_DELAY)
            if isinstance(e, RateLimitError) and e.retry_after:
                sleep_for = min(e.retry_after, MAX_DELAY)

            logger.warning(
                "Retriable error on attempt %d/%d: %s, sleeping %.1fs",
                attempt + 1,
                max_retries + 1,
                e,
                sleep_for,
            )
            await asyncio.sleep(sleep_for)
            delay = min(delay * 2, MAX_DELAY)

    raise ProviderError("Unknown error after retries")
