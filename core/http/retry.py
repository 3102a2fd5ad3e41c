"""Retry policy for the routing and weather providers.

Only failures that are likely to clear up within seconds are retried:
dropped connections, timeouts, and the provider statuses that mean "come
back shortly" (429 and the gateway 5xx family). Everything else a provider
reports is final for this call. OSRM's ``NoRoute`` and a rejected weather
key are examples. Callers handle final errors themselves: the routing
service switches to its straight-line route and the weather client returns
neutral weather.
"""

from __future__ import annotations

import asyncio
import logging

import aiohttp
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from core.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)

TRANSIENT_STATUSES = frozenset({429, 502, 503, 504})
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError)


def is_transient(exc: BaseException) -> bool:
    """Whether a provider call that raised ``exc`` is worth repeating."""
    if isinstance(exc, ExternalServiceError):
        return exc.details.get("status") in TRANSIENT_STATUSES
    return isinstance(exc, TRANSPORT_ERRORS)


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    name = getattr(retry_state.fn, "__qualname__", "provider call")
    logger.warning(
        "%s failed (attempt %d), retrying: %s",
        name,
        retry_state.attempt_number,
        exc,
    )


def retry_async(
    max_retries: int = 2,
    retry_delay: float = 0.5,
    backoff_factor: float = 2.0,
    max_delay: float = 8.0,
):
    """Tenacity decorator for async provider calls.

    Args:
        max_retries: Retry attempts in addition to the first attempt.
        retry_delay: First backoff delay in seconds.
        backoff_factor: Exponential backoff base.
        max_delay: Upper bound for any single wait, including a provider's
            ``Retry-After`` hint.
    """
    backoff = wait_exponential(
        multiplier=retry_delay,
        exp_base=backoff_factor,
        max=max_delay,
    )

    def wait(retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        hint = exc.details.get("retry_after") if isinstance(exc, ExternalServiceError) else None
        if hint is not None:
            return min(float(hint), max_delay)
        return backoff(retry_state)

    return retry(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait,
        retry=retry_if_exception(is_transient),
        before_sleep=_log_retry,
        reraise=True,
    )
