"""
Shared HTTP retry policy for upstream calls.

Reads retry transport failures, timeouts, 5xx and 429 responses with an
incrementing backoff (``backoff``, ``2 * backoff``, ...). Any other 4xx is
returned to the caller as ``UpstreamHTTPError`` on the first attempt.
Writes pass ``retry=False`` and get exactly one attempt.
"""

import logging
from typing import Any, Callable, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from cea_agent.config import settings
from cea_agent.errors import UpstreamError, UpstreamHTTPError

logger = logging.getLogger(__name__)


def is_transient(exc: BaseException) -> bool:
    """True for failures worth another attempt."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, UpstreamHTTPError):
        return exc.retryable
    return False


async def fetch_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    retry: bool = True,
    max_attempts: Optional[int] = None,
    backoff: Optional[float] = None,
    timeout: Optional[float] = None,
    accept_response: Optional[Callable[[httpx.Response], bool]] = None,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request under the upstream retry policy.

    Args:
        accept_response: Error-status responses for which this returns True
            are handed back instead of raising (e.g. SOAP faults on HTTP 500).

    Raises:
        UpstreamHTTPError: Non-2xx status after the last attempt.
        UpstreamError: Transport failure or timeout after the last attempt.
    """
    cfg = settings.upstream
    attempts = (max_attempts or cfg.max_attempts) if retry else 1
    delay = cfg.backoff_sec if backoff is None else backoff
    per_attempt_timeout = timeout or cfg.timeout_sec

    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_incrementing(start=delay, increment=delay),
            retry=retry_if_exception(is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                logger.debug(
                    "%s %s (attempt %d)", method, url, attempt.retry_state.attempt_number
                )
                response = await client.request(
                    method, url, timeout=per_attempt_timeout, **kwargs
                )
                if response.is_error and not (accept_response and accept_response(response)):
                    raise UpstreamHTTPError(response.status_code, response.text)
                return response
    except httpx.TimeoutException as e:
        raise UpstreamError(f"Request to {url} timed out after {attempts} attempt(s)") from e
    except httpx.TransportError as e:
        raise UpstreamError(f"Network error calling {url}: {e}") from e
    raise UpstreamError(f"Request to {url} failed after {attempts} attempt(s)")
