"""Shared HTTP handling for registry scrapers."""

from typing import Any, Dict, Optional

import requests
from ..logger import get_logger
from ..retry import (
    RetryError,
    RetryableStatusError,
    exponential_backoff,
    should_retry_http_status,
)


class RegistryError(ValueError):
    """Raised when the registry cannot be reached or answers with an error status."""


def _log_retry(attempt: int, exc: Exception, delay: float) -> None:
    get_logger().warning("Retrying registry request", attempt=attempt, delay=delay, error=str(exc))


@exponential_backoff(
    max_retries=3,
    base_delay=1.0,
    exceptions=(requests.exceptions.Timeout, requests.exceptions.ConnectionError, RetryableStatusError),
    on_retry=_log_retry,
)
def _fetch_with_retry(url: str, params: Dict[str, Any], headers: Dict[str, str], timeout: float):
    """Fetch URL with automatic retry on transient errors."""
    resp = requests.get(url, params=params, headers=headers, timeout=timeout)
    if should_retry_http_status(resp.status_code):
        raise RetryableStatusError(resp.status_code, url)
    return resp


def fetch_with_error_handling(
    url: str,
    platform: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 15.0,
):
    """Fetch URL with standardized error handling and logging.

    Args:
        url: The URL to fetch
        platform: The registry name for logging (e.g., 'fide')
        params: Query string parameters
        headers: Request headers
        timeout: Per-request timeout in seconds

    Returns:
        Response object on success

    Raises:
        RegistryError: On any HTTP error, timeout, or request failure
    """
    logger = get_logger()
    logger.record_lookup_attempt()
    name = platform.upper()
    try:
        resp = _fetch_with_retry(url, params or {}, headers or {}, timeout)
        resp.raise_for_status()
        logger.record_lookup_success()
        return resp
    except RetryError as e:
        cause = e.__cause__
        if isinstance(cause, RetryableStatusError):
            logger.record_lookup_failure(f"HTTPError_{cause.status_code}")
            logger.error(f"{name} request failed after retries", url=url, status=cause.status_code)
            raise RegistryError(f"{name} request failed ({cause.status_code}): {url}") from e
        if isinstance(cause, requests.exceptions.Timeout):
            logger.record_lookup_failure("Timeout")
            logger.warning(f"{name} request timed out", url=url)
            raise RegistryError(f"{name} request timed out. Try again later.") from e
        logger.record_lookup_failure("ConnectionError")
        logger.error(f"{name} connection failed", url=url, error=str(cause))
        raise RegistryError(f"{name} connection failed: {cause}") from e
    except requests.exceptions.HTTPError as e:
        status = e.response.status_code if e.response is not None else "HTTPError"
        logger.record_lookup_failure(f"HTTPError_{status}")
        logger.error(f"{name} request failed", url=url, status=status)
        raise RegistryError(f"{name} request failed ({status}): {url}") from e
    except requests.exceptions.RequestException as e:
        logger.record_lookup_failure("RequestException")
        logger.error(f"{name} request error", url=url, error=str(e))
        raise RegistryError(f"{name} request error: {e}") from e
