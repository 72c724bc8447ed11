"""HTTP GET with bounded exponential-backoff retry."""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

import requests

MAX_RETRIES = int(os.getenv("FETCH_MAX_RETRIES", "3"))
RETRY_BASE_DELAY_SECONDS = float(os.getenv("FETCH_RETRY_BASE_DELAY_SECONDS", "1.0"))
REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "30"))

LOGGER = logging.getLogger(__name__)


class FetchError(RuntimeError):
    """A response came back with a non-2xx status."""

    def __init__(self, url: str, status_code: int, reason: str) -> None:
        super().__init__(f"HTTP {status_code}: {reason}")
        self.url = url
        self.status_code = status_code
        self.reason = reason


class FetchExhausted(RuntimeError):
    """All attempts for a URL failed; ``last_error`` is the final failure."""

    def __init__(self, url: str, attempts: int, last_error: Exception) -> None:
        super().__init__(f"Fetch failed after {attempts} attempt(s) for {url}: {last_error}")
        self.url = url
        self.attempts = attempts
        self.last_error = last_error


async def fetch_with_retry(
    url: str,
    options: dict[str, Any] | None = None,
    max_retries: int = MAX_RETRIES,
    base_delay: float = RETRY_BASE_DELAY_SECONDS,
) -> requests.Response:
    """GET ``url``, retrying transport errors and non-2xx responses.

    Attempt 0 is the initial request; attempts 1..max_retries wait
    ``base_delay * 2 ** (attempt - 1)`` seconds first. Delays carry no jitter.

    Args:
        url: Absolute URL to fetch.
        options: Extra keyword arguments for ``requests.get`` (headers, params...).
        max_retries: Number of retries after the initial attempt.
        base_delay: Delay in seconds before the first retry.

    Raises:
        ValueError: When ``max_retries`` is negative.
        FetchExhausted: When every attempt failed.
    """
    if max_retries < 0:
        raise ValueError(f"max_retries must be >= 0, got {max_retries}")

    kwargs: dict[str, Any] = {"timeout": REQUEST_TIMEOUT_SECONDS}
    kwargs.update(options or {})
    last_error: Exception = RuntimeError(f"No attempt made for {url}")

    for attempt in range(max_retries + 1):
        if attempt > 0:
            delay = base_delay * 2 ** (attempt - 1)
            LOGGER.info(
                "Retrying %s (attempt %s/%s) in %.1fs after: %s",
                url,
                attempt,
                max_retries,
                delay,
                last_error,
            )
            await asyncio.sleep(delay)

        try:
            response = await asyncio.to_thread(requests.get, url, **kwargs)
        except requests.RequestException as exc:
            last_error = exc
            continue

        if not 200 <= response.status_code < 300:
            last_error = FetchError(url, response.status_code, response.reason or "")
            continue
        return response

    raise FetchExhausted(url, max_retries + 1, last_error) from last_error


async def fetch_text(url: str, options: dict[str, Any] | None = None) -> str:
    """Fetch ``url`` with retry and return the decoded body."""
    response = await fetch_with_retry(url, options)
    return response.text
