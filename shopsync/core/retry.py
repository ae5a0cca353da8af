"""Retry utilities for Shopify and Google Sheets API calls."""

import asyncio
import logging
import random
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import TypeVar

import httpx

from shopsync.core.exceptions import RemoteAPIError, SourceAPIError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Retryable HTTP status codes
RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


@dataclass
class RetryPolicy:
    """Configuration for retry behavior."""

    max_retries: int = 3
    backoff_factor: float = 1.0
    max_wait: float = 60.0


def is_retryable_error(error: Exception) -> bool:
    """Determine if an error is retryable.

    Only transport failures and throttling/server errors are retried;
    anything else is a bug or bad data and fails fast.
    """
    if isinstance(error, (RemoteAPIError, SourceAPIError)):
        return error.retryable

    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS_CODES

    if isinstance(error, (httpx.TimeoutException, httpx.NetworkError)):
        return True

    return isinstance(error, (TimeoutError, ConnectionError))


def retry_with_backoff(policy: RetryPolicy | None = None):
    """Decorator that retries async functions with exponential backoff."""
    if policy is None:
        policy = RetryPolicy()

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            for attempt in range(policy.max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not is_retryable_error(e):
                        raise

                    if attempt >= policy.max_retries:
                        logger.error(
                            f"{func.__name__} failed after {policy.max_retries + 1} attempts: {e}"
                        )
                        raise

                    # Calculate backoff with jitter
                    wait_time = min(
                        policy.backoff_factor * (2 ** attempt) + random.uniform(0, 1),
                        policy.max_wait,
                    )

                    logger.warning(
                        f"{func.__name__} attempt {attempt + 1}/{policy.max_retries + 1} "
                        f"failed: {e}. Retrying in {wait_time:.1f}s..."
                    )
                    await asyncio.sleep(wait_time)

            raise RuntimeError("Unexpected retry failure")

        return wrapper

    return decorator


SHOPIFY_API_POLICY = RetryPolicy(max_retries=3, backoff_factor=1.0, max_wait=30.0)
SHEETS_API_POLICY = RetryPolicy(max_retries=3, backoff_factor=2.0)
