"""Retry utilities for registry HTTP calls with exponential backoff"""

import logging
import random
import time
from enum import Enum
from functools import wraps
from typing import Callable, List, Optional, Tuple, TypeVar

import requests

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryableErrorType(Enum):
    """Types of errors that should trigger retries"""

    NETWORK = "network"  # Connection errors, timeouts
    TEMPORARY = "temporary"  # 5xx errors, rate limiting
    PERMANENT = "permanent"  # 4xx errors (except rate limiting), auth failures, missing data


def _status_code_of(error: Exception) -> Optional[int]:
    """Best-effort extraction of an HTTP status code from an exception."""
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        return status
    response = getattr(error, "response", None)
    if response is not None and isinstance(getattr(response, "status_code", None), int):
        return response.status_code
    return None


def is_retryable_error(error: Exception, error_message: str = "") -> Tuple[bool, RetryableErrorType]:
    """Determine if an error is retryable and what type it is

    Args:
        error: The exception that occurred
        error_message: Optional error message string

    Returns:
        Tuple of (is_retryable, error_type)
    """
    retryable = getattr(error, "retryable", None)
    if retryable is False:
        return False, RetryableErrorType.PERMANENT

    network_errors = (requests.exceptions.ConnectionError, requests.exceptions.Timeout)
    if isinstance(error, network_errors) or isinstance(error.__cause__, network_errors):
        return True, RetryableErrorType.NETWORK

    status = _status_code_of(error)
    if retryable is True:
        return True, RetryableErrorType.NETWORK if status is None else RetryableErrorType.TEMPORARY

    if status is not None:
        if status == 429 or status >= 500:
            return True, RetryableErrorType.TEMPORARY
        if 400 <= status < 500:
            return False, RetryableErrorType.PERMANENT

    combined = f"{str(error)} {error_message}".lower()

    # Auth errors - not retryable (won't fix itself)
    if "401" in combined or "403" in combined or "unauthorized" in combined or "forbidden" in combined:
        return False, RetryableErrorType.PERMANENT

    # 404 errors - the manifest or repository does not exist
    if "404" in combined or "not found" in combined or "unknown" in combined:
        return False, RetryableErrorType.PERMANENT

    # Rate limiting - retryable
    if "429" in combined or "rate limit" in combined or "too many requests" in combined:
        return True, RetryableErrorType.TEMPORARY

    network_indicators = [
        "connection",
        "timeout",
        "timed out",
        "network",
        "dns",
        "refused",
        "unreachable",
        "reset",
        "broken pipe",
        "temporary failure",
    ]
    if any(indicator in combined for indicator in network_indicators):
        return True, RetryableErrorType.NETWORK

    if "500" in combined or "502" in combined or "503" in combined or "504" in combined:
        return True, RetryableErrorType.TEMPORARY

    # Malformed payloads and programming errors will not go away on retry
    if isinstance(error, (ValueError, TypeError, KeyError)):
        return False, RetryableErrorType.PERMANENT

    return True, RetryableErrorType.TEMPORARY


def compute_delay(
    attempt: int,
    initial_delay: float,
    max_delay: float,
    exponential_base: float,
    jitter: bool,
) -> float:
    """Delay before the retry that follows a failed ``attempt`` (0-based)."""
    delay = min(initial_delay * (exponential_base**attempt), max_delay)
    if jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay = delay + random.uniform(-jitter_amount, jitter_amount)
        delay = max(0.1, delay)
    return delay


def retry_with_backoff(
    max_retries: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retryable_errors: Optional[List[RetryableErrorType]] = None,
) -> Callable:
    """Decorator for retrying functions with exponential backoff

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        initial_delay: Initial delay in seconds before first retry (default: 1.0)
        max_delay: Maximum delay between retries in seconds (default: 60.0)
        exponential_base: Base for exponential backoff (default: 2.0)
        jitter: Add random jitter to prevent thundering herd (default: True)
        retryable_errors: List of error types to retry (None = retry all retryable types)

    Returns:
        Decorator function
    """
    if retryable_errors is None:
        retryable_errors = [RetryableErrorType.NETWORK, RetryableErrorType.TEMPORARY]

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            for attempt in range(max_retries + 1):
                try:
                    result = func(*args, **kwargs)
                    if attempt > 0:
                        logger.info(f"{func.__name__} succeeded on attempt {attempt + 1}")
                    return result

                except Exception as e:
                    is_retryable, error_type = is_retryable_error(e)

                    # Check if this error type should be retried
                    if not is_retryable or error_type not in retryable_errors:
                        logger.debug(f"{func.__name__} failed with non-retryable error ({error_type.value}): {e}")
                        raise

                    # If this was the last attempt, raise the error
                    if attempt >= max_retries:
                        logger.error(
                            f"{func.__name__} failed after {max_retries + 1} attempts. "
                            f"Last error ({error_type.value}): {e}"
                        )
                        raise

                    delay = compute_delay(attempt, initial_delay, max_delay, exponential_base, jitter)
                    logger.warning(
                        f"{func.__name__} failed on attempt {attempt + 1}/{max_retries + 1} "
                        f"({error_type.value} error: {e}). "
                        f"Retrying in {delay:.2f}s..."
                    )

                    time.sleep(delay)

            raise RuntimeError(f"{func.__name__} exhausted all retries")  # pragma: no cover

        return wrapper

    return decorator
