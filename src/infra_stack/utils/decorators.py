"""Decorator utilities for cross-cutting concerns."""
import time
import logging
import functools
from typing import Any, Callable, Iterable, Optional, TypeVar, cast

from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])


def _callable_name(func: Callable) -> str:
    return getattr(func, "__name__", repr(func))


def log_execution_time(func: F) -> F:
    """Decorator to log function execution time.

    Args:
        func: The function to decorate

    Returns:
        Decorated function that logs execution time
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        try:
            result = func(*args, **kwargs)
            duration = time.time() - start_time
            logger.info(f"{_callable_name(func)} completed in {duration:.2f}s")
            return result
        except Exception as e:
            duration = time.time() - start_time
            logger.error(f"{_callable_name(func)} failed after {duration:.2f}s: {str(e)}")
            raise
    return cast(F, wrapper)


def error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', '')


def retry_on_aws_error(codes: Iterable[str], max_attempts: int = 3, delay: float = 1.0,
                       backoff: float = 2.0, message_contains: Optional[str] = None):
    """Retry a boto3 call while it fails with one of ``codes``.

    Used for eventually consistent AWS behaviour, e.g. Lambda rejecting an
    IAM role that was created seconds ago. Any other error is raised at once.

    Args:
        codes: ClientError codes worth retrying
        max_attempts: Maximum number of attempts, including the first
        delay: Initial delay between attempts in seconds
        backoff: Multiplier applied to the delay after each failure
        message_contains: Only retry when the error message contains this text

    Returns:
        Decorator function
    """
    retryable = frozenset(codes)

    def should_retry(e: ClientError) -> bool:
        if error_code(e) not in retryable:
            return False
        if message_contains is None:
            return True
        message = e.response.get('Error', {}).get('Message', '')
        return message_contains.lower() in message.lower()

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 1
            current_delay = delay

            while True:
                try:
                    return func(*args, **kwargs)
                except ClientError as e:
                    if not should_retry(e):
                        raise
                    if attempt >= max_attempts:
                        logger.error(f"All {max_attempts} attempts failed for {_callable_name(func)}: {str(e)}")
                        raise

                    logger.warning(
                        f"Attempt {attempt}/{max_attempts} for {_callable_name(func)} failed "
                        f"({error_code(e)}). Retrying in {current_delay:.2f}s"
                    )
                    time.sleep(current_delay)
                    attempt += 1
                    current_delay *= backoff

        return cast(F, wrapper)

    return decorator
