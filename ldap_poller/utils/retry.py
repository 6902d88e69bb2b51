"""Retry utilities with exponential backoff."""

import time
from collections.abc import Callable, Iterator
from functools import wraps
from typing import ParamSpec, TypeVar

import structlog

log = structlog.stdlib.get_logger()

P = ParamSpec("P")
R = TypeVar("R")


def backoff_delays(base_delay: float, max_delay: float, max_retries: int) -> Iterator[float]:
    """Yield the delay before each retry: base, 2*base, 4*base, ... capped at max."""
    for attempt in range(max_retries):
        yield min(base_delay * (2**attempt), max_delay)


def exponential_backoff_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """
    Decorator that retries a function with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts after the first call
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exceptions: Tuple of exception types to catch and retry
        sleep: Function used to wait between attempts

    Returns:
        Decorated function with retry logic. The last exception is re-raised
        once all retries are exhausted.
    """

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            delays = backoff_delays(base_delay, max_delay, max_retries)
            attempt = 0
            while True:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    delay = next(delays, None)
                    if delay is None:
                        if max_retries:
                            log.error(
                                "max_retries_reached",
                                function=func.__name__,
                                max_retries=max_retries,
                                error=str(e),
                            )
                        raise
                    attempt += 1
                    log.warning(
                        "retrying_after_error",
                        function=func.__name__,
                        attempt=attempt,
                        max_retries=max_retries,
                        delay_seconds=delay,
                        error=str(e),
                    )
                    sleep(delay)

        return wrapper

    return decorator
