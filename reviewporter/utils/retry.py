"""Retry decorator for transient HTTP failures.

Only the provider layer retries. The engine treats any error that escapes
a provider as final for the current run.

Example:
    >>> @async_retry(max_attempts=3, backoff_factor=2.0, exceptions=(httpx.TransportError,))
    ... async def list_team_members(self, team_name: str) -> list[DirectoryPerson]:
    ...     ...

Backoff Formula:
    delay = backoff_factor ** attempt_number
"""

import asyncio
import functools
from collections.abc import Callable
from typing import Any, TypeVar

import structlog

log = structlog.get_logger(__name__)

T = TypeVar("T")


def async_retry(
    max_attempts: int = 3,
    backoff_factor: float = 2.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Retry an async function with exponential backoff.

    Args:
        max_attempts: Total number of calls, including the first one
        backoff_factor: Base of the exponential delay, in seconds
        exceptions: Exception types that trigger a retry; anything else
            propagates immediately

    Raises:
        The last caught exception once all attempts are exhausted.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        log.error(
                            "retry_exhausted",
                            function=func.__name__,
                            attempts=attempt,
                            error=str(e),
                        )
                        raise

                    delay = backoff_factor**attempt
                    log.warning(
                        "retry_attempt",
                        function=func.__name__,
                        attempt=attempt,
                        max_attempts=max_attempts,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

            raise RuntimeError("Retry logic error")

        return wrapper

    return decorator
