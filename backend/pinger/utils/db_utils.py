"""Database utility functions."""
import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import OperationalError, InterfaceError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Substrings of driver errors that are worth retrying
TRANSIENT_ERRORS = (
    "database is locked",
    "database table is locked",
    "connection refused",
    "connection reset",
    "server closed",
    "too many clients",
)


def is_transient(error: Exception) -> bool:
    """Check whether a database error is a transient lock or connection error."""
    message = str(error).lower()
    return any(fragment in message for fragment in TRANSIENT_ERRORS)


async def retry_on_lock(
    coro_func: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 0.05,
) -> T:
    """Retry a database operation on transient errors with exponential backoff.

    Concurrent probes write hits at the same time; SQLite serializes writers
    and reports "database is locked" when its busy timeout runs out.

    Args:
        coro_func: Callable running the whole unit of work (fresh session,
            changes, commit) on each call; a session that failed to flush
            cannot simply be committed again
        max_retries: Maximum number of attempts
        base_delay: Delay in seconds before the second attempt, doubled after each

    Raises:
        OperationalError, InterfaceError: if the error is not transient or all attempts fail
    """
    for attempt in range(max_retries):
        try:
            return await coro_func()
        except (OperationalError, InterfaceError) as e:
            if not is_transient(e) or attempt == max_retries - 1:
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(f"Database transient error, retrying in {delay}s (attempt {attempt + 1}/{max_retries})")
            await asyncio.sleep(delay)
