"""
Fail-open policy for language-model calls.

Any error raised by an AI-backed step is logged and replaced with the
conservative fallback (not a duplicate, no candidates) so it never reaches
the batch loop.
"""

from collections.abc import Awaitable
from typing import TypeVar

from timesync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def fail_open(operation: Awaitable[T], fallback: T, *, event: str, **fields) -> T:
    """
    Await an AI-backed operation, returning `fallback` on any exception.

    Args:
        operation: Awaitable producing the real result
        fallback: Conservative value used when the operation fails
        event: Log message describing the step that failed
        **fields: Extra structured log fields
    """
    try:
        return await operation
    except Exception as e:
        logger.warning(
            event,
            error=str(e),
            error_type=type(e).__name__,
            recoverable=getattr(e, "recoverable", True),
            fallback=repr(fallback),
            **fields,
        )
        return fallback
