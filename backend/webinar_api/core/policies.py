"""
Named error-handling policies.

best_effort() is the single place where a failure is allowed to be logged and
dropped. It is used for side effects that must not undo work that is already
committed: confirming a registration after the webhook marked the payment
completed, deleting the calendar event of a cancelled registration, sending a
cancellation email.

Callers receive it through their constructor, so tests can pass a recording
wrapper and assert the policy was applied even when the action blew up.
"""

from typing import Any, Awaitable, Callable, Protocol

from webinar_api.core.logging import get_logger
from webinar_api.core.metrics import best_effort_failures

logger = get_logger(__name__)


class BestEffortPolicy(Protocol):
    async def __call__(
        self,
        operation: str,
        action: Callable[[], Awaitable[Any]],
        **context: Any,
    ) -> bool: ...


async def best_effort(
    operation: str,
    action: Callable[[], Awaitable[Any]],
    **context: Any,
) -> bool:
    """
    Await `action()`; on failure log it under `operation` and return False.

    Cancellation (asyncio.CancelledError) is not an Exception subclass and
    still propagates.
    """
    try:
        await action()
    except Exception as e:
        best_effort_failures.labels(operation=operation).inc()
        logger.error(
            "best_effort_failed",
            operation=operation,
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
            **context,
        )
        return False
    return True
