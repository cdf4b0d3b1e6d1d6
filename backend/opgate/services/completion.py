"""Completion Channel — single-use signal a handler uses to hand back its result.

Invariants:
    - complete() succeeds exactly once per call; a second call raises
      CompletionAlreadySignalledError
    - A completion arriving after the gateway gave up (timeout / handler failure)
      is logged and not answered; its follow-up still runs
    - Follow-ups (then) may be plain or async callables taking no arguments
    - Late async follow-ups are held in the owner's task set until they finish;
      their failures are logged

Design Decisions:
    - asyncio.Future under the hood: the gateway awaits it without blocking other calls
    - Follow-up runs after the response is sent (Starlette background task),
      matching "answer first, then continue"
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable

from opgate.core.domain_types import CorrelationKey
from opgate.core.errors import CompletionAlreadySignalledError

logger = logging.getLogger(__name__)

FollowUp = Callable[[], Any]


@dataclass(frozen=True)
class CompletionSignal:
    """What the handler handed back: its result and an optional follow-up."""
    result: Any
    then: FollowUp | None = None


class Completion:
    """One call's completion channel."""

    def __init__(
        self, correlation_key: CorrelationKey,
        tasks: set[asyncio.Future] | None = None,
    ):
        self.correlation_key = correlation_key
        self._future: asyncio.Future[CompletionSignal] = (
            asyncio.get_running_loop().create_future()
        )
        self._signalled = False
        self._expired = False
        self._tasks = tasks if tasks is not None else set()

    @property
    def signalled(self) -> bool:
        return self._signalled

    def complete(self, result: Any, then: FollowUp | None = None) -> None:
        """Hand back the call's result. Must be called exactly once."""
        if self._signalled:
            raise CompletionAlreadySignalledError(self.correlation_key)
        self._signalled = True
        if self._expired:
            logger.warning(
                "Late completion ignored: response already sent",
                extra={"correlation_key": self.correlation_key},
            )
            if then is not None:
                schedule_follow_up(then, self._tasks)
            return
        self._future.set_result(CompletionSignal(result, then))

    def expire(self) -> None:
        """Gateway stopped waiting; later completions are not answered."""
        self._expired = True
        if not self._future.done():
            self._future.cancel()

    async def wait(self) -> CompletionSignal:
        return await asyncio.shield(self._future)


def _log_follow_up_failure(task: asyncio.Future) -> None:
    if not task.cancelled() and task.exception() is not None:
        exc = task.exception()
        logger.error(f"Follow-up callback failed: {exc}", exc_info=exc)


def schedule_follow_up(then: FollowUp, tasks: set[asyncio.Future]) -> None:
    """Run a follow-up outside any response (late completion path).

    An async follow-up becomes a task held in `tasks` until it finishes.
    """
    try:
        outcome = then()
    except Exception as e:
        logger.error(f"Follow-up callback failed: {e}", exc_info=True)
        return
    if inspect.isawaitable(outcome):
        task = asyncio.ensure_future(outcome)
        tasks.add(task)
        task.add_done_callback(tasks.discard)
        task.add_done_callback(_log_follow_up_failure)
