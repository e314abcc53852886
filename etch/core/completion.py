# etch/core/completion.py
"""
Delivers a render outcome to the caller: as a return value or raised error, as
an awaitable, or through a `callback(error, result)`.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional
import structlog

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Outcome:
    """Either a rendered string or the error that stopped the render."""
    value: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def capture(cls, function: Callable[..., str], *args: Any) -> "Outcome":
        try:
            return cls(value=function(*args))
        except Exception as e:
            return cls(error=e)

    @classmethod
    async def capture_async(cls, awaitable: Awaitable[str]) -> "Outcome":
        try:
            return cls(value=await awaitable)
        except Exception as e:
            return cls(error=e)

    def unwrap(self) -> str:
        if self.error is not None:
            raise self.error
        return self.value


class CallbackGuard:
    """Wraps a caller callback so it fires at most once per render."""

    def __init__(self, callback: Callable[[Optional[BaseException], Optional[str]], Any]):
        self._callback = callback
        self.completed = False

    def __call__(self, error: Optional[BaseException], value: Optional[str] = None):
        if self.completed:
            log.debug("callback_already_completed_skipping", had_error=error is not None)
            return
        # set first: an exception from the callback itself must not trigger a second call
        self.completed = True
        self._callback(error, value)


def settle(outcome: Outcome, guard: Optional[CallbackGuard] = None) -> Optional[str]:
    """Returns/raises the outcome, or hands it to the callback and returns None."""
    if guard is None:
        return outcome.unwrap()
    if not outcome.ok:
        if guard.completed:
            # the callback already ran and then raised; that error belongs to the caller
            raise outcome.error
        guard(outcome.error, None)
        return None
    guard(None, outcome.value)
    return None


async def settle_async(awaitable: Awaitable[str], guard: Optional[CallbackGuard] = None) -> Optional[str]:
    outcome = await Outcome.capture_async(awaitable)
    return settle(outcome, guard)


def deliver_async_to_callback(awaitable: Awaitable[str], guard: CallbackGuard) -> Optional["asyncio.Task"]:
    """Schedules the render on the running loop and returns its task; without a loop, runs it to completion."""
    settlement = settle_async(awaitable, guard)
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        log.debug("no_running_event_loop_running_render_to_completion")
        asyncio.run(settlement)
        return None
    return loop.create_task(settlement)
