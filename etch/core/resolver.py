# etch/core/resolver.py
"""
Accumulator used when global await is on.

Interpolation results are stored as entries in output order. Awaitable results
become pending slots; `join()` waits for all of them at once and then fills
each slot in place, so output order never depends on completion order.
"""
import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Union
import structlog

log = structlog.get_logger(__name__)


@dataclass
class PendingValue:
    value: Any
    escape: bool


class PendingBuffer:
    """Ordered output entries: literal strings and interpolation slots."""

    def __init__(self, escape_function: Callable[[Any], str],
                 filter_function: Optional[Callable[[Any], Any]] = None):
        self._escape = escape_function
        self._filter = filter_function
        self._entries: List[Union[str, PendingValue]] = []

    def write(self, text: str):
        self._entries.append(text)

    def push(self, value: Any, escape: bool = True):
        self._entries.append(PendingValue(value, escape))

    @property
    def pending_count(self) -> int:
        return sum(1 for entry in self._entries
                   if isinstance(entry, PendingValue) and inspect.isawaitable(entry.value))

    def discard(self) -> int:
        """Closes un-started coroutines and cancels futures still held by the buffer."""
        dropped = 0
        for entry in self._entries:
            if not isinstance(entry, PendingValue):
                continue
            if inspect.iscoroutine(entry.value):
                entry.value.close()
                dropped += 1
            elif asyncio.isfuture(entry.value) and not entry.value.done():
                entry.value.cancel()
                dropped += 1
        self._entries.clear()
        if dropped:
            log.debug("global_await_pending_values_discarded", dropped=dropped)
        return dropped

    def _materialize(self, slot: PendingValue) -> str:
        value = slot.value
        if self._filter is not None:
            value = self._filter(value)
        return self._escape(value) if slot.escape else str(value)

    async def join(self) -> str:
        slots = [entry for entry in self._entries
                 if isinstance(entry, PendingValue) and inspect.isawaitable(entry.value)]
        if slots:
            for slot in slots:
                slot.value = asyncio.ensure_future(slot.value)
            try:
                resolved = await asyncio.gather(*(slot.value for slot in slots))
            except BaseException:
                # the first failure ends the render; nothing else in the batch may keep running
                self.discard()
                raise
            for slot, value in zip(slots, resolved):
                slot.value = value
            log.debug("global_await_batch_resolved", pending=len(slots))
        return "".join(
            entry if isinstance(entry, str) else self._materialize(entry)
            for entry in self._entries
        )
