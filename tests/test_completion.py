# tests/test_completion.py
"""Tests for the outcome type, the callback guard and the pending buffer."""

import asyncio

import pytest

from etch.core.completion import CallbackGuard, Outcome, settle, settle_async
from etch.core.executor import UNDEFINED, TemplateData
from etch.core.resolver import PendingBuffer
from etch.util import xml_escape


class TestOutcome:
    """Tests for Outcome and settle()."""

    def test_capture_value(self):
        outcome = Outcome.capture(lambda: "done")
        assert outcome.ok and outcome.unwrap() == "done"

    def test_capture_error(self):
        def fail():
            raise KeyError("k")
        outcome = Outcome.capture(fail)
        assert not outcome.ok
        with pytest.raises(KeyError):
            outcome.unwrap()

    def test_settle_without_callback_returns_value(self):
        assert settle(Outcome(value="v")) == "v"

    def test_settle_with_callback_returns_none(self):
        calls = []
        assert settle(Outcome(error=RuntimeError("x")), CallbackGuard(lambda e, r: calls.append((e, r)))) is None
        assert len(calls) == 1 and isinstance(calls[0][0], RuntimeError) and calls[0][1] is None

    @pytest.mark.asyncio
    async def test_settle_async_rejects_without_callback(self):
        async def fail():
            raise ValueError("nope")
        with pytest.raises(ValueError):
            await settle_async(fail())


class TestCallbackGuard:
    """Tests for the single-invocation guard."""

    def test_fires_once(self):
        calls = []
        guard = CallbackGuard(lambda e, r: calls.append((e, r)))
        guard(None, "first")
        guard(None, "second")
        guard(RuntimeError("late"), None)
        assert calls == [(None, "first")]
        assert guard.completed

    def test_completed_before_callback_runs(self):
        seen = []
        guard = None

        def callback(err, res):
            seen.append(guard.completed)

        guard = CallbackGuard(callback)
        guard(None, "x")
        assert seen == [True]


class TestPendingBuffer:
    """Tests for the global-await accumulator."""

    @pytest.mark.asyncio
    async def test_no_pending_values_is_a_plain_join(self):
        buffer = PendingBuffer(xml_escape)
        buffer.write("a")
        buffer.push("<b>", escape=True)
        buffer.push(UNDEFINED, escape=False)
        assert buffer.pending_count == 0
        assert await buffer.join() == "a&lt;b&gt;undefined"

    @pytest.mark.asyncio
    async def test_pending_values_fill_their_slots(self):
        async def value(delay, result):
            await asyncio.sleep(delay)
            return result

        buffer = PendingBuffer(xml_escape, filter_function=lambda v: f"{v}!")
        buffer.write("[")
        buffer.push(value(0.02, "first"), escape=False)
        buffer.write("|")
        buffer.push(value(0, "second"), escape=False)
        buffer.write("]")
        assert buffer.pending_count == 2
        assert await buffer.join() == "[first!|second!]"

    @pytest.mark.asyncio
    async def test_discard_closes_coroutines_and_cancels_futures(self):
        async def never_started():
            return "x"

        future = asyncio.get_running_loop().create_future()
        coroutine = never_started()
        buffer = PendingBuffer(xml_escape)
        buffer.push(coroutine)
        buffer.push(future)
        buffer.push("plain")
        assert buffer.discard() == 2
        assert future.cancelled()
        assert coroutine.cr_frame is None
        assert buffer.pending_count == 0

    @pytest.mark.asyncio
    async def test_failed_join_cancels_unfinished_values(self):
        finished = []

        async def slow():
            await asyncio.sleep(0.05)
            finished.append(True)

        async def boom():
            raise KeyError("k")

        buffer = PendingBuffer(xml_escape)
        buffer.push(slow())
        buffer.push(boom())
        with pytest.raises(KeyError):
            await buffer.join()
        await asyncio.sleep(0.1)
        assert finished == []


class TestTemplateData:
    """Tests for attribute access onto template data."""

    def test_attribute_access_and_assignment(self):
        data = TemplateData({"a": 1})
        data.b = 2
        assert data.a == 1 and data["b"] == 2

    def test_missing_key_raises_attribute_error(self):
        with pytest.raises(AttributeError, match="no key 'missing'"):
            TemplateData().missing

    def test_undefined_is_falsy_and_prints_undefined(self):
        assert not UNDEFINED
        assert str(UNDEFINED) == "undefined"
