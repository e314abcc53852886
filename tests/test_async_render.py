# tests/test_async_render.py
"""Tests for async rendering, global await and the async completion channels."""

import asyncio
import gc
import warnings

import pytest

from etch import render, render_async
from etch.core.engine import Engine
from etch.exceptions import TemplateRuntimeError, TemplateSyntaxError

ASYNC = {"async": True}
GLOBAL_AWAIT = {"async": True, "globalAwait": True}
SEQUENTIAL = {"async": True, "globalAwait": False}


def resolved_future(value):
    future = asyncio.get_running_loop().create_future()
    future.set_result(value)
    return future


def create_wait_and_store_times(times):
    async def wait(value):
        times.append("start")
        await asyncio.sleep(0.05)
        times.append("end")
        return value
    return wait


async def async_test():
    await asyncio.sleep(0.01)
    return "HI FROM ASYNC"


class TestAsyncRender:
    """Tests for the async render path."""

    @pytest.mark.asyncio
    async def test_simple_template_renders_asynchronously(self):
        assert await render("Hi <%= it.name %>", {"name": "Ada Lovelace"}, ASYNC) == "Hi Ada Lovelace"

    @pytest.mark.asyncio
    async def test_render_async_helper_forces_async(self):
        assert await render_async("Hi <%= it.name %>", {"name": "Ada"}) == "Hi Ada"

    @pytest.mark.asyncio
    async def test_explicit_await_in_tag(self):
        result = await render(
            "<%= await it.async_test() %>",
            {"name": "Ada Lovelace", "async_test": async_test},
            ASYNC,
        )
        assert result == "HI FROM ASYNC"

    @pytest.mark.asyncio
    async def test_awaitable_results_are_awaited_without_explicit_await(self):
        assert await render("<%~ it.async_test() %>", {"async_test": async_test}, ASYNC) == "HI FROM ASYNC"

    @pytest.mark.asyncio
    async def test_statement_tags_may_await(self):
        template = "<% value = await it.async_test() %><%= value.lower() %>"
        assert await render(template, {"async_test": async_test}, ASYNC) == "hi from async"

    @pytest.mark.asyncio
    async def test_syntax_error_rejects_instead_of_raising(self):
        pending = render("<%= @#$%^ %>", {}, ASYNC)
        with pytest.raises(TemplateSyntaxError) as exc_info:
            await pending
        message = str(exc_info.value)
        assert "tR += E.e(await E.resolve(@#$%^" in message
        assert "if cb:\n        cb(None, tR)\n    return tR" in message

    @pytest.mark.asyncio
    async def test_runtime_error_rejects(self):
        with pytest.raises(TemplateRuntimeError, match="AttributeError") as exc_info:
            await render("Hi <%= it.missing %>", {}, ASYNC)
        assert "tR += E.e(await E.resolve(it.missing))" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, AttributeError)

    @pytest.mark.asyncio
    async def test_rendering_twice_is_identical(self):
        engine = Engine()
        template = "<% for n in it.nums: %><%= n * 2 %> <% end %>"
        first = await engine.render(template, {"nums": [1, 2]}, ASYNC)
        second = await engine.render(template, {"nums": [1, 2]}, ASYNC)
        assert first == second == "2 4 "


class TestAsyncCallbacks:
    """Tests for callback delivery in async mode."""

    @pytest.mark.asyncio
    async def test_callback_receives_result_once(self):
        calls = []
        task = render("Hi <%= it.name %>", {"name": "Ada Lovelace"}, ASYNC,
                      lambda err, res: calls.append((err, res)))
        assert isinstance(task, asyncio.Task)
        assert await task is None
        assert calls == [(None, "Hi Ada Lovelace")]

    @pytest.mark.asyncio
    async def test_callback_receives_syntax_error(self):
        calls = []
        await render("<%= @#$%^ %>", {}, {"async": True}, lambda err, res: calls.append((err, res)))
        assert len(calls) == 1
        err, res = calls[0]
        assert isinstance(err, TemplateSyntaxError)
        assert "tR += E.e(await E.resolve(@#$%^" in str(err)
        assert res is None

    @pytest.mark.asyncio
    async def test_callback_receives_runtime_error(self):
        calls = []
        await render("<%= it.nope %>", {}, ASYNC, lambda err, res: calls.append((err, res)))
        assert len(calls) == 1
        assert isinstance(calls[0][0], TemplateRuntimeError)

    def test_callback_without_running_loop_completes_synchronously(self):
        calls = []
        returned = render("Hi <%= it.name %>", {"name": "Ada"}, ASYNC, lambda err, res: calls.append((err, res)))
        assert returned is None
        assert calls == [(None, "Hi Ada")]


class TestGlobalAwait:
    """Tests for concurrent resolution of pending interpolations."""

    @pytest.mark.asyncio
    async def test_statement_conditions_are_not_awaited(self):
        template = "Hi <% if it.name: %>0<% end %>"
        assert await render(template, {"name": resolved_future(False)}, GLOBAL_AWAIT) == "Hi 0"

    @pytest.mark.asyncio
    async def test_interpolations_are_awaited_automatically(self):
        result = await render("Hi <%= it.name %>", {"name": resolved_future("Ada Lovelace")}, GLOBAL_AWAIT)
        assert result == "Hi Ada Lovelace"

    @pytest.mark.asyncio
    async def test_empty_interpolation_renders_undefined(self):
        assert await render("Hi <%=%>", {}, GLOBAL_AWAIT) == "Hi undefined"

    @pytest.mark.asyncio
    async def test_resolved_values_are_escaped(self):
        result = await render("<%= it.a %>|<%~ it.a %>", {"a": resolved_future("<b>")}, GLOBAL_AWAIT)
        assert result == "&lt;b&gt;|<b>"

    @pytest.mark.asyncio
    async def test_filter_applies_after_resolution(self):
        options = dict(GLOBAL_AWAIT, filterFunction=lambda v: str(v).upper())
        assert await render("<%= it.a %>", {"a": resolved_future("quiet")}, options) == "QUIET"

    @pytest.mark.asyncio
    async def test_plain_values_pass_through(self):
        assert await render("<%= it.a %>-<%= 3 %>", {"a": "x"}, GLOBAL_AWAIT) == "x-3"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tag", ["<%=", "<%~"])
    async def test_awaits_all_promises_in_parallel(self, tag):
        times = []
        wait = create_wait_and_store_times(times)
        template = f"Hi {tag} it.wait(1) %> {tag} it.wait(2) %> {tag} it.wait(3) %>"
        assert await render(template, {"wait": wait}, GLOBAL_AWAIT) == "Hi 1 2 3"
        assert ",".join(times) == "start,start,start,end,end,end"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tag", ["<%=", "<%~"])
    async def test_awaits_in_sequence_without_global_await(self, tag):
        times = []
        wait = create_wait_and_store_times(times)
        template = f"Hi {tag} await it.wait(1) %> {tag} await it.wait(2) %> {tag} await it.wait(3) %>"
        assert await render(template, {"wait": wait}, SEQUENTIAL) == "Hi 1 2 3"
        assert ",".join(times) == "start,end,start,end,start,end"

    @pytest.mark.asyncio
    async def test_implicit_awaits_are_sequential_without_global_await(self):
        times = []
        wait = create_wait_and_store_times(times)
        assert await render("<%= it.wait('a') %><%= it.wait('b') %>", {"wait": wait}, SEQUENTIAL) == "ab"
        assert ",".join(times) == "start,end,start,end"

    @pytest.mark.asyncio
    async def test_output_order_does_not_follow_completion_order(self):
        async def after(delay, value):
            await asyncio.sleep(delay)
            return value

        template = "<%= it.after(0.05, 'slow') %> <%= it.after(0, 'fast') %>"
        assert await render(template, {"after": after}, GLOBAL_AWAIT) == "slow fast"

    @pytest.mark.asyncio
    async def test_failing_pending_value_rejects(self):
        async def boom():
            raise LookupError("no such record")

        with pytest.raises(TemplateRuntimeError, match="LookupError: no such record"):
            await render("<%= it.boom() %>", {"boom": boom}, GLOBAL_AWAIT)

    @pytest.mark.asyncio
    async def test_failed_render_leaves_no_unawaited_coroutines(self):
        started = []

        async def wait():
            started.append(True)
            return "x"

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            with pytest.raises(TemplateRuntimeError, match="AttributeError"):
                await render("<%= it.wait() %><%= it.missing %>", {"wait": wait}, GLOBAL_AWAIT)
            gc.collect()
        assert not [w for w in caught if "never awaited" in str(w.message)]
        assert started == []

    @pytest.mark.asyncio
    async def test_first_failure_cancels_the_rest_of_the_batch(self):
        finished = []

        async def slow():
            await asyncio.sleep(0.1)
            finished.append("slow")
            return "slow"

        async def boom():
            raise LookupError("gone")

        with pytest.raises(TemplateRuntimeError, match="LookupError: gone"):
            await render("<%= it.slow() %><%= it.boom() %>", {"slow": slow, "boom": boom}, GLOBAL_AWAIT)
        await asyncio.sleep(0.2)
        assert finished == []
