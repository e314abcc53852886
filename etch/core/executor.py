# etch/core/executor.py
"""
Runs a CompiledTemplate against data.

Every render gets its own ExecutionContext, which the generated code reaches
as `E`: escape/filter functions, include helpers, the global-await buffer
factory and the `undefined` sentinel. Errors raised by tag code are re-raised
as TemplateRuntimeError with the generated source attached.
"""
import asyncio
import inspect
import traceback
from typing import Any, Callable, List, Mapping, Optional, TYPE_CHECKING
import structlog

from etch.config.settings import RenderOptions
from etch.exceptions import EtchError, TemplateRuntimeError

from .compiler import CompiledTemplate, format_generated_source_error
from .resolver import PendingBuffer

if TYPE_CHECKING:
    from .engine import Engine

log = structlog.get_logger(__name__)


class Undefined:
    """Value of an empty interpolation tag."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __str__(self) -> str:
        return "undefined"

    def __repr__(self) -> str:
        return "Undefined"

    def __bool__(self) -> bool:
        return False

UNDEFINED = Undefined()


class TemplateData(dict):
    """
    dict with attribute access to its keys.

    Plain dicts reached by attribute, including those inside plain lists and
    tuples, come back as TemplateData copies so `u.name` works in loops.
    """

    def __getattr__(self, name: str) -> Any:
        try:
            value = self[name]
        except KeyError:
            raise AttributeError(f"template data has no key '{name}'") from None
        return _wrap_nested(value)

    def __setattr__(self, name: str, value: Any):
        self[name] = value

    def __delattr__(self, name: str):
        try:
            del self[name]
        except KeyError:
            raise AttributeError(name) from None

    @classmethod
    def wrap(cls, data: Any) -> Any:
        if isinstance(data, cls):
            return data
        if data is None:
            return cls()
        if isinstance(data, Mapping):
            return cls(data)
        # objects with attributes are passed through untouched
        return data


def _wrap_nested(value: Any) -> Any:
    if type(value) is dict:
        return TemplateData(value)
    if type(value) in (list, tuple):
        return type(value)(_wrap_nested(item) for item in value)
    return value


async def resolve(value: Any) -> Any:
    """Awaits `value` if it is awaitable, otherwise returns it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


class ExecutionContext:
    """Per-render helper bindings; never shared between renders."""

    def __init__(self, engine: "Engine", options: RenderOptions):
        self.engine = engine
        self.options = options
        self.e: Callable[[Any], str] = options.escape_function
        self.f: Optional[Callable[[Any], Any]] = options.filter_function
        self.undefined = UNDEFINED
        self.resolve = resolve
        self._buffers: List[PendingBuffer] = []

    def buffer(self) -> PendingBuffer:
        buffer = PendingBuffer(self.e, self.f)
        self._buffers.append(buffer)
        return buffer

    def discard_pending(self):
        """Drops awaitables that a failed render pushed but never joined."""
        for buffer in self._buffers:
            buffer.discard()

    def include(self, name: str, data: Any = None):
        return self.engine.include(name, data, self.options)

    def include_file(self, path: str, data: Any = None):
        return self.engine.include_file(path, data, self.options)

    @staticmethod
    def merge(data: Any, extra: Mapping[str, Any], layout_data: Optional[Mapping[str, Any]] = None) -> TemplateData:
        merged = TemplateData(data if isinstance(data, Mapping) else vars(data))
        merged.update(extra)
        if layout_data:
            merged.update(layout_data)
        return merged


def _failing_generated_line(compiled: CompiledTemplate, exc: BaseException) -> Optional[str]:
    frames = [frame for frame in traceback.extract_tb(exc.__traceback__) if frame.filename == compiled.filename]
    if not frames or frames[-1].lineno is None:
        return None
    lines = compiled.source.splitlines()
    lineno = frames[-1].lineno
    if 0 < lineno <= len(lines):
        return f"generated line {lineno}: {lines[lineno - 1].strip()}"
    return None


def _runtime_error(compiled: CompiledTemplate, exc: Exception) -> TemplateRuntimeError:
    detail = f"{type(exc).__name__}: {exc}"
    location = _failing_generated_line(compiled, exc)
    if location:
        detail = f"{detail} ({location})"
    log.error("template_evaluation_failed", name=compiled.name, error=detail)
    return TemplateRuntimeError(format_generated_source_error("Template render failed", detail, compiled.source))


def _callback_already_fired(callback: Optional[Callable]) -> bool:
    return callback is not None and getattr(callback, "completed", False)


def execute(compiled: CompiledTemplate, engine: "Engine", data: Any,
            options: RenderOptions, callback: Optional[Callable] = None) -> str:
    """Runs a synchronous compiled template and returns the rendered string."""
    if compiled.is_async:
        raise TemplateRuntimeError("An async template must be run with execute_async")
    context = ExecutionContext(engine, options)
    try:
        return compiled(TemplateData.wrap(data), context, callback)
    except EtchError:
        raise
    except Exception as exc:
        if _callback_already_fired(callback):
            # raised by the caller's own callback, not by tag code
            raise
        raise _runtime_error(compiled, exc) from exc


async def execute_async(compiled: CompiledTemplate, engine: "Engine", data: Any,
                        options: RenderOptions, callback: Optional[Callable] = None) -> str:
    """Awaits an async compiled template; sync templates are run in place."""
    if not compiled.is_async:
        return execute(compiled, engine, data, options, callback)
    context = ExecutionContext(engine, options)
    try:
        return await compiled(TemplateData.wrap(data), context, callback)
    except EtchError:
        context.discard_pending()
        raise
    except Exception as exc:
        context.discard_pending()
        if _callback_already_fired(callback):
            raise
        raise _runtime_error(compiled, exc) from exc
    except asyncio.CancelledError:
        context.discard_pending()
        raise
