# etch/core/engine.py
"""
The Engine owns default options, the named-template store and the compile
cache, and exposes render/compile plus the include capabilities that
generated code calls back into.
"""
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, Union
import structlog

from etch.config.settings import RenderOptions
from etch.exceptions import TemplateNotFoundError, TemplateRuntimeError

from .compiler import CompiledTemplate, compile_template, compile_to_string
from .completion import CallbackGuard, Outcome, deliver_async_to_callback, settle, settle_async
from .executor import execute, execute_async

log = structlog.get_logger(__name__)

Template = Union[str, CompiledTemplate]
RenderCallback = Callable[[Optional[BaseException], Optional[str]], Any]


class TemplateStore:
    """Named compiled templates, looked up by `include(name, data)`."""

    def __init__(self):
        self._templates: Dict[str, CompiledTemplate] = {}

    def define(self, name: str, compiled: CompiledTemplate):
        self._templates[name] = compiled

    def get(self, name: str) -> Optional[CompiledTemplate]:
        return self._templates.get(name)

    def remove(self, name: str):
        self._templates.pop(name, None)

    def reset(self):
        self._templates.clear()

    def __contains__(self, name: str) -> bool:
        return name in self._templates

    def __len__(self) -> int:
        return len(self._templates)


class Engine:
    """Compiles and renders templates under a set of default options."""

    def __init__(self, options: Optional[RenderOptions] = None):
        self.options = options or RenderOptions()
        self.templates = TemplateStore()
        self._compile_cache: Dict[Tuple[Any, ...], CompiledTemplate] = {}
        self._file_cache: Dict[Tuple[Any, ...], CompiledTemplate] = {}

    def resolve_options(self, overrides: Any = None) -> RenderOptions:
        return self.options.merged(overrides)

    def configure(self, overrides: Any) -> RenderOptions:
        """Changes the engine defaults in place and returns them."""
        self.options = self.resolve_options(overrides)
        log.debug("engine_defaults_updated")
        return self.options

    def clear_cache(self):
        self._compile_cache.clear()
        self._file_cache.clear()

    def compile_to_string(self, template: str, options: Any = None) -> str:
        return compile_to_string(template, self.resolve_options(options))

    def compile(self, template: Template, options: Any = None) -> CompiledTemplate:
        """Returns a CompiledTemplate; cached by source and compile settings when `cache` is on."""
        return self._compile(template, self.resolve_options(options))

    def _compile(self, template: Template, opts: RenderOptions) -> CompiledTemplate:
        if isinstance(template, CompiledTemplate):
            return template
        cache_key = (template, opts.compile_key())
        if opts.cache and cache_key in self._compile_cache:
            log.debug("compile_cache_hit", name=opts.name)
            compiled = self._compile_cache[cache_key]
        else:
            compiled = compile_template(template, opts)
            if opts.cache:
                self._compile_cache[cache_key] = compiled
        if opts.cache and opts.name:
            self.templates.define(opts.name, compiled)
        return compiled

    def define(self, name: str, template: Template, options: Any = None) -> CompiledTemplate:
        """Compiles `template` and stores it under `name` for `include()`."""
        opts = replace(self.resolve_options(options), name=name)
        compiled = template if isinstance(template, CompiledTemplate) else compile_template(template, opts)
        self.templates.define(name, compiled)
        log.debug("template_defined", name=name, is_async=compiled.is_async)
        return compiled

    def render(self, template: Template, data: Any = None, options: Any = None,
               callback: Optional[RenderCallback] = None):
        """
        Renders `template` with `data`.

        Synchronous options return the string (or raise). Async options return a
        coroutine resolving to the string. With a callback, the outcome goes to
        `callback(error, result)` exactly once and nothing is raised; async renders
        then return the scheduled task.
        """
        return self._render(template, data, self.resolve_options(options), callback)

    def render_async(self, template: Template, data: Any = None, options: Any = None,
                     callback: Optional[RenderCallback] = None):
        return self._render(template, data, replace(self.resolve_options(options), is_async=True), callback)

    def _render(self, template: Template, data: Any, opts: RenderOptions,
                callback: Optional[RenderCallback]):
        guard = CallbackGuard(callback) if callback is not None else None
        log.debug("render_started", is_async=opts.is_async, global_await=opts.uses_global_await,
                  with_callback=guard is not None)
        if opts.is_async:
            rendering = settle_async(self._render_async(template, data, opts, guard), None)
            if guard is None:
                return rendering
            return deliver_async_to_callback(rendering, guard)
        outcome = Outcome.capture(self._render_sync, template, data, opts, guard)
        return settle(outcome, guard)

    def _render_sync(self, template: Template, data: Any, opts: RenderOptions,
                     guard: Optional[CallbackGuard]) -> str:
        compiled = self._compile(template, opts)
        return execute(compiled, self, data, opts, guard)

    async def _render_async(self, template: Template, data: Any, opts: RenderOptions,
                            guard: Optional[CallbackGuard]) -> str:
        # compiling inside the coroutine turns syntax errors into rejections
        compiled = self._compile(template, opts)
        return await execute_async(compiled, self, data, opts, guard)

    def include(self, name: str, data: Any = None, options: Optional[RenderOptions] = None):
        """Renders the stored template `name`; returns a coroutine when it is async."""
        opts = options or self.options
        compiled = self.templates.get(name)
        if compiled is None:
            raise TemplateNotFoundError(f"Could not find a template named '{name}'")
        if compiled.is_async and not opts.is_async:
            raise TemplateRuntimeError(f"Template '{name}' is async and cannot be included in a synchronous render")
        log.debug("including_named_template", name=name)
        if compiled.is_async:
            return execute_async(compiled, self, data, opts)
        return execute(compiled, self, data, opts)

    def resolve_path(self, path: Union[str, Path], options: Optional[RenderOptions] = None) -> Path:
        opts = options or self.options
        if opts.views is None:
            raise TemplateNotFoundError(f"Cannot include file '{path}': no views directory is configured")
        views = Path(opts.views).resolve()
        candidate = Path(path)
        if not candidate.suffix:
            candidate = candidate.with_suffix(opts.default_extension)
        resolved = (views / candidate).resolve()
        if resolved != views and views not in resolved.parents:
            raise TemplateNotFoundError(f"Template file '{path}' is outside the views directory {views}")
        if not resolved.is_file():
            raise TemplateNotFoundError(f"Template file '{path}' not found in {views}")
        return resolved

    def _compile_file(self, resolved: Path, opts: RenderOptions) -> CompiledTemplate:
        # with `cache` on, a file is read and compiled once per path and compile settings
        cache_key = (resolved, opts.compile_key())
        if opts.cache and cache_key in self._file_cache:
            log.debug("file_cache_hit", path=str(resolved))
            return self._file_cache[cache_key]
        compiled = compile_template(resolved.read_text(encoding="utf-8"), opts)
        if opts.cache:
            self._file_cache[cache_key] = compiled
        return compiled

    def include_file(self, path: Union[str, Path], data: Any = None, options: Optional[RenderOptions] = None):
        """Loads, compiles and renders a file under `views` with the caller's options."""
        opts = options or self.options
        resolved = self.resolve_path(path, opts)
        file_opts = replace(opts, name=str(resolved))
        log.debug("including_template_file", path=str(resolved), is_async=opts.is_async)
        compiled = self._compile_file(resolved, file_opts)
        if compiled.is_async:
            return execute_async(compiled, self, data, file_opts)
        return execute(compiled, self, data, file_opts)
