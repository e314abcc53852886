# etch/core/compiler.py
"""
Compiles template text into a CompiledTemplate: scan, generate, then build the
callable from the generated source.
"""
from dataclasses import dataclass
from typing import Any, Callable, Optional
import structlog

from etch.config.settings import RenderOptions
from etch.exceptions import TemplateSyntaxError

from .codegen import FUNCTION_NAME, generate
from .scanner import scan

log = structlog.get_logger(__name__)

GENERATED_FILENAME = "<etch-template>"


@dataclass(frozen=True)
class CompiledTemplate:
    """An executable render function plus the source it was built from."""
    source: str
    is_async: bool
    global_await: bool
    function: Callable[..., Any]
    name: Optional[str] = None
    filename: str = GENERATED_FILENAME

    def __call__(self, data: Any, context: Any, callback: Optional[Callable] = None):
        return self.function(data, context, callback)


def format_generated_source_error(heading: str, detail: str, generated_source: str) -> str:
    # the generated source is embedded so callers can find the failing tag.
    return f"{heading}\n\n{detail}\n{'=' * max(len(detail), 1)}\n{generated_source}"


def compile_to_string(template: str, options: Optional[RenderOptions] = None) -> str:
    """Returns the Python source of the render function for `template`."""
    options = options or RenderOptions()
    return generate(scan(template, options), options, template)


def build_callable(generated_source: str, filename: str = GENERATED_FILENAME) -> Callable[..., Any]:
    try:
        code_object = compile(generated_source, filename, "exec")
    except SyntaxError as e:
        detail = f"{type(e).__name__}: {e.msg} (generated line {e.lineno})"
        log.debug("generated_source_compile_failed", error=detail)
        raise TemplateSyntaxError(
            format_generated_source_error("Bad template syntax", detail, generated_source),
            line=e.lineno,
        ) from e
    namespace: dict = {}
    exec(code_object, namespace)
    return namespace[FUNCTION_NAME]


def compile_template(template: str, options: Optional[RenderOptions] = None) -> CompiledTemplate:
    """Scans, generates and builds `template` under `options`."""
    options = options or RenderOptions()
    generated_source = compile_to_string(template, options)
    filename = f"<etch-template:{options.name}>" if options.name else GENERATED_FILENAME
    function = build_callable(generated_source, filename)
    log.debug("template_compiled", name=options.name, is_async=options.is_async,
              global_await=options.uses_global_await)
    return CompiledTemplate(
        source=generated_source,
        is_async=options.is_async,
        global_await=options.uses_global_await,
        function=function,
        name=options.name,
        filename=filename,
    )
