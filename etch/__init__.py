# etch/__init__.py
"""
etch: an async-aware template engine with embedded Python tags.

    >>> import etch
    >>> etch.render("Hi <%= it.name %>", {"name": "Ada Lovelace"})
    'Hi Ada Lovelace'
"""
from etch.config.settings import RenderOptions, TrimMode
from etch.core.compiler import CompiledTemplate
from etch.core.engine import Engine
from etch.exceptions import (
    EtchError, ConfigError, TemplateSyntaxError, TemplateRuntimeError, TemplateNotFoundError,
)
from etch.logging_setup import configure_library_logging

__version__ = "0.1.0"

configure_library_logging()

default_engine = Engine()

def render(template, data=None, options=None, callback=None):
    return default_engine.render(template, data, options, callback)

def render_async(template, data=None, options=None, callback=None):
    return default_engine.render_async(template, data, options, callback)

def compile(template, options=None) -> CompiledTemplate:
    return default_engine.compile(template, options)

def compile_to_string(template, options=None) -> str:
    return default_engine.compile_to_string(template, options)

def define(name, template, options=None) -> CompiledTemplate:
    return default_engine.define(name, template, options)

def configure(options) -> RenderOptions:
    return default_engine.configure(options)

__all__ = [
    "render",
    "render_async",
    "compile",
    "compile_to_string",
    "define",
    "configure",
    "default_engine",
    "Engine",
    "CompiledTemplate",
    "RenderOptions",
    "TrimMode",
    "EtchError",
    "ConfigError",
    "TemplateSyntaxError",
    "TemplateRuntimeError",
    "TemplateNotFoundError",
]
