# etch/core/__init__.py
"""
Compilation and execution engine for etch templates.

Scanner -> code generator -> compiler produce a CompiledTemplate; the executor
runs it, the resolver handles global await and the completion module delivers
the result.
"""
from .compiler import CompiledTemplate, compile_template, compile_to_string
from .engine import Engine, TemplateStore
from .executor import ExecutionContext, TemplateData, UNDEFINED
from .scanner import Segment, SegmentKind, scan

__all__ = [
    "CompiledTemplate",
    "compile_template",
    "compile_to_string",
    "Engine",
    "TemplateStore",
    "ExecutionContext",
    "TemplateData",
    "UNDEFINED",
    "Segment",
    "SegmentKind",
    "scan",
]
