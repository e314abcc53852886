# etch/config/__init__.py
"""Render options and config-file loading."""
from .settings import RenderOptions, TrimMode, DEFAULT_TAGS, DEFAULT_VAR_NAME
from .loader import load_project_options, load_options_file

__all__ = [
    "RenderOptions",
    "TrimMode",
    "DEFAULT_TAGS",
    "DEFAULT_VAR_NAME",
    "load_project_options",
    "load_options_file",
]
