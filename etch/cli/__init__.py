# etch/cli/__init__.py
"""Command-line interface for rendering and inspecting etch templates."""
from .interface import main_cli_group

__all__ = ["main_cli_group"]
