# etch/util.py
import html
from typing import Any


def xml_escape(value: Any) -> str:
    """Stringifies `value` and escapes the five XML special characters."""
    return html.escape(str(value), quote=True)


def offset_to_line_column(text: str, offset: int):
    # 1-based line and column of a character offset.
    line = text.count("\n", 0, offset) + 1
    column = offset - (text.rfind("\n", 0, offset) + 1) + 1
    return line, column
