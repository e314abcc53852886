# etch/core/scanner.py
"""
Splits template text into literal and tag segments.

A tag starts with the open delimiter, optionally followed by a whitespace
modifier (`-` trims one newline, `_` trims all whitespace) and a type prefix
(`=` escaped interpolation, `~` raw interpolation, nothing for a statement).
The close delimiter may be preceded by a modifier as well. Python string
literals and `#` comments inside a tag are skipped while looking for the close
delimiter.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple
import structlog

from etch.config.settings import RenderOptions, TrimMode
from etch.exceptions import TemplateSyntaxError
from etch.util import offset_to_line_column

log = structlog.get_logger(__name__)

class SegmentKind(Enum):
    LITERAL = "literal"
    INTERPOLATION = "interpolation"
    RAW = "raw"
    STATEMENT = "statement"

@dataclass(frozen=True)
class Segment:
    kind: SegmentKind
    text: str
    position: int  # offset of the segment (or its open delimiter) in the source

WS_MODIFIERS = {"-": TrimMode.NEWLINE, "_": TrimMode.SLURP}
LEADING_NEWLINE_RE = re.compile(r"^(?:\r\n|\n|\r)")
TRAILING_NEWLINE_RE = re.compile(r"(?:\r\n|\n|\r)$")
STRING_OPENERS = ('"""', "'''", '"', "'")


def _syntax_error(message: str, source: str, position: int) -> TemplateSyntaxError:
    line, column = offset_to_line_column(source, position)
    return TemplateSyntaxError(f"{message} at line {line}, column {column}", position=position, line=line, column=column)


def trim_literal(text: str, left: TrimMode, right: TrimMode) -> str:
    """Trims the start of `text` per `left` and its end per `right`."""
    if left is TrimMode.SLURP:
        text = text.lstrip()
    elif left is TrimMode.NEWLINE:
        text = LEADING_NEWLINE_RE.sub("", text, count=1)
    if right is TrimMode.SLURP:
        text = text.rstrip()
    elif right is TrimMode.NEWLINE:
        text = TRAILING_NEWLINE_RE.sub("", text, count=1)
    return text


def _skip_string(source: str, index: int, quote: str, tag_start: int) -> int:
    # index points just past the opening quote; returns the index past the closing one.
    length = len(source)
    while index < length:
        char = source[index]
        if char == "\\":
            index += 2
            continue
        if source.startswith(quote, index):
            return index + len(quote)
        index += 1
    raise _syntax_error("Unterminated string literal in tag", source, tag_start)


def _find_close(source: str, index: int, close_tag: str, tag_start: int) -> Tuple[int, int, Optional[TrimMode]]:
    """Returns (content_end, end_of_close_delimiter, right_trim_modifier)."""
    content_start = index
    length = len(source)
    while index < length:
        if source.startswith(close_tag, index):
            modifier = None
            content_end = index
            if index > content_start and source[index - 1] in WS_MODIFIERS:
                modifier = WS_MODIFIERS[source[index - 1]]
                content_end = index - 1
            return content_end, index + len(close_tag), modifier
        char = source[index]
        if char in "'\"":
            quote = next(q for q in STRING_OPENERS if source.startswith(q, index))
            index = _skip_string(source, index + len(quote), quote, tag_start)
            continue
        if char == "#":
            # comment runs to the end of the line or the close delimiter
            newline = source.find("\n", index)
            close = source.find(close_tag, index)
            candidates = [pos for pos in (newline, close) if pos != -1]
            index = min(candidates) if candidates else length
            continue
        index += 1
    raise _syntax_error(f"Unclosed tag: missing '{close_tag}'", source, tag_start)


def _classify(source: str, index: int, options: RenderOptions) -> Tuple[SegmentKind, int]:
    prefixes = [
        (options.raw_prefix, SegmentKind.RAW),
        (options.interpolate_prefix, SegmentKind.INTERPOLATION),
    ]
    # longest prefix first so that e.g. "==" wins over "="
    for prefix, kind in sorted(prefixes, key=lambda item: len(item[0]), reverse=True):
        if prefix and source.startswith(prefix, index):
            return kind, index + len(prefix)
    return SegmentKind.STATEMENT, index


def scan(source: str, options: Optional[RenderOptions] = None) -> List[Segment]:
    """Splits `source` into an ordered list of segments."""
    options = options or RenderOptions()
    open_tag, close_tag = options.tags
    auto_left, auto_right = options.auto_trim
    segments: List[Segment] = []

    cursor = 0
    trim_after_previous_tag = TrimMode.NONE  # nothing to trim before the first tag
    while True:
        tag_start = source.find(open_tag, cursor)
        if tag_start == -1:
            literal = trim_literal(source[cursor:], trim_after_previous_tag, TrimMode.NONE)
            if literal:
                segments.append(Segment(SegmentKind.LITERAL, literal, cursor))
            break

        index = tag_start + len(open_tag)
        left_modifier = None
        if index < len(source) and source[index] in WS_MODIFIERS:
            left_modifier = WS_MODIFIERS[source[index]]
            index += 1
        kind, index = _classify(source, index, options)

        literal = trim_literal(
            source[cursor:tag_start],
            trim_after_previous_tag,
            left_modifier or auto_left,
        )
        if literal:
            segments.append(Segment(SegmentKind.LITERAL, literal, cursor))

        content_end, cursor, right_modifier = _find_close(source, index, close_tag, tag_start)
        segments.append(Segment(kind, source[index:content_end], tag_start))
        trim_after_previous_tag = right_modifier or auto_right

    log.debug("template_scanned", segments=len(segments),
              tags=sum(1 for s in segments if s.kind is not SegmentKind.LITERAL))
    return segments
