# etch/core/codegen.py
"""
Turns a segment list into the Python source of one render function.

Statement tags are spliced in verbatim. A statement whose last line ends with
a colon opens a block that stays open across the following segments until an
`end` tag (`<% end %>`, `<% endif %>`, ...). `elif`/`else`/`except`/`finally`
statements close the running block and open the next one.
"""
import io
import re
import textwrap
import tokenize
from typing import List, Tuple
import structlog

from etch.config.settings import RenderOptions
from etch.exceptions import TemplateSyntaxError
from etch.util import offset_to_line_column

from .scanner import Segment, SegmentKind

log = structlog.get_logger(__name__)

FUNCTION_NAME = "__etch_template"
ACCUMULATOR = "tR"
INDENT_STEP = 4

END_RE = re.compile(r"^end\w*$")
CONTINUATION_RE = re.compile(r"^(elif|else|except|finally)\b")
NON_CODE_TOKENS = {
    tokenize.COMMENT, tokenize.NL, tokenize.NEWLINE,
    tokenize.INDENT, tokenize.DEDENT, tokenize.ENDMARKER,
}


def opens_block(line: str) -> bool:
    """True when the last code token of `line`, ignoring comments, is a colon."""
    last = None
    try:
        for token in tokenize.generate_tokens(io.StringIO(line.strip()).readline):
            if token.type not in NON_CODE_TOKENS:
                last = token
    except (tokenize.TokenError, SyntaxError):
        # one line of a longer statement (an unclosed bracket or string): it cannot end a block header
        return False
    return last is not None and last.type == tokenize.OP and last.string == ":"


def is_code_line(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and not stripped.startswith("#")


class CodeBuilder:
    """Collects source lines at the current indentation."""

    def __init__(self, indent_level: int = 0):
        self.lines: List[str] = []
        self.indent_level = indent_level

    def add_line(self, line: str):
        self.lines.append(" " * self.indent_level + line)

    def indent(self):
        self.indent_level += INDENT_STEP

    def dedent(self):
        self.indent_level -= INDENT_STEP

    def __str__(self) -> str:
        return "\n".join(self.lines) + "\n"


class CodeGenerator:
    """Builds the render function for one template; use `generate()` for a one-shot call."""

    def __init__(self, options: RenderOptions, template_source: str = ""):
        self.options = options
        self.template_source = template_source
        self.code = CodeBuilder()
        # (indent level to restore, segment that opened the block, line count when opened)
        self.blocks: List[Tuple[int, Segment, int]] = []

    def _error(self, message: str, segment: Segment) -> TemplateSyntaxError:
        line, column = offset_to_line_column(self.template_source, segment.position)
        return TemplateSyntaxError(
            f"{message} at line {line}, column {column}",
            position=segment.position, line=line, column=column,
        )

    def generate(self, segments: List[Segment]) -> str:
        options = self.options
        code = self.code
        var = options.var_name
        prefix = "async def" if options.is_async else "def"
        awaiting = "await " if options.is_async else ""

        code.add_line(f"{prefix} {FUNCTION_NAME}({var}, E, cb=None):")
        code.indent()
        code.add_line(f"{ACCUMULATOR} = E.buffer()" if options.uses_global_await else f"{ACCUMULATOR} = ''")
        code.add_line("__l = None")
        code.add_line("__lP = None")
        code.add_line("include = E.include")
        code.add_line("include_file = E.include_file")
        code.add_line("def layout(p, d=None):")
        code.indent()
        code.add_line("nonlocal __l, __lP")
        code.add_line("__l = p")
        code.add_line("__lP = d")
        code.dedent()

        for segment in segments:
            if segment.kind is SegmentKind.LITERAL:
                self._add_literal(segment)
            elif segment.kind is SegmentKind.STATEMENT:
                self._add_statement(segment)
            else:
                self._add_interpolation(segment)

        if self.blocks:
            _, opener, _ = self.blocks[-1]
            raise self._error("Unclosed block opened by statement tag", opener)

        if options.uses_global_await:
            code.add_line(f"{ACCUMULATOR} = await {ACCUMULATOR}.join()")
        code.add_line("if __l:")
        code.indent()
        code.add_line(f"{ACCUMULATOR} = {awaiting}include_file(__l, E.merge({var}, {{'body': {ACCUMULATOR}}}, __lP))")
        code.dedent()
        code.add_line("if cb:")
        code.indent()
        code.add_line(f"cb(None, {ACCUMULATOR})")
        code.dedent()
        code.add_line(f"return {ACCUMULATOR}")
        return str(code)

    def _add_literal(self, segment: Segment):
        if self.options.uses_global_await:
            self.code.add_line(f"{ACCUMULATOR}.write({segment.text!r})")
        else:
            self.code.add_line(f"{ACCUMULATOR} += {segment.text!r}")

    def _add_interpolation(self, segment: Segment):
        options = self.options
        expression = segment.text.strip() or "E.undefined"
        if "#" in expression:
            # keep a trailing comment from swallowing the closing parenthesis
            expression += "\n"
        escaped = segment.kind is SegmentKind.INTERPOLATION and options.auto_escape

        if options.uses_global_await:
            # filtering and escaping happen once the pending value is resolved
            self.code.add_line(f"{ACCUMULATOR}.push({expression}, escape={escaped})")
            return

        value = f"await E.resolve({expression})" if options.is_async else expression
        if options.filter_function is not None:
            value = f"E.f({value})"
        value = f"E.e({value})" if escaped else f"str({value})"
        self.code.add_line(f"{ACCUMULATOR} += {value}")

    def _statement_lines(self, text: str) -> List[str]:
        lines = text.strip("\n").split("\n")
        first = lines[0].strip()
        if not first:
            return [line.rstrip() for line in textwrap.dedent("\n".join(lines[1:])).strip("\n").split("\n")]
        rest = [line.rstrip() for line in textwrap.dedent("\n".join(lines[1:])).split("\n")] if len(lines) > 1 else []
        if rest and opens_block(first):
            rest = [" " * INDENT_STEP + line if line.strip() else line for line in rest]
        return [first] + [line for line in rest if line.strip()]

    def _add_statement(self, segment: Segment):
        if not segment.text.strip():
            return
        code = self.code
        lines = self._statement_lines(segment.text)
        first = lines[0].strip()

        if END_RE.match(first):
            if len(lines) > 1:
                raise self._error(f"'{first}' must be alone in its tag", segment)
            self._close_block(segment)
            return

        reopen = CONTINUATION_RE.match(first)
        if reopen:
            if not self.blocks:
                raise self._error(f"'{reopen.group(1)}' without an open block", segment)
            self._close_block(segment)

        for line in lines:
            code.add_line(line)

        last = lines[-1]
        if opens_block(last):
            last_indent = len(last) - len(last.lstrip())
            self.blocks.append((code.indent_level, segment, len(code.lines)))
            code.indent_level += last_indent + INDENT_STEP

    def _close_block(self, segment: Segment):
        if not self.blocks:
            raise self._error("'end' without an open block", segment)
        restore_level, _, line_count = self.blocks.pop()
        if not any(is_code_line(line) for line in self.code.lines[line_count:]):
            self.code.add_line("pass")
        self.code.indent_level = restore_level


def generate(segments: List[Segment], options: RenderOptions, template_source: str = "") -> str:
    """Returns the render function source for `segments`."""
    source = CodeGenerator(options, template_source).generate(segments)
    log.debug("render_function_generated", is_async=options.is_async,
              global_await=options.uses_global_await, lines=source.count("\n"))
    return source
