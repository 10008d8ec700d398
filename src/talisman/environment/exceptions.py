"""Exceptions for the Talisman template system.

Exception Hierarchy:
TemplateError (base)
├── TemplateNotFoundError       # Template not found by loader
├── TemplateSyntaxError         # Parse-time syntax error
│   └── MalformedTemplateError  # Unbalanced or unnamed block delimiters
└── ValueResolutionError        # A bound value failed while rendering

Invalid arguments to the public mutators raise the built-in ``TypeError``.

Error Messages:
Syntax errors carry the source location and a snippet of the offending
line; resolution errors name the tag or block and keep the original
exception as ``__cause__``.

Example:
    ```
    Syntax Error: Block 'list' closed by '<!--{/row}-->'
      --> page.html:12:4
       |
     12 |     <!--{/row}-->
       |     ^
    ```

"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------


class ErrorCode(Enum):
    """Searchable error codes for Talisman template errors.

    Format: T-{CATEGORY}-{NUMBER}
    Categories: PAR (parser), RUN (runtime), TPL (template loading)
    """

    # Parser errors (T-PAR-xxx)
    UNCLOSED_BLOCK = "T-PAR-001"
    MISMATCHED_BLOCK = "T-PAR-002"
    UNEXPECTED_BLOCK_END = "T-PAR-003"
    EMPTY_BLOCK_NAME = "T-PAR-004"

    # Runtime errors (T-RUN-xxx)
    VALUE_RESOLUTION = "T-RUN-001"
    UNKNOWN_MASK = "T-RUN-002"
    MASK_ERROR = "T-RUN-003"
    STREAM_ERROR = "T-RUN-004"

    # Template loading errors (T-TPL-xxx)
    TEMPLATE_NOT_FOUND = "T-TPL-001"
    SYNTAX_ERROR = "T-TPL-002"

    @property
    def category(self) -> str:
        """Error category (e.g., 'runtime', 'parser', 'template')."""
        prefix = self.value.split("-")[1]
        return {
            "PAR": "parser",
            "RUN": "runtime",
            "TPL": "template",
        }.get(prefix, "unknown")


# ---------------------------------------------------------------------------
# Source snippets
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SourceSnippet:
    """Template source context around an error line.

    Attributes:
        lines: Tuple of (line_number, line_content) pairs around the error.
        error_line: The 1-based line number where the error occurred.
        column: Optional column offset for caret pointer.
    """

    lines: tuple[tuple[int, str], ...]
    error_line: int
    column: int | None = None

    def format(self) -> str:
        """Format snippet in Rust-inspired diagnostic style."""
        parts: list[str] = ["   |"]
        for lineno, content in self.lines:
            marker = ">" if lineno == self.error_line else " "
            parts.append(f"{marker}{lineno:>3} | {content}")
            if lineno == self.error_line and self.column is not None:
                parts.append(f"     | {' ' * self.column}^")
        parts.append("   |")
        return "\n".join(parts)


def build_source_snippet(
    source: str,
    error_line: int,
    *,
    context_lines: int = 2,
    column: int | None = None,
) -> SourceSnippet:
    """Build a SourceSnippet from template source.

    Args:
        source: Full template source text.
        error_line: 1-based line number of the error.
        context_lines: Number of lines to show before/after the error line.
        column: Optional column offset for caret pointer.
    """
    all_lines = source.splitlines()
    start = max(0, error_line - 1 - context_lines)
    end = min(len(all_lines), error_line + context_lines)
    lines = tuple((i + 1, all_lines[i]) for i in range(start, end))
    return SourceSnippet(lines=lines, error_line=error_line, column=column)


class TemplateError(Exception):
    """Base exception for all Talisman template errors.

    Attributes:
        code: Optional ErrorCode for searchable error identification.
    """

    code: ErrorCode | None = None

    def format_compact(self) -> str:
        """Format error as a short, human-readable summary.

        Used by the error document so that browsers show a clean message
        instead of a Python traceback.
        """
        header = str(self)
        if self.code and self.code.value not in header:
            header = f"{self.code.value}: {header}"
        return header


class TemplateNotFoundError(TemplateError):
    """Template not found by any configured loader.

    Example:
            >>> env.create("nonexistent.html")
        TemplateNotFoundError: Template 'nonexistent.html' not found in: templates/

    """

    code: ErrorCode | None = ErrorCode.TEMPLATE_NOT_FOUND


class TemplateSyntaxError(TemplateError):
    """Parse-time syntax error in template source.

    When ``source`` and ``lineno`` are provided, the error message includes
    a source snippet with the offending line. If ``col_offset`` is also
    given, a caret (``^``) points at the exact column.
    """

    code: ErrorCode | None = ErrorCode.SYNTAX_ERROR

    def __init__(
        self,
        message: str,
        lineno: int | None = None,
        name: str | None = None,
        filename: str | None = None,
        source: str | None = None,
        col_offset: int | None = None,
        code: ErrorCode | None = None,
    ):
        self.message = message
        self.lineno = lineno
        self.name = name
        self.filename = filename
        self.source = source
        self.col_offset = col_offset
        if code is not None:
            self.code = code
        super().__init__(self._format_message())

    @property
    def location(self) -> str:
        location = self.filename or self.name or "<template>"
        if self.lineno:
            location += f":{self.lineno}"
            if self.col_offset is not None:
                location += f":{self.col_offset}"
        return location

    def _format_message(self) -> str:
        header = f"Syntax Error: {self.message}\n  --> {self.location}"

        if self.source and self.lineno:
            snippet = build_source_snippet(
                self.source, self.lineno, context_lines=0, column=self.col_offset
            )
            if snippet.lines:
                return header + "\n" + snippet.format()

        return header

    def format_compact(self) -> str:
        code_prefix = f"{self.code.value}: " if self.code else ""
        return f"{code_prefix}{self.message} ({self.location})"


class MalformedTemplateError(TemplateSyntaxError):
    """Block delimiters are unbalanced, mismatched, or unnamed.

    Structural errors are fatal to parsing. Once a template is being
    rendered they surface as an error document rather than an exception.
    """

    code: ErrorCode | None = ErrorCode.UNCLOSED_BLOCK


class ValueResolutionError(TemplateError):
    """A bound value could not be resolved during rendering.

    Raised inside the renderer when a deferred value rejects, a stream
    errors, or a mask fails. The renderer catches it, logs it, renders the
    tag's placeholder (or nothing, for blocks), and carries on.

    Attributes:
        target: Tag or block name whose value failed
        kind: "tag" or "block"
        template_name: Name of the template being rendered
    """

    code: ErrorCode | None = ErrorCode.VALUE_RESOLUTION

    def __init__(
        self,
        target: str,
        message: str,
        *,
        kind: str = "tag",
        template_name: str | None = None,
        code: ErrorCode | None = None,
    ):
        self.target = target
        self.message = message
        self.kind = kind
        self.template_name = template_name
        if code is not None:
            self.code = code
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        location = self.template_name or "<template>"
        return f"Could not resolve {self.kind} '{self.target}' in {location}: {self.message}"
