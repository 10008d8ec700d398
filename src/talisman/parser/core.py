"""Template parser for Talisman.

Turns raw template text into a tree of ``Block`` nodes.

Grammar:
    ```
    <!--{#name}-->  ...  <!--{/name}-->    block (nestable)
    {name}  {a.b.c}  {name|mask|other}     tag
    ```

The scan is a single left-to-right pass over block markers with an explicit
stack. Text between two markers belongs to the innermost open block and is
scanned for tags; text inside a nested pair is claimed by that nested block
and never scanned twice. Source order of text, tags, and blocks is kept
exactly.

Complexity: O(n) in the template length.

"""

from __future__ import annotations

from dataclasses import dataclass, field

from talisman.environment.exceptions import ErrorCode, MalformedTemplateError
from talisman.nodes import Block, Tag, Text
from talisman.utils.constants import BLOCK_MARKER_RE, ROOT_NAME, TAG_RE


@dataclass(slots=True)
class _OpenBlock:
    """A block whose end marker has not been seen yet."""

    name: str
    start: int
    lineno: int
    col_offset: int
    content: list[Text | Tag | Block] = field(default_factory=list)


class Parser:
    """Recursive block/tag parser.

    Example:
            >>> root = Parser("<ul><!--{#row}--><li>{label}</li><!--{/row}--></ul>").parse()
            >>> [type(n).__name__ for n in root.content]
            ['Text', 'Block', 'Text']
            >>> root.find("row").tags[0].name
            'label'

    Raises:
        MalformedTemplateError: Unbalanced, mismatched, or unnamed blocks

    """

    __slots__ = ("_filename", "_name", "_source")

    def __init__(
        self,
        source: str,
        name: str | None = None,
        filename: str | None = None,
    ):
        self._source = source
        self._name = name
        self._filename = filename

    def parse(self) -> Block:
        """Parse the whole source into a synthetic root block."""
        source = self._source
        stack: list[_OpenBlock] = [_OpenBlock(ROOT_NAME, 0, 1, 0)]
        pos = 0

        for match in BLOCK_MARKER_RE.finditer(source):
            frame = stack[-1]
            frame.content.extend(self._scan_tags(pos, match.start()))
            pos = match.end()

            name = match["name"]
            if not name:
                raise self._error(
                    "Block name must not be empty",
                    match.start(),
                    ErrorCode.EMPTY_BLOCK_NAME,
                )

            if match["kind"] == "#":
                lineno, col = self._location(match.start())
                stack.append(_OpenBlock(name, match.start(), lineno, col))
                continue

            if len(stack) == 1:
                raise self._error(
                    f"Unexpected end of block '{name}' with no matching start",
                    match.start(),
                    ErrorCode.UNEXPECTED_BLOCK_END,
                )
            if frame.name != name:
                raise self._error(
                    f"Block '{frame.name}' (opened on line {frame.lineno}) "
                    f"closed by end of block '{name}'",
                    match.start(),
                    ErrorCode.MISMATCHED_BLOCK,
                )

            stack.pop()
            stack[-1].content.append(
                Block(
                    lineno=frame.lineno,
                    col_offset=frame.col_offset,
                    name=frame.name,
                    raw_text=source[frame.start : match.end()],
                    content=tuple(frame.content),
                )
            )

        if len(stack) > 1:
            unclosed = stack[-1]
            raise self._error(
                f"Block '{unclosed.name}' is never closed",
                unclosed.start,
                ErrorCode.UNCLOSED_BLOCK,
            )

        root = stack[0]
        root.content.extend(self._scan_tags(pos, len(source)))
        return Block(
            lineno=1,
            col_offset=0,
            name=ROOT_NAME,
            raw_text=source,
            content=tuple(root.content),
        )

    def _scan_tags(self, start: int, end: int) -> list[Text | Tag]:
        """Split source[start:end] into Text and Tag nodes."""
        nodes: list[Text | Tag] = []
        source = self._source
        pos = start
        for match in TAG_RE.finditer(source, start, end):
            if match.start() > pos:
                nodes.append(self._text(pos, match.start()))
            lineno, col = self._location(match.start())
            masks = tuple(m for m in match["masks"].split("|") if m)
            nodes.append(
                Tag(
                    lineno=lineno,
                    col_offset=col,
                    name=match["name"],
                    raw=match.group(0),
                    masks=masks,
                )
            )
            pos = match.end()
        if pos < end:
            nodes.append(self._text(pos, end))
        return nodes

    def _text(self, start: int, end: int) -> Text:
        lineno, col = self._location(start)
        return Text(lineno=lineno, col_offset=col, value=self._source[start:end])

    def _location(self, offset: int) -> tuple[int, int]:
        """1-based line and 0-based column of a source offset."""
        source = self._source
        lineno = source.count("\n", 0, offset) + 1
        col = offset - (source.rfind("\n", 0, offset) + 1)
        return lineno, col

    def _error(self, message: str, offset: int, code: ErrorCode) -> MalformedTemplateError:
        lineno, col = self._location(offset)
        return MalformedTemplateError(
            message,
            lineno=lineno,
            name=self._name,
            filename=self._filename,
            source=self._source,
            col_offset=col,
            code=code,
        )


def parse(source: str, name: str | None = None, filename: str | None = None) -> Block:
    """Parse template text into a block tree.

    Args:
        source: Template text
        name: Template name for error messages
        filename: Source file path for error messages

    Returns:
        The synthetic root block (name ``""``)

    Raises:
        MalformedTemplateError: Unbalanced, mismatched, or unnamed blocks
        TypeError: If ``source`` is not a string
    """
    if not isinstance(source, str):
        raise TypeError(f"Template source must be a string, got {type(source).__name__}")
    return Parser(source, name=name, filename=filename).parse()
