"""HTML escaping for rendered tag values.

Single-pass escaping via ``str.translate()``. ``Markup`` marks a string as
already safe so the renderer emits it verbatim.
"""

from __future__ import annotations

from typing import Any

_ESCAPE_TABLE = str.maketrans(
    {
        "&": "&amp;",
        "<": "&lt;",
        ">": "&gt;",
        '"': "&quot;",
        "'": "&#x27;",
    }
)


class Markup(str):
    """A string that is safe to emit without escaping.

    Example:
            >>> html_escape(Markup("<b>bold</b>"))
            '<b>bold</b>'
    """

    __slots__ = ()

    def __html__(self) -> str:
        return str(self)

    def __repr__(self) -> str:
        return f"Markup({super().__repr__()})"


def html_escape(value: Any) -> str:
    """Escape ``& < > " '`` in the string form of ``value``.

    Objects implementing ``__html__`` (such as ``Markup``) are returned
    unescaped.

    Complexity: O(n) single pass.
    """
    if hasattr(value, "__html__"):
        return value.__html__()
    return str(value).translate(_ESCAPE_TABLE)
