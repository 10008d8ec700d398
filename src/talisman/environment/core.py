"""Talisman Environment: configuration and template factory.

The Environment holds render settings and the loader, and creates
``Template`` objects. Settings are plain instance attributes fixed at
construction, so several environments with different settings coexist in
one process.

Example:
    ```python
    env = Environment(loader=FileSystemLoader("views/"), show_undefined_tags=False)
    page = env.create("index.html")
    ```

"""

from __future__ import annotations

import codecs
import logging
from typing import TYPE_CHECKING

from talisman.environment.exceptions import TemplateError
from talisman.environment.loaders import FileSystemLoader, Loader
from talisman.parser import parse

if TYPE_CHECKING:
    from talisman.nodes import Block
    from talisman.template import Template

logger = logging.getLogger(__name__)


def _positive(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < 1:
        raise ValueError(f"{name} must be at least 1, got {value}")
    return value


class Environment:
    """Settings shared by the templates it creates.

    Attributes:
        loader: Source of template and fragment text
        autoescape: HTML-escape tag values unless bound raw
        show_undefined_tags: Render unresolved tags as their ``{name}``
            placeholder; when False they render as nothing
        debug: Put the full diagnostic (with source snippet) in error pages
        strict: Raise template errors from ``create()``/``from_string()``
            instead of deferring them to an error page at render time
        encoding: Encoding of the output byte stream
        high_water_mark: Output chunks buffered before rendering pauses
        lookahead: Segments the renderer may resolve ahead of the output

    Example:
            >>> env = Environment(loader=DictLoader({"hi.html": "Hi {name}"}))
            >>> await env.create("hi.html").bind("name", "Ann").render_async()
            'Hi Ann'

    """

    __slots__ = (
        "autoescape",
        "debug",
        "encoding",
        "high_water_mark",
        "loader",
        "lookahead",
        "show_undefined_tags",
        "strict",
    )

    def __init__(
        self,
        *,
        loader: Loader | None = None,
        autoescape: bool = True,
        show_undefined_tags: bool = True,
        debug: bool = False,
        strict: bool = False,
        encoding: str = "utf-8",
        high_water_mark: int = 16,
        lookahead: int = 64,
    ):
        if loader is not None and not callable(getattr(loader, "get_source", None)):
            raise TypeError(f"loader must have a get_source() method, got {type(loader).__name__}")
        codecs.lookup(encoding)
        self.loader: Loader = loader if loader is not None else FileSystemLoader(".")
        self.autoescape = bool(autoescape)
        self.show_undefined_tags = bool(show_undefined_tags)
        self.debug = bool(debug)
        self.strict = bool(strict)
        self.encoding = encoding
        self.high_water_mark = _positive("high_water_mark", high_water_mark)
        self.lookahead = _positive("lookahead", lookahead)

    def parse(self, source: str, name: str | None = None, filename: str | None = None) -> Block:
        """Parse template text into its root block.

        Raises:
            MalformedTemplateError: If block delimiters are unbalanced
        """
        return parse(source, name=name, filename=filename)

    def parse_file(self, name: str) -> Block:
        """Load ``name`` through the loader and parse it.

        Raises:
            TemplateNotFoundError: If the loader cannot find it
            MalformedTemplateError: If it does not parse
        """
        source, filename = self.loader.get_source(name)
        return self.parse(source, name=name, filename=filename)

    def from_string(self, source: str, name: str | None = None) -> Template:
        """Create a template from text.

        A malformed template is returned in its error state (rendering an
        error page) unless the environment is strict.
        """
        if not isinstance(source, str):
            raise TypeError(f"source must be a string, got {type(source).__name__}")
        from talisman.template import Template

        try:
            root = self.parse(source, name=name)
        except TemplateError as e:
            return self._failed(e, name, None)
        return Template(self, root, name=name)

    def create(self, name: str) -> Template:
        """Create a template from the loader.

        A missing or malformed template is returned in its error state
        unless the environment is strict.
        """
        if not isinstance(name, str):
            raise TypeError(f"name must be a string, got {type(name).__name__}")
        from talisman.template import Template

        filename = None
        try:
            source, filename = self.loader.get_source(name)
            root = self.parse(source, name=name, filename=filename)
        except TemplateError as e:
            return self._failed(e, name, filename)
        return Template(self, root, name=name, filename=filename)

    get_template = create

    def _failed(self, error: TemplateError, name: str | None, filename: str | None) -> Template:
        if self.strict:
            raise error
        from talisman.template import Template

        logger.error("Template '%s' is unusable: %s", name or "<string>", error.format_compact())
        return Template(self, None, name=name, filename=filename, error=error)

    def __repr__(self) -> str:
        return (
            f"<Environment loader={type(self.loader).__name__} "
            f"autoescape={self.autoescape} strict={self.strict}>"
        )
