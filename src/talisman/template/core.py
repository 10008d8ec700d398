"""Talisman Template: one parsed document plus its render-time bindings.

A Template is created by ``Environment.create()`` / ``from_string()``, then
configured through chainable synchronous mutators and finally rendered as a
byte stream.

Architecture:
    ```
    Template
    ├── root: Block                      # Parsed content tree
    ├── variables: {name: BoundValue}    # Tag and block bindings
    ├── iterators: {name: BoundValue}    # Repeating row sources
    ├── gates: {name: awaitable}         # wait_until() readiness signals
    ├── hidden / shown: set[str]         # Visibility marks
    └── masks: MaskRegistry              # Value transforms
    ```

Block-addressed names (``remove``, ``set_iterator``, ``wait_until``,
``show_undefined_block``) accept either a bare block name or the two-part
``container:block`` form; the qualified key is tried first when rendering.

Example:
    ```python
    page = env.create("page.html")
    page.bind("title", fetch_title()).add_mask("upper", str.upper, "header")
    page.set_iterator(rows, "results:row")
    async for chunk in page.render():
        await send(chunk)
    ```

"""

from __future__ import annotations

import inspect
import logging
from collections.abc import AsyncIterable, Awaitable, Iterator, Mapping
from pathlib import PurePath
from typing import TYPE_CHECKING, Any

from talisman.environment.exceptions import TemplateError
from talisman.environment.registry import MaskRegistry
from talisman.output import OutputStream
from talisman.render_context import async_render_context
from talisman.template.renderer import StreamingRenderer
from talisman.template.values import BoundValue
from talisman.utils.constants import ERROR_DOCUMENT
from talisman.utils.html import html_escape

if TYPE_CHECKING:
    from talisman.environment import Environment
    from talisman.nodes import Block

logger = logging.getLogger(__name__)

_MISSING: Any = object()


def _check_name(value: Any, what: str = "name") -> str:
    if not isinstance(value, str):
        raise TypeError(f"{what} must be a string, got {type(value).__name__}")
    if not value:
        raise ValueError(f"{what} must not be empty")
    return value


class Template:
    """A parsed template with its bindings.

    All mutators validate their arguments before touching any state, raise
    ``TypeError`` on a wrongly typed argument, and return ``self``.

    Attributes:
        variables: Tag and block bindings (last write wins)
        iterators: Row sources bound with ``set_iterator()``
        gates: Awaitables registered with ``wait_until()``
        hidden: Block names removed from the output
        shown: Block names forced visible without data
        masks: Registered value transforms

    Example:
            >>> t = env.from_string("<p id='x'>{name}</p>")
            >>> await t.bind("name", "Ann").render_async()
            "<p id='x'>Ann</p>"

    """

    __slots__ = (
        "_env",
        "_error",
        "_filename",
        "_name",
        "_root",
        "gates",
        "hidden",
        "iterators",
        "masks",
        "shown",
        "variables",
    )

    def __init__(
        self,
        env: Environment,
        root: Block | None,
        name: str | None = None,
        filename: str | None = None,
        error: TemplateError | None = None,
    ):
        self._env = env
        self._root = root
        self._name = name
        self._filename = filename
        self._error = error
        self.variables: dict[str, BoundValue] = {}
        self.iterators: dict[str, BoundValue] = {}
        self.gates: dict[str, Awaitable[Any]] = {}
        self.hidden: set[str] = set()
        self.shown: set[str] = set()
        self.masks = MaskRegistry()

    # -- properties ----------------------------------------------------------

    @property
    def environment(self) -> Environment:
        return self._env

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def filename(self) -> str | None:
        return self._filename

    @property
    def root(self) -> Block:
        if self._root is None:
            raise RuntimeError(f"Template '{self._name}' has no content: {self._error}")
        return self._root

    @property
    def is_valid(self) -> bool:
        """False when the template failed to load or parse, or ``error()`` was called."""
        return self._error is None

    @property
    def error_info(self) -> TemplateError | None:
        return self._error

    @property
    def blocks(self) -> list[str]:
        """Names of every block in the template, in document order."""
        if self._root is None:
            return []
        return self._root.block_names()

    # -- bindings ------------------------------------------------------------

    def bind(self, name: Any, value: Any = _MISSING, *, raw: bool = False) -> Template:
        """Bind a value to a tag or block name.

        ``bind(mapping)`` binds every key of the mapping. ``raw=True`` emits
        the value without HTML escaping.

        Raises:
            TypeError: If ``name`` is not a string, or a single argument is
                not a mapping
        """
        if value is _MISSING:
            if not isinstance(name, Mapping):
                raise TypeError(
                    f"bind() with one argument expects a mapping, got {type(name).__name__}"
                )
            return self.bind_many(name, raw=raw)
        self.variables[_check_name(name)] = BoundValue.of(value, raw=raw)
        return self

    set = bind

    def bind_many(self, mapping: Mapping[str, Any], *, raw: bool = False) -> Template:
        """Bind every item of ``mapping``; nothing is bound if any key is invalid."""
        if not isinstance(mapping, Mapping):
            raise TypeError(f"bind_many() expects a mapping, got {type(mapping).__name__}")
        for key in mapping:
            _check_name(key)
        for key, value in mapping.items():
            self.variables[key] = BoundValue.of(value, raw=raw)
        return self

    def load(self, path: Any, block_name: Any = None) -> Template:
        """Load a fragment through the environment's loader and bind it.

        The fragment is parsed and bound under ``block_name``, by default
        the file name of ``path`` without its extension, so ``{name}`` or a
        ``<!--{#name}-->`` block renders it in place. A missing or malformed
        fragment is bound as a failure and renders as its placeholder.

        Raises:
            TypeError: If ``path`` or ``block_name`` is not a string
        """
        _check_name(path, "path")
        if block_name is None:
            block_name = PurePath(path).stem
        _check_name(block_name, "block_name")

        try:
            fragment = self._env.parse_file(path)
        except TemplateError as e:
            logger.warning("Failed to load '%s' as block '%s': %s", path, block_name, e)
            self.variables[block_name] = BoundValue.failed(e)
        else:
            self.variables[block_name] = BoundValue.of(fragment)
        return self

    # -- masks ---------------------------------------------------------------

    def add_mask(self, name: Any, fn: Any, scope: Any = None) -> Template:
        """Register a value transform.

        Args:
            name: Mask name, usable in ``{tag|name}`` pipes
            fn: Callable taking the value; may be async
            scope: Block name limiting the mask, None for global
        """
        _check_name(name)
        if not callable(fn):
            raise TypeError(f"mask must be callable, got {type(fn).__name__}")
        if scope is not None:
            _check_name(scope, "scope")
        self.masks.add(name, fn, scope)
        return self

    # -- visibility ----------------------------------------------------------

    def show_undefined_block(self, name: Any) -> Template:
        """Render block ``name`` even though nothing inside it is bound."""
        self.shown.add(_check_name(name))
        return self

    def remove(self, name: Any) -> Template:
        """Hide block ``name``. Hiding wins over every other rule."""
        self.hidden.add(_check_name(name))
        return self

    def restore(self, name: Any) -> Template:
        """Undo ``remove(name)``; a no-op when the block is not hidden."""
        self.hidden.discard(_check_name(name))
        return self

    def wait_until(self, deferred: Any, block_name: Any) -> Template:
        """Hold back block ``block_name`` until ``deferred`` settles.

        A failure of ``deferred`` does not change visibility by itself; the
        caller decides what to show from its own failure handler, which
        runs before the block is rendered.
        """
        if not inspect.isawaitable(deferred):
            raise TypeError(f"wait_until() expects an awaitable, got {type(deferred).__name__}")
        self.gates[_check_name(block_name, "block_name")] = deferred
        return self

    # -- iterators -----------------------------------------------------------

    def set_iterator(self, source: Any, block_name: Any) -> Template:
        """Render block ``block_name`` once per item of ``source``.

        ``source`` may be a list or tuple, an awaitable resolving to one, an
        async iterable such as ``ObjectStream``, or an iterator. Each item
        shadows outer bindings while its copy of the block renders.

        One-shot sources (async iterables, iterators) are drained by the
        first block that renders them; later blocks of the same name get
        no rows. Bind a list to repeat rows.
        """
        valid = (
            isinstance(source, (list, tuple, AsyncIterable, Iterator))
            or inspect.isawaitable(source)
        ) and not isinstance(source, (str, bytes))
        if not valid:
            raise TypeError(
                f"set_iterator() expects a sequence, awaitable or stream, "
                f"got {type(source).__name__}"
            )
        self.iterators[_check_name(block_name, "block_name")] = BoundValue.of(source)
        return self

    def error(self, message: Any) -> Template:
        """Replace the output of every later render with an error page."""
        if not isinstance(message, str):
            raise TypeError(f"message must be a string, got {type(message).__name__}")
        self._error = TemplateError(message)
        return self

    # -- rendering -----------------------------------------------------------

    def render(self) -> OutputStream:
        """Start a lazy render.

        Nothing runs until the returned stream is first read. Template
        errors never raise here; a broken template streams an error page.
        """
        env = self._env
        return OutputStream(
            self._drive,
            encoding=env.encoding,
            high_water_mark=env.high_water_mark,
        )

    async def render_async(self) -> str:
        """Render to a string."""
        return await self.render().text()

    def _error_document(self, error: TemplateError) -> str:
        message = str(error) if self._env.debug else error.format_compact()
        return ERROR_DOCUMENT.format(message=html_escape(message))

    async def _drive(self, output: OutputStream) -> None:
        async with async_render_context(
            template_name=self._name,
            filename=self._filename,
            debug=self._env.debug,
        ) as ctx:
            output.failures = ctx.failures
            if self._error is not None:
                logger.error("Rendering error document for '%s': %s", self._name, self._error)
                await output.write(self._error_document(self._error))
                return

            renderer = StreamingRenderer(self, output)
            try:
                await renderer.run()
            except Exception as e:
                logger.exception("Render of '%s' failed", self._name)
                output.error = e
                await output.write(f"<!-- Error: {html_escape(str(e) or type(e).__name__)} -->")

    def __repr__(self) -> str:
        state = "valid" if self.is_valid else "error"
        return f"<Template {self._name or '<string>'!r} {state}>"

