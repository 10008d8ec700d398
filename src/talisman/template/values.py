"""Bound values: one tagged variant for everything ``bind()`` accepts.

``BoundValue.of()`` is the single dispatch point that classifies a Python
value once, at bind time. The renderer then switches on ``ValueKind``
instead of inspecting types all over the place.

Kinds:
    LITERAL   str, numbers, bool, None, lists, dicts, other objects
    DEFERRED  awaitables (coroutines, Tasks, Futures); settle exactly once
    STREAM    async iterables and one-shot iterators; zero or more chunks
    CALLABLE  plain callables; called at render time, result re-dispatched
    FRAGMENT  a parsed Block loaded from another file
    FAILED    a load failure, rendered as the placeholder

"""

from __future__ import annotations

import inspect
import json
from collections.abc import AsyncIterable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from talisman.nodes import Block
from talisman.utils.html import Markup


class ValueKind(Enum):
    LITERAL = "literal"
    DEFERRED = "deferred"
    STREAM = "stream"
    CALLABLE = "callable"
    FRAGMENT = "fragment"
    FAILED = "failed"


class _Undefined:
    """Sentinel for a lookup that found nothing."""

    __slots__ = ()

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNDEFINED"


UNDEFINED: Any = _Undefined()


@dataclass(frozen=True, slots=True)
class BoundValue:
    """A value bound to a tag or block name.

    Attributes:
        kind: How the renderer must resolve the payload
        payload: The bound object itself
        raw: Emit without HTML escaping
    """

    kind: ValueKind
    payload: Any
    raw: bool = False

    @classmethod
    def of(cls, value: Any, *, raw: bool = False) -> BoundValue:
        """Classify ``value``.

        Example:
                >>> BoundValue.of("Ann").kind
                <ValueKind.LITERAL: 'literal'>
                >>> BoundValue.of(asyncio.sleep(0, "x")).kind
                <ValueKind.DEFERRED: 'deferred'>
        """
        if isinstance(value, BoundValue):
            return value
        raw = raw or isinstance(value, Markup)
        if isinstance(value, Block):
            return cls(ValueKind.FRAGMENT, value, raw)
        if inspect.isawaitable(value):
            return cls(ValueKind.DEFERRED, value, raw)
        if isinstance(value, AsyncIterable):
            return cls(ValueKind.STREAM, value, raw)
        if isinstance(value, Iterator) and not isinstance(value, (str, bytes)):
            return cls(ValueKind.STREAM, value, raw)
        if callable(value) and not isinstance(value, type):
            return cls(ValueKind.CALLABLE, value, raw)
        return cls(ValueKind.LITERAL, value, raw)

    @classmethod
    def failed(cls, error: BaseException) -> BoundValue:
        return cls(ValueKind.FAILED, error)

    @property
    def is_async(self) -> bool:
        return self.kind in (ValueKind.DEFERRED, ValueKind.STREAM)


def _json_default(value: Any) -> str:
    return str(value)


def stringify(value: Any) -> str:
    """Canonical string form of a resolved value.

    ``None`` renders as nothing, strings as themselves, and containers and
    booleans as compact JSON, so an array bound to a tag comes out the same
    way a browser-side consumer would serialize it.

    Example:
            >>> stringify(["Melons", "Apples"])
            '["Melons","Apples"]'
            >>> stringify(7790.25)
            '7790.25'
    """
    if value is None or value is UNDEFINED:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, (bool, list, tuple, Mapping)):
        return json.dumps(
            value if not isinstance(value, Mapping) else dict(value),
            separators=(",", ":"),
            ensure_ascii=False,
            default=_json_default,
        )
    return str(value)


def get_field(obj: Any, name: str) -> Any:
    """Key or attribute access, returning UNDEFINED when absent.

    Mappings use subscript first so keys like ``items`` resolve to user
    data rather than dict methods; other objects use getattr first. Names
    starting with an underscore are never read as attributes.
    """
    if obj is None or obj is UNDEFINED:
        return UNDEFINED
    if isinstance(obj, Mapping):
        try:
            return obj[name]
        except KeyError:
            return UNDEFINED
    try:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(obj, name)
    except AttributeError:
        try:
            return obj[name]
        except (KeyError, TypeError, IndexError):
            return UNDEFINED


def lookup_path(root: Any, path: list[str]) -> Any:
    """Follow dotted ``path`` segments from ``root``."""
    value = root
    for segment in path:
        value = get_field(value, segment)
        if value is UNDEFINED:
            break
    return value
