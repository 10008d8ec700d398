"""Mask registry for Talisman templates.

A mask is a named transform applied to a tag's resolved value before it is
stringified and escaped. Masks are registered globally or scoped to a block
name; a scoped mask only reaches tags nested (at any depth) in a block of
that name.

Precedence:
    - Application order is global first, then outermost ancestor scope,
      then nearer scopes, so the most specific mask runs last.
    - On a name collision the most specific mask wins; within one scope the
      last one registered wins.

All mutations replace the internal tuple (copy-on-write), so a render that
has already taken ``snapshot()`` is unaffected by later registrations.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Mask:
    """A registered transform.

    Attributes:
        name: Mask name, referenced by ``{tag|name}`` pipes
        func: Callable taking the resolved value; may return an awaitable
        scope: Block name the mask is limited to, or None for global
    """

    name: str
    func: Callable[[Any], Any]
    scope: str | None = None

    @property
    def is_global(self) -> bool:
        return self.scope is None


class MaskRegistry:
    """Ordered collection of masks with scope-aware lookup.

    Example:
            >>> masks = MaskRegistry()
            >>> masks.add("shout", str.upper)
            >>> masks.add("shout", str.lower, scope="quiet")
            >>> [m.scope for m in masks.applicable(["page", "quiet"])]
            ['quiet']
            >>> [m.scope for m in masks.applicable(["page"])]
            [None]

    """

    __slots__ = ("_masks",)

    def __init__(self, masks: Sequence[Mask] = ()):
        self._masks: tuple[Mask, ...] = tuple(masks)

    def add(self, name: str, func: Callable[[Any], Any], scope: str | None = None) -> None:
        self._masks = (*self._masks, Mask(name, func, scope))

    def snapshot(self) -> MaskRegistry:
        """Independent copy for one render."""
        return MaskRegistry(self._masks)

    def _rank(self, mask: Mask, ancestors: Sequence[str]) -> int | None:
        """0 for global, 1..n for ancestor depth (nearest highest), None if out of scope."""
        if mask.is_global:
            return 0
        for depth in range(len(ancestors) - 1, -1, -1):
            if ancestors[depth] == mask.scope:
                return depth + 1
        return None

    def applicable(self, ancestors: Sequence[str]) -> list[Mask]:
        """Masks reaching a tag whose enclosing blocks are ``ancestors``.

        Args:
            ancestors: Enclosing block names, outermost first

        Returns:
            One mask per name, in application order
        """
        chosen: dict[str, tuple[int, int, Mask]] = {}
        for order, mask in enumerate(self._masks):
            rank = self._rank(mask, ancestors)
            if rank is None:
                continue
            current = chosen.get(mask.name)
            if current is None or (rank, order) >= current[:2]:
                chosen[mask.name] = (rank, order, mask)
        return [entry[2] for entry in sorted(chosen.values(), key=lambda e: e[:2])]

    def resolve(self, name: str, ancestors: Sequence[str]) -> Mask | None:
        """Most specific mask called ``name`` reaching ``ancestors``."""
        best: tuple[int, int, Mask] | None = None
        for order, mask in enumerate(self._masks):
            if mask.name != name:
                continue
            rank = self._rank(mask, ancestors)
            if rank is None:
                continue
            if best is None or (rank, order) >= best[:2]:
                best = (rank, order, mask)
        return best[2] if best else None

    def names(self) -> list[str]:
        return list(dict.fromkeys(m.name for m in self._masks))

    def __contains__(self, name: object) -> bool:
        return any(m.name == name for m in self._masks)

    def __iter__(self) -> Iterator[Mask]:
        return iter(self._masks)

    def __len__(self) -> int:
        return len(self._masks)

    def __repr__(self) -> str:
        return f"<MaskRegistry {self.names()}>"
