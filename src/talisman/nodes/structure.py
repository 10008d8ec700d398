"""Content tree nodes for Talisman.

A parsed template is a tree of ``Block`` nodes whose ``content`` interleaves
static ``Text``, variable ``Tag`` placeholders, and nested ``Block`` nodes in
exactly the order they appear in the source.

Blocks own their children by value. Nothing points back at a parent; the
renderer carries the ancestor chain explicitly while it walks.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from talisman.nodes.base import Node
from talisman.utils.constants import BLOCK_END, BLOCK_START, ROOT_NAME


@dataclass(frozen=True, slots=True)
class Text(Node):
    """Static text between tags and block markers."""

    value: str

    def source(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class Tag(Node):
    """Variable placeholder: {name} or {name|mask}.

    Attributes:
        name: Dotted lookup path (``user.email``)
        raw: Exact placeholder text, emitted when the tag is unresolved
        masks: Explicitly piped mask names, in application order
    """

    name: str
    raw: str
    masks: tuple[str, ...] = ()

    @property
    def root_name(self) -> str:
        """First segment of the lookup path."""
        return self.name.split(".", 1)[0]

    def source(self) -> str:
        return self.raw


@dataclass(frozen=True, slots=True)
class Block(Node):
    """Named, nestable template region: <!--{#name}-->...<!--{/name}-->

    Attributes:
        name: Block name (empty for the synthetic root)
        raw_text: Original source substring, markers included
        content: Ordered children (Text, Tag, Block)
    """

    name: str
    raw_text: str
    content: tuple[Text | Tag | Block, ...] = ()

    @property
    def is_root(self) -> bool:
        return self.name == ROOT_NAME

    @property
    def tags(self) -> tuple[Tag, ...]:
        """Tags directly inside this block (nested blocks excluded)."""
        return tuple(node for node in self.content if isinstance(node, Tag))

    @property
    def blocks(self) -> tuple[Block, ...]:
        """Blocks directly inside this block."""
        return tuple(node for node in self.content if isinstance(node, Block))

    def source(self) -> str:
        """Re-serialize this subtree to template text.

        Markers are written in their canonical form, so templates that used
        whitespace inside the comment delimiters come back normalized.
        """
        inner = "".join(node.source() for node in self.content)
        if self.is_root:
            return inner
        return BLOCK_START.format(name=self.name) + inner + BLOCK_END.format(name=self.name)

    def walk(self) -> Iterator[Text | Tag | Block]:
        """Pre-order traversal of every descendant node."""
        for node in self.content:
            yield node
            if isinstance(node, Block):
                yield from node.walk()

    def find(self, name: str) -> Block | None:
        """First descendant block called ``name`` in document order."""
        for node in self.walk():
            if isinstance(node, Block) and node.name == name:
                return node
        return None

    def block_names(self) -> list[str]:
        """Names of all descendant blocks, in document order, without duplicates."""
        seen: dict[str, None] = {}
        for node in self.walk():
            if isinstance(node, Block):
                seen.setdefault(node.name, None)
        return list(seen)

    def tag_names(self) -> list[str]:
        """Names of all descendant tags, in document order, without duplicates."""
        seen: dict[str, None] = {}
        for node in self.walk():
            if isinstance(node, Tag):
                seen.setdefault(node.name, None)
        return list(seen)

    def __repr__(self) -> str:
        label = self.name or "<root>"
        return f"<Block {label} ({len(self.content)} nodes)>"
