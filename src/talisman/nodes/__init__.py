"""Talisman content tree nodes."""

from talisman.nodes.base import Node
from talisman.nodes.structure import Block, Tag, Text

__all__ = ["Block", "Node", "Tag", "Text"]
