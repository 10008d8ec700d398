"""Base node class for the Talisman content tree."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Node:
    """Base class for all content nodes.

    All nodes track their source location for error reporting.
    Nodes are immutable, so one parsed tree can back many renders.

    """

    lineno: int
    col_offset: int
