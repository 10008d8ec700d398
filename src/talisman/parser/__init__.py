"""Talisman parser: template text to block/tag tree."""

from talisman.parser.core import Parser, parse

__all__ = ["Parser", "parse"]
