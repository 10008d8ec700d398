"""Talisman utilities."""

from talisman.utils.html import Markup, html_escape

__all__ = ["Markup", "html_escape"]
