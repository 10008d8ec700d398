"""Shared constants for Talisman.

Template delimiters live here so the parser, the node serializer, and the
renderer agree on a single grammar.
"""

from __future__ import annotations

import re

# Block delimiters are HTML comments, so an unrendered template is still
# a valid document:  <!--{#name}--> ... <!--{/name}-->
BLOCK_START = "<!--{{#{name}}}-->"
BLOCK_END = "<!--{{/{name}}}-->"

# Either marker, with optional whitespace inside the comment.
# Group "kind" is "#" for a start marker and "/" for an end marker.
BLOCK_MARKER_RE = re.compile(
    r"<!--\s*\{(?P<kind>[#/])(?P<name>[A-Za-z0-9_$.:\-]*)\}\s*-->"
)

# Variable tag: {name}, {a.b.c}, {name|mask|other}
TAG_RE = re.compile(
    r"\{(?P<name>[A-Za-z_$][\w$\-]*(?:\.[\w$\-]+)*)"
    r"(?P<masks>(?:\|[A-Za-z_$][\w$\-]*)*)\}"
)

# Separator for block-addressed keys: "container:row"
SCOPE_SEPARATOR = ":"

# Name of the synthetic root block
ROOT_NAME = ""

# Page emitted instead of the template when it cannot be rendered.
# Both fields are HTML-escaped before formatting.
ERROR_DOCUMENT = (
    "<!DOCTYPE html>\n"
    "<html><head><title>Error</title></head>\n"
    "<body><h1>Error</h1>\n"
    "<pre>{message}</pre>\n"
    "</body></html>\n"
)
