"""Talisman Template package: bindings, values, and the streaming renderer.

"""

from talisman.template.channel import ObjectStream
from talisman.template.core import Template
from talisman.template.renderer import StreamingRenderer
from talisman.template.values import UNDEFINED, BoundValue, ValueKind, stringify
from talisman.utils.html import Markup

__all__ = [
    "UNDEFINED",
    "BoundValue",
    "Markup",
    "ObjectStream",
    "StreamingRenderer",
    "Template",
    "ValueKind",
    "stringify",
]
