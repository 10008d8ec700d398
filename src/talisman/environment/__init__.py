"""Talisman environment: configuration, loaders, masks, and errors."""

from talisman.environment.exceptions import (
    ErrorCode,
    MalformedTemplateError,
    SourceSnippet,
    TemplateError,
    TemplateNotFoundError,
    TemplateSyntaxError,
    ValueResolutionError,
    build_source_snippet,
)
from talisman.environment.loaders import (
    ChoiceLoader,
    DictLoader,
    FileSystemLoader,
    FunctionLoader,
    Loader,
)
from talisman.environment.registry import Mask, MaskRegistry
from talisman.environment.core import Environment

__all__ = [
    "ChoiceLoader",
    "DictLoader",
    "Environment",
    "ErrorCode",
    "FileSystemLoader",
    "FunctionLoader",
    "Loader",
    "MalformedTemplateError",
    "Mask",
    "MaskRegistry",
    "SourceSnippet",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateSyntaxError",
    "ValueResolutionError",
    "build_source_snippet",
]
