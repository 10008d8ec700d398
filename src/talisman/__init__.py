"""Talisman: streaming HTML templates for asyncio.

Templates are plain HTML with named blocks in comments and ``{tag}``
placeholders. Values bound to tags may be plain objects, awaitables, or
streams; they resolve concurrently while the output is written strictly in
document order, at the pace the consumer reads it.

Quickstart:
    >>> from talisman import Environment
    >>> env = Environment()
    >>> page = env.from_string("<p id='x'>{name}</p>")
    >>> await page.bind("name", "Ann").render_async()
    "<p id='x'>Ann</p>"

Template syntax:
    ```html
    <h1>{title|upper}</h1>
    <!--{#list}-->
      <ul><!--{#row}--><li>{name}: {price}</li><!--{/row}--></ul>
    <!--{/list}-->
    ```

Streaming:
    >>> page.set_iterator(fetch_rows(), "list:row")
    >>> async with page.render() as stream:
    ...     async for chunk in stream:
    ...         await response.send(chunk)

Architecture:
Template Source → Parser → Block tree → Template (bindings) → StreamingRenderer → OutputStream

Failure Handling:
A tag whose value fails renders as its ``{name}`` placeholder and the
failure is logged; a template that cannot be parsed renders an error page.
Rendering never raises into the consumer.

"""

from talisman.environment import (
    ChoiceLoader,
    DictLoader,
    Environment,
    ErrorCode,
    FileSystemLoader,
    FunctionLoader,
    MalformedTemplateError,
    SourceSnippet,
    TemplateError,
    TemplateNotFoundError,
    TemplateSyntaxError,
    ValueResolutionError,
    build_source_snippet,
)
from talisman.nodes import Block, Tag, Text
from talisman.output import OutputStream
from talisman.parser import parse
from talisman.render_context import (
    RenderContext,
    async_render_context,
    get_render_context,
    get_render_context_required,
)
from talisman.template import BoundValue, Markup, ObjectStream, Template, ValueKind
from talisman.utils.html import html_escape

__version__ = "0.1.0"

__all__ = [
    "Block",
    "BoundValue",
    "ChoiceLoader",
    "DictLoader",
    "Environment",
    "ErrorCode",
    "FileSystemLoader",
    "FunctionLoader",
    "MalformedTemplateError",
    "Markup",
    "ObjectStream",
    "OutputStream",
    "RenderContext",
    "SourceSnippet",
    "Tag",
    "Template",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateSyntaxError",
    "Text",
    "ValueKind",
    "ValueResolutionError",
    "__version__",
    "async_render_context",
    "build_source_snippet",
    "get_render_context",
    "get_render_context_required",
    "html_escape",
    "parse",
]
