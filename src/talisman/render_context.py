"""Talisman RenderContext: per-render state isolated from template bindings.

The renderer runs many resolution tasks at once. Each ``asyncio`` task copies
the current context when it is created, so a ContextVar set once by the
render driver is visible to every task of that render, while two renders
running on the same loop never see each other's state.

The RenderContext object itself is shared by reference between those tasks,
so failures recorded by a resolution task are visible to the driver.

"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from talisman.environment.exceptions import ValueResolutionError


@dataclass
class RenderContext:
    """Per-render state.

    Attributes:
        template_name: Current template name for error messages
        filename: Source file path for error messages
        debug: Mirrors ``Environment.debug`` for this render
        failures: Localized resolution errors, in the order they happened
        tags_resolved: Tags whose value was resolved (bound or not)
        blocks_suppressed: Blocks skipped as hidden or unbound
    """

    template_name: str | None = None
    filename: str | None = None
    debug: bool = False
    failures: list[ValueResolutionError] = field(default_factory=list)
    tags_resolved: int = 0
    blocks_suppressed: int = 0

    def record_failure(self, error: ValueResolutionError) -> None:
        self.failures.append(error)


_render_context: ContextVar[RenderContext | None] = ContextVar(
    "render_context",
    default=None,
)


def get_render_context() -> RenderContext | None:
    """Get current render context (None if not in render)."""
    return _render_context.get()


def get_render_context_required() -> RenderContext:
    """Get current render context, raise if not in render.

    Raises:
        RuntimeError: If not in a render context
    """
    ctx = _render_context.get()
    if ctx is None:
        raise RuntimeError("Not in a render context")
    return ctx


@asynccontextmanager
async def async_render_context(
    template_name: str | None = None,
    filename: str | None = None,
    debug: bool = False,
) -> AsyncIterator[RenderContext]:
    """Async context manager for render-scoped state.

    Example:
        async with async_render_context(template_name="page.html") as ctx:
            await renderer.run()
        print(len(ctx.failures))
    """
    ctx = RenderContext(template_name=template_name, filename=filename, debug=debug)
    token: Token[RenderContext | None] = _render_context.set(ctx)
    try:
        yield ctx
    finally:
        _render_context.reset(token)
