"""Order-preserving streaming renderer.

The renderer is a producer/consumer pair joined by a bounded queue of
*segments*:

    ```
    walker ──(segments, bounded by lookahead)──> emitter ──> OutputStream
    ```

- The **walker** traverses the block tree in document order. Static text
  becomes a ready segment. A tag whose value needs work becomes an
  ``asyncio.Task`` that starts resolving immediately, while the walker moves
  on. A stream-valued tag becomes a lazy chunk generator that is only pulled
  when its turn comes. Blocks are expanded in place: gates and deferred
  iterator sources are awaited by the walker itself.
- The **emitter** takes segments strictly in order, awaits each task, drains
  each chunk generator, and writes to the output.

Resolution therefore races freely ahead of the cursor, but bytes leave in
document order. The queue bound keeps the walker from running unboundedly
ahead, and the output buffer bound stops the emitter when the consumer is
not reading, so a slow consumer ultimately pauses every upstream source.

Failure Isolation:
    Any failure while resolving one tag or one block is logged, recorded in
    the render context, and replaced by the tag's placeholder (or nothing,
    for a block). The render keeps going.

"""

from __future__ import annotations

import asyncio
import codecs
import inspect
import logging
from collections.abc import AsyncIterable, AsyncIterator, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from talisman.environment.exceptions import ErrorCode, ValueResolutionError
from talisman.environment.registry import Mask
from talisman.nodes import Block, Tag, Text
from talisman.render_context import get_render_context_required
from talisman.template.values import (
    UNDEFINED,
    BoundValue,
    ValueKind,
    get_field,
    lookup_path,
    stringify,
)
from talisman.utils.constants import SCOPE_SEPARATOR
from talisman.utils.html import html_escape

if TYPE_CHECKING:
    from talisman.output import OutputStream
    from talisman.template.core import Template

logger = logging.getLogger(__name__)

_END = object()

# Upper bound on callable/awaitable chains (a callable returning a callable ...)
_MAX_INDIRECTION = 32


@dataclass(frozen=True, slots=True)
class _Crash:
    """Walker failure forwarded to the emitter."""

    error: Exception


@dataclass(frozen=True, slots=True)
class Scope:
    """Lexical position of the walker.

    Attributes:
        ancestors: Enclosing block names, outermost first
        rows: Row overrides of enclosing iterated/bound blocks, nearest last
    """

    ancestors: tuple[str, ...] = ()
    rows: tuple[Any, ...] = ()

    def enter(self, name: str, row: Any = UNDEFINED) -> Scope:
        rows = self.rows if row is UNDEFINED else (*self.rows, row)
        return Scope((*self.ancestors, name), rows)

    def keys(self, name: str) -> tuple[str, ...]:
        """Binding keys for a block called ``name`` here, most specific first."""
        if self.ancestors:
            return (f"{self.ancestors[-1]}{SCOPE_SEPARATOR}{name}", name)
        return (name,)


async def _iterate(source: Any) -> AsyncIterator[Any]:
    """Iterate an async iterable or a plain iterator uniformly."""
    if isinstance(source, AsyncIterable):
        async for item in source:
            yield item
    else:
        for item in source:
            yield item


def _cancelling() -> bool:
    """True when the running task itself has been asked to cancel."""
    task = asyncio.current_task()
    return task is not None and task.cancelling() > 0


class StreamingRenderer:
    """Render one template into an OutputStream.

    Bindings, hidden/shown sets, and gates are read from the template when
    the walker reaches each node; masks are snapshotted once at start.

    Example:
            >>> renderer = StreamingRenderer(template, output)
            >>> await renderer.run()

    """

    __slots__ = (
        "_autoescape",
        "_masks",
        "_output",
        "_segments",
        "_shared",
        "_show_undefined",
        "_tasks",
        "_template",
    )

    def __init__(self, template: Template, output: OutputStream):
        env = template.environment
        self._template = template
        self._output = output
        self._masks = template.masks.snapshot()
        self._autoescape = env.autoescape
        self._show_undefined = env.show_undefined_tags
        self._segments: asyncio.Queue[Any] = asyncio.Queue(maxsize=env.lookahead)
        self._tasks: set[asyncio.Future[Any]] = set()
        self._shared: dict[int, tuple[Any, asyncio.Future[Any]]] = {}

    async def run(self) -> None:
        """Walk and emit the whole template."""
        walker = asyncio.get_running_loop().create_task(self._produce())
        try:
            await self._consume()
        finally:
            walker.cancel()
            for task in self._tasks:
                task.cancel()
            await asyncio.gather(walker, *self._tasks, return_exceptions=True)
            self._close_unused()

    def _close_unused(self) -> None:
        """Close bound coroutines that this render never started.

        Covers coroutines bound inside suppressed blocks and gates of
        blocks the walker never reached.
        """
        template = self._template
        bindings = (*template.variables.values(), *template.iterators.values())
        pending = [b.payload for b in bindings if b.kind is ValueKind.DEFERRED]
        pending.extend(template.gates.values())
        for awaitable in pending:
            if inspect.iscoroutine(awaitable) and id(awaitable) not in self._shared:
                awaitable.close()

    # -- emitter -------------------------------------------------------------

    async def _consume(self) -> None:
        output = self._output
        while True:
            segment = await self._segments.get()
            if segment is _END:
                return
            if isinstance(segment, _Crash):
                raise segment.error
            if isinstance(segment, str):
                await output.write(segment)
            elif isinstance(segment, asyncio.Future):
                await output.write(await segment)
            else:
                try:
                    async for chunk in segment:
                        await output.write(chunk)
                finally:
                    await segment.aclose()

    # -- walker --------------------------------------------------------------

    async def _produce(self) -> None:
        terminal: Any = _END
        try:
            await self._walk(self._template.root, Scope())
        except asyncio.CancelledError as e:
            if _cancelling():
                raise
            error = RuntimeError("Render walker was cancelled")
            error.__cause__ = e
            terminal = _Crash(error)
        except Exception as e:
            terminal = _Crash(e)
        await self._segments.put(terminal)

    async def _put(self, segment: Any) -> None:
        await self._segments.put(segment)

    async def _walk(self, block: Block, scope: Scope) -> None:
        for node in block.content:
            if isinstance(node, Text):
                await self._put(node.value)
            elif isinstance(node, Tag):
                await self._walk_tag(node, scope)
            else:
                await self._walk_block(node, scope)

    def _spawn(self, awaitable: Any) -> asyncio.Future[Any]:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _shared_future(self, awaitable: Any) -> asyncio.Future[Any]:
        """One future per awaitable per render.

        The same coroutine may feed a gate and an iterator; a coroutine can
        only be awaited once, so both share the future wrapping it.
        """
        key = id(awaitable)
        entry = self._shared.get(key)
        if entry is None:
            future = asyncio.ensure_future(awaitable)
            if future is not awaitable:
                self._tasks.add(future)
                future.add_done_callback(self._tasks.discard)
            entry = (awaitable, future)
            self._shared[key] = entry
        return entry[1]

    async def _await_deferred(self, awaitable: Any) -> Any:
        """Await a bound awaitable through its shared future.

        A deferred cancelled by its owner fails like a rejected one; only
        cancellation of the render itself propagates.
        """
        future = self._shared_future(awaitable)
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            if _cancelling() or not future.cancelled():
                raise
        raise RuntimeError("Deferred value was cancelled")

    # -- lookups -------------------------------------------------------------

    def _lookup(self, name: str, scope: Scope) -> BoundValue | None:
        """Row overrides first (nearest wins), then template variables."""
        for row in reversed(scope.rows):
            value = get_field(row, name)
            if value is not UNDEFINED:
                return BoundValue.of(value)
        return self._template.variables.get(name)

    def _block_binding(self, name: str, keys: Sequence[str], scope: Scope) -> BoundValue | None:
        """Iterators first, then row fields named after the block, then variables."""
        template = self._template
        for key in keys:
            if key in template.iterators:
                return template.iterators[key]
        for row in reversed(scope.rows):
            value = get_field(row, name)
            if value is not UNDEFINED:
                return BoundValue.of(value)
        for key in keys:
            if key in template.variables:
                return template.variables[key]
        return None

    def _is_hidden(self, keys: Sequence[str]) -> bool:
        return any(key in self._template.hidden for key in keys)

    def _is_shown(self, keys: Sequence[str]) -> bool:
        return any(key in self._template.shown for key in keys)

    def _placeholder(self, tag: Tag) -> str:
        return tag.raw if self._show_undefined else ""

    def _fail(self, error: ValueResolutionError, cause: BaseException | None = None) -> None:
        if cause is not None:
            error.__cause__ = cause
        logger.warning("%s", error)
        get_render_context_required().record_failure(error)

    def _error(
        self,
        target: str,
        message: str,
        *,
        kind: str = "tag",
        code: ErrorCode | None = None,
    ) -> ValueResolutionError:
        return ValueResolutionError(
            target,
            message,
            kind=kind,
            template_name=self._template.name,
            code=code,
        )

    # -- tags ----------------------------------------------------------------

    def _masks_for(self, tag: Tag, scope: Scope) -> list[Mask]:
        if not tag.masks:
            return self._masks.applicable(scope.ancestors)
        masks = []
        for name in tag.masks:
            mask = self._masks.resolve(name, scope.ancestors)
            if mask is None:
                raise self._error(
                    tag.name, f"Unknown mask '{name}'", code=ErrorCode.UNKNOWN_MASK
                )
            masks.append(mask)
        return masks

    async def _walk_tag(self, tag: Tag, scope: Scope) -> None:
        get_render_context_required().tags_resolved += 1
        bound = self._lookup(tag.root_name, scope)
        if bound is None:
            await self._put(self._placeholder(tag))
            return

        simple = tag.name == tag.root_name
        if simple and bound.kind is ValueKind.FRAGMENT:
            await self._walk_block(bound.payload, scope, tag.name)
            return
        if simple and bound.kind is ValueKind.STREAM:
            await self._put(self._stream_tag(tag, bound, scope))
            return
        if simple and bound.kind is ValueKind.LITERAL and not tag.masks:
            if not self._masks.applicable(scope.ancestors):
                await self._put(self._finish(bound.payload, bound.raw))
                return

        await self._put(self._spawn(self._resolve_tag(tag, bound, scope)))

    def _finish(self, value: Any, raw: bool) -> str:
        text = stringify(value)
        if raw or not self._autoescape:
            return text
        return html_escape(text)

    async def _apply_masks(self, tag: Tag, value: Any, masks: list[Mask]) -> Any:
        for mask in masks:
            try:
                value = mask.func(value)
                if inspect.isawaitable(value):
                    value = await value
            except Exception as e:
                error = self._error(
                    tag.name, f"Mask '{mask.name}' failed: {e}", code=ErrorCode.MASK_ERROR
                )
                raise error from e
        return value

    async def _settle(self, bound: BoundValue) -> BoundValue:
        """Reduce callables and awaitables until a terminal kind remains."""
        for _ in range(_MAX_INDIRECTION):
            if bound.kind is ValueKind.CALLABLE:
                bound = BoundValue.of(bound.payload(), raw=bound.raw)
            elif bound.kind is ValueKind.DEFERRED:
                result = await self._await_deferred(bound.payload)
                bound = BoundValue.of(result, raw=bound.raw)
            else:
                return bound
        raise RuntimeError("Too many nested callables/awaitables")

    async def _resolve_tag(self, tag: Tag, bound: BoundValue, scope: Scope) -> str:
        """Resolve one tag to its final text; never raises."""
        try:
            masks = self._masks_for(tag, scope)
            bound = await self._settle(bound)
            if tag.name != tag.root_name:
                value = lookup_path(self._payload(bound), tag.name.split(".")[1:])
                if value is UNDEFINED:
                    return self._placeholder(tag)
                bound = await self._settle(BoundValue.of(value, raw=bound.raw))

            if bound.kind is ValueKind.FAILED:
                raise bound.payload
            if bound.kind is ValueKind.FRAGMENT:
                raise self._error(tag.name, "A loaded block must be bound directly to its tag")
            if bound.kind is ValueKind.STREAM:
                parts = [
                    self._finish(await self._apply_masks(tag, chunk, masks), bound.raw)
                    async for chunk in self._decoded(bound.payload)
                ]
                return "".join(parts)

            value = await self._apply_masks(tag, bound.payload, masks)
            return self._finish(value, bound.raw)
        except ValueResolutionError as e:
            self._fail(e)
        except Exception as e:
            self._fail(self._error(tag.name, str(e) or type(e).__name__), e)
        except asyncio.CancelledError as e:
            if _cancelling():
                raise
            self._fail(self._error(tag.name, "Value was cancelled"), e)
        return self._placeholder(tag)

    @staticmethod
    def _payload(bound: BoundValue) -> Any:
        if bound.kind is ValueKind.FAILED:
            raise bound.payload
        return bound.payload

    async def _decoded(self, source: Any) -> AsyncIterator[Any]:
        """Chunks of a stream with byte chunks decoded incrementally."""
        decoder = codecs.getincrementaldecoder(self._output.encoding)(errors="replace")
        async for chunk in _iterate(source):
            if isinstance(chunk, (bytes, bytearray)):
                chunk = decoder.decode(bytes(chunk))
                if not chunk:
                    continue
            yield chunk
        tail = decoder.decode(b"", final=True)
        if tail:
            yield tail

    async def _stream_tag(self, tag: Tag, bound: BoundValue, scope: Scope) -> AsyncIterator[str]:
        """Forward a stream's chunks into the tag's output region.

        Pulled by the emitter only, so the source is read at the pace the
        consumer drains the output.
        """
        emitted = False
        try:
            masks = self._masks_for(tag, scope)
            async for chunk in self._decoded(bound.payload):
                text = self._finish(await self._apply_masks(tag, chunk, masks), bound.raw)
                emitted = True
                yield text
            return
        except ValueResolutionError as e:
            self._fail(e)
        except Exception as e:
            self._fail(
                self._error(tag.name, f"Stream failed: {e}", code=ErrorCode.STREAM_ERROR), e
            )
        except asyncio.CancelledError as e:
            if _cancelling():
                raise
            self._fail(
                self._error(tag.name, "Stream was cancelled", code=ErrorCode.STREAM_ERROR), e
            )
        if not emitted:
            yield self._placeholder(tag)

    # -- blocks --------------------------------------------------------------

    def _is_visible(self, block: Block, keys: Sequence[str], scope: Scope) -> bool:
        """Visibility of a block without data of its own.

        Explicitly shown blocks render. Otherwise a block renders only if
        every tag directly inside it is bound; a block without tags is
        static and always renders.
        """
        if self._is_shown(keys):
            return True
        return all(self._lookup(tag.root_name, scope) is not None for tag in block.tags)

    async def _wait_for_gate(self, name: str, gate: Any) -> None:
        try:
            await self._await_deferred(gate)
        except Exception as e:
            logger.debug("Gate for block '%s' settled with failure: %s", name, e)

    async def _walk_block(self, block: Block, scope: Scope, name: str | None = None) -> None:
        """Expand ``block`` in place.

        ``name`` is the name the block is addressed by; a loaded fragment
        rendered through a ``{tag}`` goes by the tag's name.
        """
        template = self._template
        name = name or block.name
        keys = scope.keys(name)

        for key in keys:
            if key in template.gates:
                await self._wait_for_gate(name, template.gates[key])
                break

        if self._is_hidden(keys):
            logger.debug("Block '%s' hidden", name)
            get_render_context_required().blocks_suppressed += 1
            return

        bound = self._block_binding(name, keys, scope)
        if bound is not None and await self._walk_rows(block, name, bound, scope):
            return

        inner = scope.enter(name)
        if self._is_visible(block, keys, inner):
            await self._walk(block, inner)
        else:
            logger.debug("Block '%s' has no data, suppressed", name)
            get_render_context_required().blocks_suppressed += 1

    async def _walk_rows(self, block: Block, name: str, bound: BoundValue, scope: Scope) -> bool:
        """Render ``block`` once per row of its binding.

        Returns:
            False if the binding turned out to be ``None`` and the block
            should fall back to the unbound visibility policy
        """
        try:
            bound = await self._settle(bound)
            if bound.kind is ValueKind.FAILED:
                raise bound.payload
        except Exception as e:
            self._fail(self._error(name, str(e) or type(e).__name__, kind="block"), e)
            return True

        if bound.kind is ValueKind.STREAM:
            try:
                async for row in _iterate(bound.payload):
                    await self._walk(block, scope.enter(name, row))
            except Exception as e:
                self._fail(
                    self._error(
                        name, f"Row source failed: {e}", kind="block",
                        code=ErrorCode.STREAM_ERROR,
                    ),
                    e,
                )
            return True

        if bound.kind is ValueKind.FRAGMENT:
            await self._walk(bound.payload, scope.enter(name))
            return True

        value = bound.payload
        if value is None:
            return False
        if isinstance(value, (list, tuple)):
            for row in value:
                await self._walk(block, scope.enter(name, row))
        elif isinstance(value, Mapping) or value:
            await self._walk(block, scope.enter(name, value))
        return True
