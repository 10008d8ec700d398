"""Pull-driven output byte stream.

``Template.render()`` returns an ``OutputStream`` straight away. Nothing is
rendered until the consumer first pulls a chunk; from then on the producer
runs as an asyncio task writing into a bounded buffer. When the buffer is
full the producer's ``write()`` suspends, which in turn pauses the renderer
and every upstream source it is reading from.

Consumption:
    ```python
    async with template.render() as stream:
        async for chunk in stream:
            await response.send(chunk)

    # or
    await template.render().pipe(writer)       # writer.write() + drain()
    html = await template.render().text()
    ```

Closing the stream (``aclose()``, or leaving ``async with``) cancels the
render. Outstanding resolutions are abandoned and later writes are ignored.
Breaking out of ``async for`` without closing leaves the producer suspended
on a full buffer, so prefer ``async with``.

"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from talisman.environment.exceptions import ValueResolutionError

logger = logging.getLogger(__name__)

_EOF = object()


class OutputStream:
    """Readable stream of rendered bytes.

    Attributes:
        encoding: Encoding applied to text written by the producer
        high_water_mark: Maximum buffered chunks before the producer waits
        error: Unexpected failure of the producer, if any
        failures: Localized value-resolution failures of this render
        bytes_written: Total bytes handed to the buffer
    """

    __slots__ = (
        "_closed",
        "_finished",
        "_producer",
        "_queue",
        "_task",
        "bytes_written",
        "encoding",
        "error",
        "failures",
        "high_water_mark",
    )

    def __init__(
        self,
        producer: Callable[[OutputStream], Awaitable[None]],
        *,
        encoding: str = "utf-8",
        high_water_mark: int = 16,
    ):
        self._producer = producer
        self.encoding = encoding
        self.high_water_mark = high_water_mark
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=high_water_mark)
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self._finished = False
        self.error: BaseException | None = None
        self.failures: list[ValueResolutionError] = []
        self.bytes_written = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def finished(self) -> bool:
        """True once the consumer has read the end of the stream."""
        return self._finished

    # -- producer side -----------------------------------------------------

    async def write(self, data: str | bytes) -> None:
        """Buffer one chunk, waiting while the consumer is behind."""
        if self._closed:
            return
        if isinstance(data, str):
            data = data.encode(self.encoding)
        if not data:
            return
        self.bytes_written += len(data)
        await self._queue.put(data)

    async def _run(self) -> None:
        try:
            await self._producer(self)
        except Exception as e:
            logger.exception("Output producer failed")
            self.error = e
        finally:
            if not self._closed:
                await self._queue.put(_EOF)

    def _start(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())

    # -- consumer side -----------------------------------------------------

    async def read(self) -> bytes:
        """Next chunk, or ``b""`` at the end of the stream."""
        if self._closed or self._finished:
            return b""
        self._start()
        item = await self._queue.get()
        if item is _EOF:
            self._finished = True
            return b""
        return item

    def __aiter__(self) -> OutputStream:
        return self

    async def __anext__(self) -> bytes:
        chunk = await self.read()
        if not chunk:
            raise StopAsyncIteration
        return chunk

    async def read_all(self) -> bytes:
        """Collect the whole stream."""
        return b"".join([chunk async for chunk in self])

    async def text(self) -> str:
        """Collect the whole stream and decode it."""
        return (await self.read_all()).decode(self.encoding)

    async def pipe(self, destination: Any) -> Any:
        """Copy every chunk to ``destination``, honouring its backpressure.

        ``destination.write(chunk)`` may return an awaitable; if the
        destination has a ``drain()`` coroutine (``asyncio.StreamWriter``)
        it is awaited after each chunk.

        Returns:
            The destination, for chaining
        """
        drain = getattr(destination, "drain", None)
        async with self:
            async for chunk in self:
                result = destination.write(chunk)
                if inspect.isawaitable(result):
                    await result
                if drain is not None:
                    await drain()
        return destination

    async def aclose(self) -> None:
        """Stop rendering and discard anything not yet read."""
        if self._closed:
            return
        self._closed = True
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.debug("Render cancelled by consumer")

    async def __aenter__(self) -> OutputStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        if self._closed:
            state = "closed"
        elif self._finished:
            state = "finished"
        elif self._task is not None:
            state = "streaming"
        else:
            state = "pending"
        return f"<OutputStream {state} bytes_written={self.bytes_written}>"
