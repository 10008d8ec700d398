"""Push-based object source for iterator blocks.

``ObjectStream`` is a bounded producer/consumer channel. Producers push
rows; the renderer pulls them only as fast as the output consumer drains
the rendered bytes. When the buffer reaches its high-water mark the stream
reports ``paused`` and ``await push()`` suspends until the renderer has
taken rows out again, so the producer is paused and resumed in step with
output demand.

Example:
    ```python
    rows = ObjectStream()
    template.set_iterator(rows, "results:row")

    async def produce():
        async for record in cursor:
            await rows.push({"name": record.name})
        rows.end()
    ```

"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Iterable
from typing import Any


class ObjectStream:
    """Bounded async channel of rows.

    Attributes:
        high_water_mark: Buffered rows at which producers are paused
    """

    __slots__ = (
        "_buffer",
        "_ended",
        "_error",
        "_readable",
        "_resumed",
        "high_water_mark",
    )

    def __init__(self, high_water_mark: int = 16):
        if high_water_mark < 1:
            raise ValueError("high_water_mark must be at least 1")
        self.high_water_mark = high_water_mark
        self._buffer: deque[Any] = deque()
        self._ended = False
        self._error: BaseException | None = None
        self._readable = asyncio.Event()
        self._resumed = asyncio.Event()
        self._resumed.set()

    @classmethod
    def from_iterable(cls, items: Iterable[Any], high_water_mark: int = 16) -> ObjectStream:
        """Stream pre-filled with ``items`` and already ended."""
        stream = cls(high_water_mark)
        for item in items:
            stream.push_nowait(item)
        stream.end()
        return stream

    @property
    def paused(self) -> bool:
        """True while the buffer is at or above the high-water mark."""
        return len(self._buffer) >= self.high_water_mark

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def _update_flow(self) -> None:
        if self.paused:
            self._resumed.clear()
        else:
            self._resumed.set()

    def _check_open(self) -> None:
        if self._ended:
            raise RuntimeError("push() after end() on ObjectStream")

    async def push(self, item: Any) -> None:
        """Append a row, waiting while the stream is paused."""
        self._check_open()
        while self.paused:
            await self._resumed.wait()
            self._check_open()
        self.push_nowait(item)

    def push_nowait(self, item: Any) -> bool:
        """Append a row without waiting.

        Returns:
            False if the stream is now paused and the producer should stop
        """
        self._check_open()
        self._buffer.append(item)
        self._readable.set()
        self._update_flow()
        return not self.paused

    def end(self) -> None:
        """Signal that no more rows will be pushed."""
        self._ended = True
        self._readable.set()
        self._resumed.set()

    def fail(self, error: BaseException) -> None:
        """End the stream with an error raised to the consumer."""
        self._error = error
        self.end()

    async def wait_resumed(self) -> None:
        """Wait until the consumer has drained below the high-water mark."""
        await self._resumed.wait()

    def __aiter__(self) -> ObjectStream:
        return self

    async def __anext__(self) -> Any:
        while not self._buffer:
            if self._error is not None:
                error, self._error = self._error, None
                raise error
            if self._ended:
                raise StopAsyncIteration
            self._readable.clear()
            await self._readable.wait()
        item = self._buffer.popleft()
        self._update_flow()
        return item

    def __repr__(self) -> str:
        state = "ended" if self._ended else ("paused" if self.paused else "flowing")
        return f"<ObjectStream {state} buffered={len(self._buffer)}>"
