"""Paused byte stream handed out by streaming fetches."""

import asyncio
from collections.abc import AsyncIterator
from io import BytesIO
from types import TracebackType

from refetch.fetch.models import ResponseMeta, TransportResponse


class StreamAlreadyConsumedError(RuntimeError):
    """Raised when a stream handle is iterated twice."""


class StreamHandle:
    """Lazy response body that yields nothing until resumed.

    The fetcher creates the handle paused, persists the cache record, and
    only then resumes it, so a caller can never observe a byte of a fetch
    whose cache record has not been written. Iteration can start before
    ``resume`` is called; it simply waits. The underlying connection or file
    is released when iteration ends or ``aclose`` is called.

    Usage:
        outcome = await fetcher.fetch_stream("https://example.com/big.csv")
        if outcome.changed:
            async with outcome.data as body:
                async for chunk in body:
                    sink.write(chunk)
    """

    def __init__(self, response: TransportResponse) -> None:
        """Initialize the handle in the paused state.

        Args:
            response: Streaming transport response.
        """
        if response.stream is None:
            msg = "StreamHandle requires a streaming response"
            raise ValueError(msg)
        self._response = response
        self._resumed = asyncio.Event()
        self._consumed = False

    @property
    def meta(self) -> ResponseMeta:
        """Get the response metadata."""
        return self._response.meta

    @property
    def paused(self) -> bool:
        """Check if the stream is still paused."""
        return not self._resumed.is_set()

    def resume(self) -> None:
        """Allow iteration to proceed."""
        self._resumed.set()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        if self._consumed:
            msg = "Stream has already been consumed"
            raise StreamAlreadyConsumedError(msg)
        self._consumed = True

        await self._resumed.wait()
        stream = self._response.stream
        if stream is None:
            return
        try:
            async for chunk in stream:
                yield chunk
        finally:
            await self._response.aclose()

    async def aread(self) -> bytes:
        """Read the remaining stream into memory.

        Returns:
            The full body.
        """
        buffer = BytesIO()
        async for chunk in self:
            buffer.write(chunk)
        return buffer.getvalue()

    async def aclose(self) -> None:
        """Release the underlying connection or file without reading."""
        self._consumed = True
        await self._response.aclose()

    async def __aenter__(self) -> "StreamHandle":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
