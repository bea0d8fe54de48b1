"""
Stream fan-out.

A ``StreamTee`` reads one async byte stream exactly once and hands every
chunk to each subscribed reader. Each reader has its own unbounded queue, so
a slow or failed consumer never stalls its siblings.
"""

import asyncio
import logging
from typing import AsyncIterator, List, Optional

logger = logging.getLogger(__name__)

_EOF = object()


class _SourceFailure:
    """Queue marker carrying an error to raise in the reader."""

    def __init__(self, error: BaseException):
        self.error = error


class TeeClosedError(RuntimeError):
    """The tee was closed before the source was exhausted."""


class TeeReader:
    """One independent reader over a ``StreamTee``."""

    def __init__(self, tee: "StreamTee", index: int):
        self._tee = tee
        self.index = index
        self.queue: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.bytes_read = 0

    def __aiter__(self) -> "TeeReader":
        return self

    async def __anext__(self) -> bytes:
        if self.closed:
            raise StopAsyncIteration

        self._tee._start()
        item = await self.queue.get()

        if item is _EOF:
            self.closed = True
            raise StopAsyncIteration
        if isinstance(item, _SourceFailure):
            self.closed = True
            raise item.error

        self.bytes_read += len(item)
        return item

    def _deliver(self, item: object) -> None:
        if not self.closed:
            self.queue.put_nowait(item)

    async def aclose(self) -> None:
        """Stop receiving chunks and drop anything still queued."""
        if self.closed and self.queue.empty():
            return
        self.closed = True
        while not self.queue.empty():
            self.queue.get_nowait()
        await self._tee._reader_closed()


class StreamTee:
    """
    Fan a single async byte stream out to independent readers.

    All readers must subscribe before the first read; the source is pumped
    lazily by a single background task started on that first read.
    """

    def __init__(self, source: AsyncIterator[bytes]):
        self._source = source
        self._readers: List[TeeReader] = []
        self._pump_task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def started(self) -> bool:
        return self._pump_task is not None

    def subscribe(self) -> TeeReader:
        """
        Create an independent reader.

        Raises:
            RuntimeError: If data has already started flowing or the tee is closed
        """
        if self._closed:
            raise TeeClosedError("Cannot subscribe to a closed stream tee")
        if self.started:
            raise RuntimeError("Cannot subscribe after the stream has started flowing")

        reader = TeeReader(self, len(self._readers))
        self._readers.append(reader)
        return reader

    def _start(self) -> None:
        if self._pump_task is None and not self._closed:
            self._pump_task = asyncio.get_running_loop().create_task(self._pump())

    def _open_readers(self) -> List[TeeReader]:
        return [reader for reader in self._readers if not reader.closed]

    async def _pump(self) -> None:
        """Read the source once and deliver each chunk to every open reader."""
        total = 0
        try:
            async for chunk in self._source:
                readers = self._open_readers()
                if not readers:
                    logger.debug("[TEE] All readers closed, stopping pump")
                    return
                total += len(chunk)
                for reader in readers:
                    reader._deliver(chunk)
        except Exception as e:
            logger.error(f"[TEE] Source failed after {total} bytes: {e}")
            for reader in self._open_readers():
                reader._deliver(_SourceFailure(e))
            return

        logger.debug(f"[TEE] Source exhausted after {total} bytes ({len(self._readers)} readers)")
        for reader in self._open_readers():
            reader._deliver(_EOF)

    async def _reader_closed(self) -> None:
        if not self._open_readers() and self._pump_task is not None and not self._pump_task.done():
            await self._stop_pump()

    async def _stop_pump(self) -> None:
        task = self._pump_task
        if task is None:
            return
        if not task.done():
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def aclose(self) -> None:
        """
        Stop pumping and release the readers.

        Readers still open get a ``TeeClosedError`` instead of a silent end
        of stream, so a truncated input is never mistaken for a complete one.
        """
        if self._closed:
            return
        self._closed = True
        await self._stop_pump()
        for reader in self._open_readers():
            reader._deliver(_SourceFailure(TeeClosedError("Stream tee closed before the source was exhausted")))
