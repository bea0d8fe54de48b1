"""
Variant upload streaming.
Feeds async variant streams to boto3's blocking upload_fileobj, optionally gzipped.
"""

import asyncio
import concurrent.futures
import logging
import zlib
from typing import AsyncIterator, Optional

from variant_storage.s3.config import CHUNK_TIMEOUT, MAX_BUFFERED_CHUNKS

logger = logging.getLogger(__name__)


class AsyncChunkBuffer:
    """
    Read-only file object over an async chunk stream.

    boto3 reads it from an upload thread while a task on the event loop
    fills a bounded queue, so a slow upload holds back the transform
    feeding it.

    Create it on the event loop; the filling task starts right away.

    An error raised by the chunk stream is re-raised from ``read`` in the
    upload thread, which makes boto3 abort the upload instead of committing
    a partial object. ``abort`` does the same from the event loop side.

    ``CHUNK_TIMEOUT`` bounds the gap between chunks only. The wait for the
    first chunk is unbounded and ends through ``abort``.
    """

    def __init__(self, chunk_iterator: AsyncIterator[bytes], max_chunks: int = MAX_BUFFERED_CHUNKS):
        """
        Args:
            chunk_iterator: Variant bytes to upload
            max_chunks: Queue bound; filling pauses when it is reached
        """
        self.chunk_iterator = chunk_iterator
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_chunks)
        self.buffer = bytearray()
        self.finished = False
        self.error: Optional[BaseException] = None
        self.total_bytes = 0
        self.started = False

        # Upload threads hand their reads back to this loop
        self._loop = asyncio.get_running_loop()
        self._fill_task = self._loop.create_task(self._fill())

    async def _fill(self):
        try:
            async for chunk in self.chunk_iterator:
                if chunk:
                    await self.queue.put(chunk)
            await self.queue.put(None)  # end of stream
        except Exception as e:
            logger.error(f"[CHUNK BUFFER] Variant stream failed: {e}")
            self.error = e
            await self.queue.put(None)

    def read(self, size: int = -1) -> bytes:
        """
        Blocking read, called by boto3 from an upload thread.

        Args:
            size: Bytes wanted, or -1 for the rest of the stream

        Returns:
            Up to ``size`` bytes; empty once the stream is exhausted

        Raises:
            Exception: Whatever the chunk stream raised, or IOError after abort or timeout
        """
        while not self.finished and (size < 0 or len(self.buffer) < size):
            chunk = self._next_chunk()
            if chunk is None:
                self.finished = True
            else:
                self.buffer.extend(chunk)

        if self.error:
            raise self.error

        if size < 0 or size >= len(self.buffer):
            data = bytes(self.buffer)
            self.buffer.clear()
        else:
            data = bytes(self.buffer[:size])
            del self.buffer[:size]

        self.total_bytes += len(data)
        return data

    def _next_chunk(self) -> Optional[bytes]:
        # No deadline for the first chunk: transforms may buffer the whole input
        timeout = CHUNK_TIMEOUT if self.started else None
        future = asyncio.run_coroutine_threadsafe(self.queue.get(), self._loop)
        try:
            chunk = future.result(timeout=timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise IOError(f"No variant data within {CHUNK_TIMEOUT}s")
        self.started = True
        return chunk

    def abort(self, error: BaseException) -> None:
        """
        Fail the upload from the event loop side.

        Cancels the filling task and wakes a blocked read so the upload
        thread raises ``error``.
        """
        if self.error is None:
            self.error = error
        self._fill_task.cancel()
        while not self.queue.empty():
            self.queue.get_nowait()
        self.queue.put_nowait(None)

    async def aclose(self) -> None:
        """Cancel the filling task and wait for it to finish."""
        if not self._fill_task.done():
            self._fill_task.cancel()
        await asyncio.gather(self._fill_task, return_exceptions=True)

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def writable(self) -> bool:
        return False


async def gzip_chunks(chunk_iterator: AsyncIterator[bytes], level: int = 6) -> AsyncIterator[bytes]:
    """
    Compress a chunk stream into a single gzip member.

    Args:
        chunk_iterator: Async iterator yielding raw chunks
        level: zlib compression level

    Yields:
        Compressed chunks
    """
    compressor = zlib.compressobj(level, zlib.DEFLATED, zlib.MAX_WBITS | 16)
    async for chunk in chunk_iterator:
        compressed = compressor.compress(chunk)
        if compressed:
            yield compressed
    yield compressor.flush()
