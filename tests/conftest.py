"""Pytest fixtures for variant storage tests.

Pipelines run against the in-memory object store; transforms are either
the real Pillow transformer fed with generated images, or small fakes that
fail or stall on demand.
"""

from __future__ import annotations

import asyncio
import io
import typing as t

import pytest
from PIL import Image

from variant_storage.core.config import EngineOptions, Settings
from variant_storage.engine.storage import VariantStorageEngine
from variant_storage.s3.memory import MemoryObjectStore
from variant_storage.schemas import ResizeOptions, UploadedFile
from variant_storage.transform.base import ImageOptions, InfoObserver, PassthroughTransformer, Transformer

BUCKET = "media"
PUBLIC_URL = "https://storage.example.com"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


async def chunked(data: bytes, chunk_size: int = 7) -> t.AsyncIterator[bytes]:
    """Yield data in small chunks, giving other tasks a turn between them."""
    for offset in range(0, len(data), chunk_size):
        await asyncio.sleep(0)
        yield data[offset:offset + chunk_size]


def make_upload(data: bytes, name: str = "photo.png", mimetype: str = "image/png") -> UploadedFile:
    return UploadedFile(original_name=name, mimetype=mimetype, stream=chunked(data))


def png_bytes(width: int = 64, height: int = 48, mode: str = "RGB", color: t.Any = (200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new(mode, (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


class FailingTransformer(Transformer):
    """Reads part of its input, then fails."""

    def __init__(self, error: Exception, on_info: InfoObserver | None = None) -> None:
        super().__init__(on_info)
        self.error = error

    async def transform(self, chunks: t.AsyncIterator[bytes]) -> t.AsyncIterator[bytes]:
        async for chunk in chunks:
            yield chunk
            raise self.error


class GatedTransformer(PassthroughTransformer):
    """Passes bytes through once its gate opens; records cancellation."""

    def __init__(self, gate: asyncio.Event, on_info: InfoObserver | None = None) -> None:
        super().__init__(on_info)
        self.gate = gate
        self.cancelled = False
        self.finished = False

    async def transform(self, chunks: t.AsyncIterator[bytes]) -> t.AsyncIterator[bytes]:
        try:
            await self.gate.wait()
            async for chunk in chunks:
                yield chunk
            self.finished = True
        except asyncio.CancelledError:
            self.cancelled = True
            raise


class TransformerRegistry:
    """Transform factory handing out per-suffix fakes, pass-through otherwise."""

    def __init__(self) -> None:
        self.by_suffix: dict[str, Transformer] = {}
        self.created: list[Transformer] = []

    def __call__(self, options: ImageOptions, resize: ResizeOptions, on_info: InfoObserver | None) -> Transformer:
        suffix = getattr(resize, "suffix", None)
        transformer = self.by_suffix.get(suffix) or PassthroughTransformer(on_info)
        self.created.append(transformer)
        return transformer


@pytest.fixture
def store() -> MemoryObjectStore:
    return MemoryObjectStore(BUCKET, public_url=PUBLIC_URL)


@pytest.fixture
def empty_settings() -> Settings:
    """Settings that ignore the environment and any .env file."""
    return Settings.model_construct(
        STORAGE_BUCKET=None,
        STORAGE_ENDPOINT=None,
        STORAGE_ACCESS_KEY=None,
        STORAGE_SECRET_KEY=None,
        STORAGE_REGION="us-east-1",
        STORAGE_SECURE=True,
        STORAGE_PUBLIC_URL=None,
        STORAGE_ACL="private",
        STORAGE_GZIP=False,
        LOG_LEVEL="INFO",
        MAX_BUFFERED_CHUNKS=10,
    )


@pytest.fixture
def make_engine(store: MemoryObjectStore, empty_settings: Settings) -> t.Callable[..., VariantStorageEngine]:
    """Build an engine on the memory store; keyword arguments become options."""

    def factory(transformer_factory: t.Any = None, on_info: t.Any = None, **options: t.Any) -> VariantStorageEngine:
        options.setdefault("bucket", BUCKET)
        return VariantStorageEngine(
            EngineOptions(**options),
            store=store,
            transformer_factory=transformer_factory,
            on_info=on_info,
            config=empty_settings,
        )

    return factory


@pytest.fixture
def upload() -> t.Callable[..., UploadedFile]:
    """Factory for uploads streamed in small chunks."""
    return make_upload


@pytest.fixture
def png() -> t.Callable[..., bytes]:
    """Factory for PNG-encoded test images."""
    return png_bytes


@pytest.fixture
def registry() -> TransformerRegistry:
    return TransformerRegistry()


@pytest.fixture
def failing() -> t.Callable[[Exception], FailingTransformer]:
    return FailingTransformer


@pytest.fixture
def gated() -> t.Callable[[asyncio.Event], GatedTransformer]:
    return GatedTransformer


@pytest.fixture
def stream() -> t.Callable[..., t.AsyncIterator[bytes]]:
    """Factory for chunked async byte streams."""
    return chunked
