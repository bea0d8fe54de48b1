"""Tests for the multi-variant orchestrator."""

from __future__ import annotations

import asyncio
import logging
import typing as t

import pytest

from variant_storage.core.errors import TransformError
from variant_storage.engine.orchestrator import VariantOrchestrator
from variant_storage.engine.pipeline import VariantPipeline
from variant_storage.s3.memory import MemoryObjectStore
from variant_storage.schemas import UploadedFile, VariantLocation, VariantSpec, WriteOptions
from variant_storage.transform.base import ImageOptions, Transformer

SIZES = [VariantSpec(suffix="sm", width=10), VariantSpec(suffix="md", width=20), VariantSpec(suffix="lg", width=40)]


def orchestrator(store: MemoryObjectStore, registry: t.Any, cancel_siblings: bool = False) -> VariantOrchestrator:
    pipeline = VariantPipeline(store, registry, ImageOptions())
    return VariantOrchestrator(pipeline, cancel_siblings=cancel_siblings)


class LateFailingTransformer(Transformer):
    """Fails once its gate opens, after yielding to the loop ``delay`` times."""

    def __init__(self, gate: asyncio.Event, delay: int = 0) -> None:
        super().__init__()
        self.gate = gate
        self.delay = delay

    async def transform(self, chunks: t.AsyncIterator[bytes]) -> t.AsyncIterator[bytes]:
        for _ in range(self.delay):
            await asyncio.sleep(0)
        await self.gate.wait()
        raise ValueError(f"failed after {self.delay} yields")
        yield b""


class TestAggregate(object):
    """Every variant is stored; the result is keyed by suffix."""

    @pytest.mark.anyio
    async def test_one_entry_per_variant(
        self,
        store: MemoryObjectStore,
        registry: t.Any,
        upload: t.Callable[..., UploadedFile],
    ) -> None:
        data = b"0123456789" * 100
        result = await orchestrator(store, registry).run(upload(data), "cat", SIZES, WriteOptions())

        assert result == {
            "sm": VariantLocation(path="https://storage.example.com/media/cat-sm.png", filename="cat-sm.png"),
            "md": VariantLocation(path="https://storage.example.com/media/cat-md.png", filename="cat-md.png"),
            "lg": VariantLocation(path="https://storage.example.com/media/cat-lg.png", filename="cat-lg.png"),
        }
        assert all(store.objects[key].body == data for key in ("cat-sm.png", "cat-md.png", "cat-lg.png"))
        assert len(registry.created) == 3

    @pytest.mark.anyio
    async def test_prefix_applies_to_every_key(
        self,
        store: MemoryObjectStore,
        registry: t.Any,
        upload: t.Callable[..., UploadedFile],
    ) -> None:
        result = await orchestrator(store, registry).run(
            upload(b"data"), "cat", SIZES[:2], WriteOptions(key_prefix="thumb")
        )

        assert {location.filename for location in result.values()} == {"thumb-cat-sm.png", "thumb-cat-md.png"}

    @pytest.mark.anyio
    async def test_single_variant(
        self,
        store: MemoryObjectStore,
        registry: t.Any,
        upload: t.Callable[..., UploadedFile],
    ) -> None:
        result = await orchestrator(store, registry).run(upload(b"data"), "cat", SIZES[:1], WriteOptions())
        assert list(result) == ["sm"]

    @pytest.mark.anyio
    async def test_empty_variants_rejected(
        self,
        store: MemoryObjectStore,
        registry: t.Any,
        upload: t.Callable[..., UploadedFile],
    ) -> None:
        with pytest.raises(ValueError):
            await orchestrator(store, registry).run(upload(b"data"), "cat", [], WriteOptions())

    @pytest.mark.anyio
    async def test_duplicate_suffix_last_wins(
        self,
        store: MemoryObjectStore,
        registry: t.Any,
        upload: t.Callable[..., UploadedFile],
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        variants = [VariantSpec(suffix="sm", width=10), VariantSpec(suffix="sm", width=12)]

        with caplog.at_level(logging.WARNING):
            result = await orchestrator(store, registry).run(upload(b"data"), "cat", variants, WriteOptions())

        assert list(result) == ["sm"]
        assert list(store.objects) == ["cat-sm.png"]
        assert "Duplicate variant suffixes" in caplog.text


class TestFailure(object):
    """Any failure rejects the whole request with no partial result."""

    @pytest.mark.anyio
    async def test_transform_failure_is_raised(
        self,
        store: MemoryObjectStore,
        registry: t.Any,
        upload: t.Callable[..., UploadedFile],
        failing: t.Callable[[Exception], t.Any],
    ) -> None:
        cause = ValueError("bad pixels")
        registry.by_suffix["sm"] = failing(cause)

        with pytest.raises(TransformError) as excinfo:
            await orchestrator(store, registry).run(upload(b"0123456789" * 50), "cat", SIZES, WriteOptions())

        assert excinfo.value.suffix == "sm"
        assert excinfo.value.cause is cause

    @pytest.mark.anyio
    async def test_siblings_finish_by_default(
        self,
        store: MemoryObjectStore,
        registry: t.Any,
        upload: t.Callable[..., UploadedFile],
        failing: t.Callable[[Exception], t.Any],
    ) -> None:
        """Without cancellation the other pipelines still store their objects."""
        registry.by_suffix["sm"] = failing(ValueError("bad pixels"))

        with pytest.raises(TransformError):
            await orchestrator(store, registry).run(upload(b"0123456789" * 50), "cat", SIZES, WriteOptions())

        assert "cat-sm.png" not in store.objects
        assert {"cat-md.png", "cat-lg.png"} <= set(store.objects)

    @pytest.mark.anyio
    async def test_cancel_siblings(
        self,
        store: MemoryObjectStore,
        registry: t.Any,
        upload: t.Callable[..., UploadedFile],
        failing: t.Callable[[Exception], t.Any],
        gated: t.Callable[[asyncio.Event], t.Any],
    ) -> None:
        never = asyncio.Event()
        stalled = gated(never)
        registry.by_suffix["sm"] = failing(ValueError("bad pixels"))
        registry.by_suffix["lg"] = stalled

        with pytest.raises(TransformError):
            await asyncio.wait_for(
                orchestrator(store, registry, cancel_siblings=True).run(
                    upload(b"0123456789" * 50), "cat", SIZES, WriteOptions()
                ),
                timeout=5,
            )

        assert stalled.cancelled
        assert not stalled.finished
        assert "cat-lg.png" not in store.objects

    @pytest.mark.anyio
    async def test_first_failure_in_completion_order(
        self,
        store: MemoryObjectStore,
        registry: t.Any,
        upload: t.Callable[..., UploadedFile],
    ) -> None:
        """The failure that completes first is reported, not the first in variant order."""
        gate = asyncio.Event()
        registry.by_suffix["sm"] = LateFailingTransformer(gate, delay=3)
        registry.by_suffix["lg"] = LateFailingTransformer(gate)
        variants = [VariantSpec(suffix="sm"), VariantSpec(suffix="lg")]
        asyncio.get_running_loop().call_later(0.05, gate.set)

        with pytest.raises(TransformError) as excinfo:
            await orchestrator(store, registry).run(upload(b"data"), "cat", variants, WriteOptions())

        assert excinfo.value.suffix == "lg"
        assert str(excinfo.value.cause) == "failed after 0 yields"
        assert store.objects == {}

    @pytest.mark.anyio
    async def test_source_failure_fails_request(self, store: MemoryObjectStore, registry: t.Any) -> None:
        async def source() -> t.AsyncIterator[bytes]:
            yield b"partial"
            raise ConnectionResetError("client went away")

        file = UploadedFile(original_name="cat.png", stream=source())

        with pytest.raises(TransformError) as excinfo:
            await orchestrator(store, registry).run(file, "cat", SIZES, WriteOptions())

        assert isinstance(excinfo.value.cause, ConnectionResetError)
        assert store.objects == {}

    @pytest.mark.anyio
    async def test_caller_cancellation_tears_down_pipelines(
        self,
        store: MemoryObjectStore,
        registry: t.Any,
        upload: t.Callable[..., UploadedFile],
        gated: t.Callable[[asyncio.Event], t.Any],
    ) -> None:
        never = asyncio.Event()
        registry.by_suffix["sm"] = gated(never)
        registry.by_suffix["lg"] = gated(never)

        task = asyncio.create_task(
            orchestrator(store, registry).run(upload(b"data"), "cat", SIZES, WriteOptions())
        )
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert registry.by_suffix["sm"].cancelled
        assert registry.by_suffix["lg"].cancelled
        assert store.objects.keys() <= {"cat-md.png"}
