"""In-memory object store for development and tests."""

import gzip
import logging
from typing import AsyncIterator, Dict

from pydantic import BaseModel, Field

from variant_storage.core.errors import ObjectNotFoundError
from variant_storage.s3.base import ObjectStore
from variant_storage.schemas import StoredObject, WriteOptions

logger = logging.getLogger(__name__)


class MemoryObject(BaseModel):
    """An object held by the memory store."""

    body: bytes
    content_type: str | None = None
    acl: str | None = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    content_encoding: str | None = None

    def decoded(self) -> bytes:
        """Body with any gzip content encoding removed."""
        if self.content_encoding == "gzip":
            return gzip.decompress(self.body)
        return self.body


class MemoryObjectStore(ObjectStore):
    """Dict-backed store; objects appear only once fully written."""

    def __init__(self, bucket: str, public_url: str = "http://localhost:9000") -> None:
        self.bucket = bucket
        self.public_base_url = public_url.rstrip("/")
        self.objects: Dict[str, MemoryObject] = {}

    async def upload_stream(
        self,
        key: str,
        chunk_iterator: AsyncIterator[bytes],
        options: WriteOptions,
    ) -> StoredObject:
        body = bytearray()
        async for chunk in chunk_iterator:
            body.extend(chunk)

        data = bytes(body)
        if options.gzip:
            data = gzip.compress(data)

        self.objects[key] = MemoryObject(
            body=data,
            content_type=options.content_type,
            acl=options.acl,
            metadata=dict(options.metadata),
            content_encoding="gzip" if options.gzip else None,
        )
        logger.info(f"Stored {self.bucket}/{key} ({len(data)} bytes)")
        return StoredObject(bucket=self.bucket, key=key, size_bytes=len(data))

    async def delete(self, key: str) -> None:
        if key not in self.objects:
            raise ObjectNotFoundError(self.bucket, key)
        del self.objects[key]
        logger.info(f"Deleted {self.bucket}/{key}")

    async def exists(self, key: str) -> bool:
        return key in self.objects

    async def ping(self) -> None:
        return None
