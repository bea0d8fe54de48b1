"""Object store interface."""

import abc
from typing import AsyncIterator
from urllib.parse import quote

from variant_storage.schemas import StoredObject, WriteOptions

# Characters JavaScript's encodeURI leaves alone (besides alphanumerics and "-_.~")
_URI_SAFE = ";,/?:@&=+$!*'()#"


def encode_uri(uri: str) -> str:
    """Percent-encode a full URI, keeping its reserved characters intact."""
    return quote(uri, safe=_URI_SAFE)


class ObjectStore(abc.ABC):
    """Abstract base class for the remote object store.

    One instance is owned by an engine and shared read-only by all of its
    pipelines.
    """

    bucket: str
    public_base_url: str

    @abc.abstractmethod
    async def upload_stream(
        self,
        key: str,
        chunk_iterator: AsyncIterator[bytes],
        options: WriteOptions,
    ) -> StoredObject:
        """Stream chunks into an object.

        The object is only committed when the iterator is exhausted without
        error. An error raised by the iterator aborts the write and is
        re-raised.

        Args:
            key: Object key.
            chunk_iterator: Async iterator yielding the object's bytes.
            options: ACL, content type, metadata and gzip flag.

        Returns:
            StoredObject describing the committed object.
        """
        ...

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        """Delete an object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """
        ...

    @abc.abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether an object exists."""
        ...

    @abc.abstractmethod
    async def ping(self) -> None:
        """Check the bucket is reachable; raises on failure."""
        ...

    def public_url(self, key: str) -> str:
        """Percent-encoded public URL of an object."""
        return encode_uri(f"{self.public_base_url}/{self.bucket}/{key}")

    async def aclose(self) -> None:
        """Release resources held by the store."""
        return None
