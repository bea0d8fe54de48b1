"""Object stores: S3/MinIO and in-memory."""

from variant_storage.s3.base import ObjectStore
from variant_storage.s3.client import S3ObjectStore
from variant_storage.s3.memory import MemoryObjectStore

__all__ = ["MemoryObjectStore", "ObjectStore", "S3ObjectStore"]
