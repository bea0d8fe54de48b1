"""
S3 object store.
Streams variant uploads into S3/MinIO and deletes stored objects.
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, AsyncIterator, Optional

import boto3
from boto3.s3.transfer import TransferConfig
from botocore.client import Config
from botocore.exceptions import ClientError

from variant_storage.core.errors import ObjectNotFoundError
from variant_storage.s3.base import ObjectStore
from variant_storage.s3.config import (
    DEFAULT_PUBLIC_URL,
    MAX_CONCURRENCY,
    MAX_UPLOAD_WORKERS,
    MULTIPART_CHUNKSIZE,
    MULTIPART_THRESHOLD,
)
from variant_storage.schemas import StoredObject, WriteOptions
from variant_storage.utils.streaming import AsyncChunkBuffer, gzip_chunks

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"404", "NoSuchKey", "NotFound"}


def normalize_endpoint(endpoint: Optional[str], secure: bool = True) -> Optional[str]:
    """Add a scheme to a bare host:port endpoint."""
    if not endpoint:
        return None
    if not endpoint.startswith(('http://', 'https://')):
        protocol = 'https' if secure else 'http'
        endpoint = f"{protocol}://{endpoint}"
    return endpoint.rstrip('/')


class S3ObjectStore(ObjectStore):
    """Object store backed by one S3/MinIO bucket."""

    def __init__(
        self,
        bucket: str,
        endpoint: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        region: str = "us-east-1",
        secure: bool = True,
        public_url: Optional[str] = None,
        client: Any = None,
    ):
        """
        Initialize the S3 client for a bucket.

        Args:
            bucket: Bucket every object is written to
            endpoint: S3/MinIO endpoint, None for AWS
            access_key: Access key id
            secret_key: Secret access key
            region: Region name
            secure: Scheme for endpoints given without one
            public_url: Base URL for public object links (defaults to the endpoint)
            client: Pre-built boto3 client, used instead of creating one
        """
        endpoint_url = normalize_endpoint(endpoint, secure)

        self.client = client or boto3.client(
            's3',
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            config=Config(signature_version='s3v4'),
            region_name=region
        )

        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.public_base_url = (public_url or endpoint_url or DEFAULT_PUBLIC_URL).rstrip('/')

        # Bounded pool so concurrent variant uploads don't explode thread count
        self.upload_executor = ThreadPoolExecutor(max_workers=MAX_UPLOAD_WORKERS, thread_name_prefix="s3-upload")

        logger.info(f"S3 object store initialized: {self.public_base_url}/{bucket}")

    async def upload_stream(
        self,
        key: str,
        chunk_iterator: AsyncIterator[bytes],
        options: WriteOptions,
    ) -> StoredObject:
        """
        Stream one variant into the bucket.

        Objects above the multipart threshold go up in parts; boto3 aborts the
        multipart upload when the chunk iterator fails, so nothing is committed.

        Args:
            key: Object key
            chunk_iterator: Async iterator yielding object chunks
            options: Write options for the object

        Returns:
            StoredObject with bucket, key and size

        Raises:
            ClientError: If the upload fails
            Exception: Whatever the chunk iterator raised
        """
        if options.gzip:
            chunk_iterator = gzip_chunks(chunk_iterator)

        extra_args = options.to_extra_args()

        # Wrap async iterator in file-like object with bounded queue
        file_like = AsyncChunkBuffer(chunk_iterator)

        config = TransferConfig(
            multipart_threshold=MULTIPART_THRESHOLD,
            multipart_chunksize=MULTIPART_CHUNKSIZE,
            max_concurrency=MAX_CONCURRENCY,
            use_threads=False  # We're running in executor already
        )

        def _upload():
            self.client.upload_fileobj(
                file_like,
                self.bucket,
                key,
                ExtraArgs=extra_args,
                Config=config
            )

        logger.info(f"[STREAMING UPLOAD] Starting: {self.bucket}/{key}")
        try:
            await asyncio.get_running_loop().run_in_executor(self.upload_executor, _upload)
        except asyncio.CancelledError:
            logger.warning(f"[STREAMING UPLOAD] Cancelled: {self.bucket}/{key}")
            file_like.abort(IOError(f"Upload of {key} was cancelled"))
            raise
        except Exception as e:
            logger.error(f"[STREAMING UPLOAD] Failed: {self.bucket}/{key} :: {e}")
            file_like.abort(e)
            raise
        finally:
            await file_like.aclose()

        logger.info(f"[STREAMING UPLOAD] Completed: {self.bucket}/{key} ({file_like.total_bytes} bytes)")

        return StoredObject(bucket=self.bucket, key=key, size_bytes=file_like.total_bytes)

    async def delete(self, key: str) -> None:
        """
        Delete an object from the bucket.

        Args:
            key: Object key

        Raises:
            ObjectNotFoundError: If the object does not exist
            ClientError: If deletion fails
        """
        if not await self.exists(key):
            logger.warning(f"Cannot delete {self.bucket}/{key}: not found")
            raise ObjectNotFoundError(self.bucket, key)

        try:
            await asyncio.get_running_loop().run_in_executor(
                None,
                lambda: self.client.delete_object(Bucket=self.bucket, Key=key)
            )
            logger.info(f"Deleted file: {self.bucket}/{key}")
        except ClientError as e:
            logger.error(f"Failed to delete {self.bucket}/{key}: {e}")
            raise

    async def exists(self, key: str) -> bool:
        """
        Check if an object exists in the bucket.

        Args:
            key: Object key

        Returns:
            True if the object exists, False otherwise

        Raises:
            ClientError: For errors other than not-found
        """
        try:
            await asyncio.get_running_loop().run_in_executor(
                None,
                lambda: self.client.head_object(Bucket=self.bucket, Key=key)
            )
            return True
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in _NOT_FOUND_CODES:
                return False
            logger.error(f"Error checking {self.bucket}/{key}: {e}")
            raise

    async def ping(self) -> None:
        await asyncio.get_running_loop().run_in_executor(
            None,
            lambda: self.client.head_bucket(Bucket=self.bucket)
        )

    async def aclose(self) -> None:
        self.upload_executor.shutdown(wait=False)
