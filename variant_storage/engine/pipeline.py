"""
Single-variant pipeline.
Wires one source stream through one transform into one stored object.
"""

import logging
from typing import AsyncIterator, Callable, Optional

from variant_storage.core.errors import StorageEngineError, StoreError, TransformError
from variant_storage.engine.keys import object_key, variant_key
from variant_storage.s3.base import ObjectStore
from variant_storage.schemas import ResizeOptions, ResultRecord, UploadedFile, VariantSpec, WriteOptions
from variant_storage.transform.base import ImageOptions, InfoObserver, Transformer
from variant_storage.utils.content_type import format_content_type

logger = logging.getLogger(__name__)

TransformerFactory = Callable[[ImageOptions, ResizeOptions, Optional[InfoObserver]], Transformer]


class VariantPipeline:
    """
    Runs source -> transform -> store for exactly one output.

    Stateless between runs; one instance serves every request of an engine
    and may run many times concurrently.
    """

    def __init__(
        self,
        store: ObjectStore,
        transformer_factory: TransformerFactory,
        image_options: ImageOptions,
        default_size: Optional[ResizeOptions] = None,
        on_info: Optional[InfoObserver] = None,
    ):
        self.store = store
        self.transformer_factory = transformer_factory
        self.image_options = image_options
        self.default_size = default_size or ResizeOptions()
        self.on_info = on_info

    async def run(
        self,
        source: AsyncIterator[bytes],
        file: UploadedFile,
        filename: str,
        write_options: WriteOptions,
        variant: Optional[VariantSpec] = None,
        destination: Optional[str] = None,
    ) -> ResultRecord:
        """
        Store one output of an upload.

        Args:
            source: Byte stream to read (the upload itself, or a tee reader)
            file: The upload, for its original name and mimetype
            filename: Resolved output filename
            write_options: Options for the stored object
            variant: Variant to produce; None for single-output mode
            destination: Destination directory (single-output mode only)

        Returns:
            ResultRecord for the stored object

        Raises:
            TransformError: If the transform fails
            StoreError: If the object store fails
        """
        if variant is not None:
            key = variant_key(filename, variant.suffix, file.original_name, write_options.key_prefix)
            resize: ResizeOptions = variant
            suffix: Optional[str] = variant.suffix
        else:
            key = object_key(destination, filename)
            resize = self.default_size
            suffix = None

        transformer = self.transformer_factory(self.image_options, resize, self.on_info)
        mimetype = format_content_type(transformer.output_format) or file.mimetype
        if write_options.content_type != mimetype:
            write_options = write_options.model_copy(update={"content_type": mimetype})

        transform_failure: Optional[BaseException] = None
        output = transformer.transform(source)

        async def transformed() -> AsyncIterator[bytes]:
            nonlocal transform_failure
            try:
                async for chunk in output:
                    yield chunk
            except Exception as e:
                transform_failure = e
                raise TransformError(suffix, e) from e

        logger.info(f"[PIPELINE] Starting {key}")
        try:
            await self.store.upload_stream(key, transformed(), write_options)
        except Exception as e:
            if transform_failure is not None:
                logger.error(f"[PIPELINE] Transform failed for {key}: {transform_failure}")
                if isinstance(e, TransformError):
                    raise
                raise TransformError(suffix, transform_failure) from transform_failure
            if isinstance(e, StorageEngineError):
                raise
            logger.error(f"[PIPELINE] Store failed for {key}: {e}")
            raise StoreError(key, e, suffix=suffix) from e
        finally:
            await _aclose(output)

        logger.info(f"[PIPELINE] Stored {key}")
        return ResultRecord(
            mimetype=mimetype,
            path=self.store.public_url(key),
            filename=key,
            suffix=suffix,
        )


async def _aclose(stream: object) -> None:
    aclose = getattr(stream, "aclose", None)
    if aclose is not None:
        await aclose()
