"""
Variant storage engine.
Handles an uploaded file (single output or many variants) and removes stored files.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from variant_storage.core.config import EngineOptions, Settings, settings
from variant_storage.core.errors import ConfigError, ResolverError
from variant_storage.core.resolvers import (
    DEFAULT_DESTINATION,
    DEFAULT_FILENAME,
    DEFAULT_PREFIX,
    DEFAULT_SIZES,
    Resolver,
    as_resolver,
)
from variant_storage.engine.keys import object_key
from variant_storage.engine.orchestrator import VariantOrchestrator
from variant_storage.engine.pipeline import TransformerFactory, VariantPipeline
from variant_storage.s3.base import ObjectStore
from variant_storage.s3.client import S3ObjectStore
from variant_storage.schemas import AggregateResult, ResultRecord, UploadedFile, VariantSpec, WriteOptions
from variant_storage.transform.base import InfoObserver, log_transform_info
from variant_storage.transform.image import create_transformer, image_options
from variant_storage.utils.content_type import format_content_type, is_supported_format

logger = logging.getLogger(__name__)


class VariantStorageEngine:
    """
    Storage engine for uploaded files.

    Owns one object store for its lifetime; every pipeline of every request
    writes through it.
    """

    def __init__(
        self,
        options: Union[EngineOptions, Dict[str, Any], None] = None,
        store: Optional[ObjectStore] = None,
        transformer_factory: Optional[TransformerFactory] = None,
        on_info: Optional[InfoObserver] = log_transform_info,
        config: Optional[Settings] = None,
    ):
        """
        Build an engine.

        Args:
            options: Engine options (model or dict); identity falls back to settings
            store: Object store to use instead of building an S3 store
            transformer_factory: Transform factory (defaults to the Pillow transformer)
            on_info: Observer for transform info events
            config: Settings to fall back on (defaults to the global settings)

        Raises:
            ConfigError: If options are invalid or bucket/credentials are missing
        """
        self.options = self._load_options(options, config or settings)
        self._check(self.options, store)

        self.image_options = image_options(self.options)

        self.get_destination: Resolver = as_resolver(self.options.destination, DEFAULT_DESTINATION)
        self.get_filename: Resolver = as_resolver(self.options.filename, DEFAULT_FILENAME)
        self.get_sizes: Resolver = as_resolver(self.options.sizes, DEFAULT_SIZES)
        self.get_prefix: Resolver = as_resolver(self.options.prefix, DEFAULT_PREFIX)

        self.store = store or self._build_store(self.options, config or settings)

        self.pipeline = VariantPipeline(
            self.store,
            transformer_factory or create_transformer,
            self.image_options,
            default_size=self.options.size,
            on_info=on_info,
        )
        self.orchestrator = VariantOrchestrator(self.pipeline, cancel_siblings=self.options.cancel_siblings)

    @staticmethod
    def _load_options(options: Union[EngineOptions, Dict[str, Any], None], config: Settings) -> EngineOptions:
        if options is None:
            options = EngineOptions()
        elif isinstance(options, dict):
            try:
                options = EngineOptions(**options)
            except ValidationError as e:
                raise ConfigError(f"Invalid storage engine options: {e}", e) from e
        return options.with_defaults(config)

    @staticmethod
    def _check(options: EngineOptions, store: Optional[ObjectStore]) -> None:
        if not options.bucket and store is None:
            raise ConfigError("You have to specify a bucket for object storage to work.")

        if store is None and not (options.access_key and options.secret_key):
            raise ConfigError("You have to specify an access key and secret key for object storage to work.")

        for name in (options.to_format, options.size.format):
            if name and not is_supported_format(name):
                raise ConfigError(f"Unsupported output format: {name}")

    @staticmethod
    def _build_store(options: EngineOptions, config: Settings) -> ObjectStore:
        return S3ObjectStore(
            bucket=options.bucket,
            endpoint=options.endpoint,
            access_key=options.access_key,
            secret_key=options.secret_key,
            region=options.region,
            secure=config.STORAGE_SECURE,
            public_url=options.public_url,
        )

    async def _resolve(self, name: str, resolver: Resolver, request: Any, file: Any) -> Any:
        try:
            return await resolver.resolve(request, file)
        except Exception as e:
            logger.error(f"Failed to resolve {name}: {e}")
            raise ResolverError(name, e) from e

    def _variants(self, sizes: Any) -> List[VariantSpec]:
        if not sizes:
            return []
        if not isinstance(sizes, (list, tuple)):
            raise ResolverError("sizes", message=f"Sizes must be a list, got {type(sizes).__name__}")
        try:
            return [
                size if isinstance(size, VariantSpec) else VariantSpec.model_validate(size)
                for size in sizes
            ]
        except ValidationError as e:
            raise ResolverError("sizes", e) from e

    async def handle_file(self, request: Any, file: UploadedFile) -> Union[ResultRecord, AggregateResult]:
        """
        Store an uploaded file.

        Resolves destination, filename, sizes and prefix in that order, then
        stores either the single output or every requested variant.

        Args:
            request: Request context handed to the resolvers
            file: The upload

        Returns:
            ResultRecord for a single output, or the suffix-keyed aggregate

        Raises:
            ResolverError: If a lookup fails; nothing is stored
            TransformError: If a transform fails
            StoreError: If the object store fails
        """
        destination = await self._resolve("destination", self.get_destination, request, file)
        filename = await self._resolve("filename", self.get_filename, request, file)
        sizes = await self._resolve("sizes", self.get_sizes, request, file)
        prefix = await self._resolve("prefix", self.get_prefix, request, file)

        if not isinstance(filename, str) or not filename:
            raise ResolverError("filename", message=f"Filename must be a non-empty string, got {filename!r}")

        variants = self._variants(sizes)

        write_options = WriteOptions(
            acl=self.options.acl,
            content_type=format_content_type(self.image_options.to_format) or file.mimetype,
            metadata=dict(self.options.metadata),
            gzip=bool(self.options.gzip),
            key_prefix=prefix or None,
        )

        if variants:
            return await self.orchestrator.run(file, filename, variants, write_options)

        return await self.pipeline.run(
            file.stream,
            file,
            filename,
            write_options,
            destination=destination,
        )

    async def remove_file(self, request: Any, file: Any) -> None:
        """
        Delete a stored file.

        Args:
            request: Request context handed to the destination resolver
            file: Descriptor with the recorded ``filename``

        Raises:
            ResolverError: If the destination lookup fails
            ObjectNotFoundError: If the object does not exist
        """
        destination = await self._resolve("destination", self.get_destination, request, file)
        key = object_key(destination, file.filename)
        await self.store.delete(key)

    async def aclose(self) -> None:
        """Release the object store."""
        await self.store.aclose()
