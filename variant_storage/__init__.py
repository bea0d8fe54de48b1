"""
Variant storage.
Streams uploads, and resized variants of them, into an S3-compatible object store.
"""

__version__ = "0.1.0"

from variant_storage.core.errors import (  # noqa: F401
    ConfigError,
    ObjectNotFoundError,
    ResolverError,
    StorageEngineError,
    StoreError,
    TransformError,
)
from variant_storage.engine.storage import VariantStorageEngine  # noqa: F401
from variant_storage.schemas import *  # noqa: F403, F401
