"""Exceptions raised by the storage engine."""

from typing import Optional


class StorageEngineError(Exception):
    """Base class for storage engine failures.

    The underlying exception, when there is one, is available as ``cause``
    and is also chained as ``__cause__`` by the raising code.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ConfigError(StorageEngineError):
    """The engine cannot be constructed with the given options."""

    pass


class ResolverError(StorageEngineError):
    """A destination, filename, sizes or prefix lookup failed."""

    def __init__(self, resolver: str, cause: Optional[BaseException] = None, message: Optional[str] = None):
        super().__init__(message or f"Failed to resolve {resolver}: {cause}", cause)
        self.resolver = resolver


class TransformError(StorageEngineError):
    """The transform stream for one output failed."""

    def __init__(self, suffix: Optional[str], cause: BaseException):
        label = f"variant '{suffix}'" if suffix else "upload"
        super().__init__(f"Transform failed for {label}: {cause}", cause)
        self.suffix = suffix


class StoreError(StorageEngineError):
    """The object store failed to write or delete an object."""

    def __init__(self, key: str, cause: Optional[BaseException] = None, suffix: Optional[str] = None, message: Optional[str] = None):
        super().__init__(message or f"Object store failed for '{key}': {cause}", cause)
        self.key = key
        self.suffix = suffix


class ObjectNotFoundError(StoreError):
    """The object to delete does not exist."""

    def __init__(self, bucket: str, key: str):
        super().__init__(key, message=f"Object not found: {bucket}/{key}")
        self.bucket = bucket
