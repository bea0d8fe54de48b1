"""
Variant storage schemas.
Type-safe contracts for uploads, variants, write options and results.
"""

from enum import Enum
from typing import Any, AsyncIterator, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field


T = TypeVar('T')


class FitMode(str, Enum):
    """How an image is fitted into the requested width and height."""
    COVER = "cover"
    CONTAIN = "contain"
    FILL = "fill"
    INSIDE = "inside"
    OUTSIDE = "outside"


# ============================================================================
# Request Models
# ============================================================================

class UploadedFile(BaseModel):
    """
    An incoming upload.

    The stream is owned by the caller. The engine reads it once (single
    output) or forks it (multiple variants), and never mutates it.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    original_name: str
    mimetype: str = "application/octet-stream"
    stream: AsyncIterator[bytes]


class ResizeOptions(BaseModel):
    """Transform parameters for one output."""
    model_config = ConfigDict(frozen=True)

    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)
    fit: FitMode = FitMode.INSIDE
    without_enlargement: bool = False
    format: Optional[str] = None
    quality: Optional[int] = Field(default=None, ge=1, le=100)

    def is_active(self) -> bool:
        """True when these parameters ask for any image processing."""
        return any(
            value is not None
            for value in (self.width, self.height, self.format, self.quality)
        )


class VariantSpec(ResizeOptions):
    """One desired output variant, identified by its suffix."""
    suffix: str = Field(min_length=1)


class WriteOptions(BaseModel):
    """
    Options applied to every object written for one request.

    Constant across all variants of a request except for the content type,
    which follows a variant's own output format when it declares one.
    """
    model_config = ConfigDict(frozen=True)

    acl: Optional[str] = None
    content_type: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    gzip: bool = False
    key_prefix: Optional[str] = None

    def to_extra_args(self) -> Dict[str, Any]:
        """Build boto3 ``ExtraArgs`` for ``upload_fileobj``."""
        extra_args: Dict[str, Any] = {}
        if self.acl:
            extra_args['ACL'] = self.acl
        if self.content_type:
            extra_args['ContentType'] = self.content_type
        if self.metadata:
            extra_args['Metadata'] = dict(self.metadata)
        if self.gzip:
            extra_args['ContentEncoding'] = 'gzip'
        return extra_args


class FileDescriptor(BaseModel):
    """A previously stored file, as recorded by the caller."""
    filename: str


# ============================================================================
# Result Models
# ============================================================================

class ResultRecord(BaseModel):
    """Result of one completed pipeline."""
    model_config = ConfigDict(frozen=True)

    mimetype: str
    path: str
    filename: str
    suffix: Optional[str] = None


class VariantLocation(BaseModel):
    """Where one variant of a multi-variant upload was stored."""
    model_config = ConfigDict(frozen=True)

    path: str
    filename: str


# suffix -> location, built only once every variant has been stored
AggregateResult = Dict[str, VariantLocation]


class StoredObject(BaseModel):
    """What the object store reports after a successful write."""
    bucket: str
    key: str
    size_bytes: int = 0


class TransformInfo(BaseModel):
    """Advisory event emitted by a transform once its output is known."""
    width: int
    height: int
    format: str
    size: int
    suffix: Optional[str] = None


# ============================================================================
# HTTP Responses
# ============================================================================

class SuccessResponse(BaseModel, Generic[T]):
    """
    Generic success response wrapper.

    Example:
        SuccessResponse[ResultRecord](
            success=True,
            message="File stored",
            data=ResultRecord(...)
        )
    """
    success: bool
    message: str | None = None
    data: T


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    detail: str
    error_code: str | None = None


class DeleteResponse(BaseModel):
    """Response from file deletion."""
    filename: str
    deleted: bool


class HealthCheckResponse(BaseModel):
    """Health check response."""
    status: str
    storage_connection: str
