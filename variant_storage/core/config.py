"""
Configuration management for the variant storage engine.
Loads environment variables and defines the engine options model.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings

from variant_storage.schemas import ResizeOptions


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Object storage (S3 or MinIO)
    STORAGE_BUCKET: Optional[str] = None
    STORAGE_ENDPOINT: Optional[str] = None     # e.g. 192.168.1.100:9000, empty for AWS
    STORAGE_ACCESS_KEY: Optional[str] = None
    STORAGE_SECRET_KEY: Optional[str] = None
    STORAGE_REGION: str = "us-east-1"
    STORAGE_SECURE: bool = True                # Scheme used when the endpoint has none

    # Public base URL for stored objects (defaults to the endpoint)
    STORAGE_PUBLIC_URL: Optional[str] = None

    # Write defaults
    STORAGE_ACL: Optional[str] = "private"
    STORAGE_GZIP: bool = False

    # Application
    LOG_LEVEL: str = "INFO"

    # Streaming Upload Configuration
    MAX_BUFFERED_CHUNKS: int = 10  # Number of 256KB chunks buffered per upload

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()


class EngineOptions(BaseModel):
    """
    Options for one storage engine instance.

    Identity fields left empty fall back to the environment settings.
    Resolver fields take either a static value or a callable receiving
    ``(request, file)``; ``None`` selects the built-in default.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    # Identity
    bucket: Optional[str] = None
    endpoint: Optional[str] = None
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    region: Optional[str] = None
    public_url: Optional[str] = None

    # Write options
    acl: Optional[str] = None
    gzip: Optional[bool] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    # Resolvers
    destination: Any = None
    filename: Any = None
    sizes: Any = None
    prefix: Any = None

    # Transform options
    size: ResizeOptions = Field(default_factory=ResizeOptions)
    to_format: Optional[str] = None
    quality: Optional[int] = Field(default=None, ge=1, le=100)
    grayscale: bool = False
    flatten: bool = False
    background: str = "#ffffff"
    auto_orient: bool = True
    with_metadata: bool = False

    # Orchestration
    cancel_siblings: bool = False

    def with_defaults(self, source: Settings) -> "EngineOptions":
        """Fill identity and write defaults from settings."""
        defaults: Dict[str, Any] = {
            "bucket": source.STORAGE_BUCKET,
            "endpoint": source.STORAGE_ENDPOINT,
            "access_key": source.STORAGE_ACCESS_KEY,
            "secret_key": source.STORAGE_SECRET_KEY,
            "region": source.STORAGE_REGION,
            "public_url": source.STORAGE_PUBLIC_URL,
            "acl": source.STORAGE_ACL,
            "gzip": source.STORAGE_GZIP,
        }
        update = {
            name: value
            for name, value in defaults.items()
            if getattr(self, name) is None
        }
        return self.model_copy(update=update)
