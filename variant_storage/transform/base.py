"""Transform stream interface and the pass-through transform."""

import abc
import logging
from typing import AsyncIterator, Callable, Optional

from pydantic import BaseModel, ConfigDict

from variant_storage.schemas import ResizeOptions, TransformInfo

logger = logging.getLogger(__name__)

InfoObserver = Callable[[TransformInfo], None]


class ImageOptions(BaseModel):
    """Global image options shared by every output of an engine."""
    model_config = ConfigDict(frozen=True)

    to_format: Optional[str] = None
    quality: Optional[int] = None
    grayscale: bool = False
    flatten: bool = False
    background: str = "#ffffff"
    auto_orient: bool = True
    with_metadata: bool = False

    def is_active(self) -> bool:
        """True when these options alone require decoding the image."""
        return bool(self.to_format or self.quality or self.grayscale or self.flatten)


def log_transform_info(info: TransformInfo) -> None:
    """Default observer for transform info events."""
    label = f" [{info.suffix}]" if info.suffix else ""
    logger.info(
        f"[TRANSFORM]{label} {info.width}x{info.height} {info.format} ({info.size} bytes)"
    )


class Transformer(abc.ABC):
    """
    A transform stream: reads bytes in, yields transformed bytes out.

    A fresh instance is created for every output and used once.
    """

    def __init__(self, on_info: Optional[InfoObserver] = None):
        self.on_info = on_info

    @property
    def output_format(self) -> Optional[str]:
        """Declared output format, or None when the input format is kept."""
        return None

    @abc.abstractmethod
    def transform(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        """Transform an input stream into an output stream."""
        ...

    def emit_info(self, info: TransformInfo) -> None:
        """Hand an info event to the observer; observer failures are only logged."""
        if self.on_info is None:
            return
        try:
            self.on_info(info)
        except Exception:
            logger.exception("[TRANSFORM] Info observer failed")


class PassthroughTransformer(Transformer):
    """Streams bytes through unchanged."""

    async def transform(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        async for chunk in chunks:
            yield chunk
