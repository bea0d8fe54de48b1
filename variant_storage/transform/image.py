"""
Pillow image transformer.
Resizes and re-encodes one image per output variant.
"""

import asyncio
import io
import logging
from typing import AsyncIterator, Optional, Tuple

from PIL import Image, ImageColor, ImageOps

from variant_storage.core.config import EngineOptions
from variant_storage.s3.config import READ_CHUNK_SIZE
from variant_storage.schemas import FitMode, ResizeOptions, TransformInfo
from variant_storage.transform.base import (
    ImageOptions,
    InfoObserver,
    PassthroughTransformer,
    Transformer,
)
from variant_storage.utils.content_type import normalize_format

logger = logging.getLogger(__name__)

# Output format -> Pillow format name
PIL_FORMATS = {
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "gif": "GIF",
    "tiff": "TIFF",
}

# Formats that take a quality setting
_QUALITY_FORMATS = {"jpeg", "webp"}

# Modes JPEG can store without conversion
_JPEG_MODES = {"L", "RGB", "CMYK"}


def image_options(options: EngineOptions) -> ImageOptions:
    """Extract the global image options from engine options."""
    return ImageOptions(
        to_format=normalize_format(options.to_format),
        quality=options.quality,
        grayscale=options.grayscale,
        flatten=options.flatten,
        background=options.background,
        auto_orient=options.auto_orient,
        with_metadata=options.with_metadata,
    )


class ImageTransformer(Transformer):
    """
    Decode, resize and re-encode an image.

    The whole input is buffered before decoding; decoding and encoding run
    in the default executor so the event loop keeps serving other variants.
    """

    def __init__(
        self,
        options: ImageOptions,
        resize: ResizeOptions,
        on_info: Optional[InfoObserver] = None,
        chunk_size: int = READ_CHUNK_SIZE,
    ):
        super().__init__(on_info)
        self.options = options
        self.resize = resize
        self.chunk_size = chunk_size

    @property
    def output_format(self) -> Optional[str]:
        return normalize_format(self.resize.format or self.options.to_format)

    @property
    def quality(self) -> Optional[int]:
        return self.resize.quality or self.options.quality

    async def transform(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        data = bytearray()
        async for chunk in chunks:
            data.extend(chunk)

        loop = asyncio.get_running_loop()
        output, info = await loop.run_in_executor(None, self._process, bytes(data))
        self.emit_info(info)

        for offset in range(0, len(output), self.chunk_size):
            yield output[offset:offset + self.chunk_size]

    def _process(self, data: bytes) -> Tuple[bytes, TransformInfo]:
        with Image.open(io.BytesIO(data)) as source:
            source_format = normalize_format(source.format)
            exif = source.info.get("exif")

            image = ImageOps.exif_transpose(source) if self.options.auto_orient else source.copy()
            image = self._resize(image)

            if self.options.grayscale:
                image = ImageOps.grayscale(image)

            fmt = self.output_format or source_format
            if fmt not in PIL_FORMATS:
                raise ValueError(f"Unsupported output format: {fmt}")

            if self.options.flatten or (fmt == "jpeg" and image.mode not in _JPEG_MODES):
                image = self._flatten(image)

            save_kwargs = {}
            if fmt in _QUALITY_FORMATS and self.quality:
                save_kwargs["quality"] = self.quality
            if self.options.with_metadata and exif:
                save_kwargs["exif"] = exif

            buffer = io.BytesIO()
            image.save(buffer, format=PIL_FORMATS[fmt], **save_kwargs)

        output = buffer.getvalue()
        info = TransformInfo(
            width=image.width,
            height=image.height,
            format=fmt,
            size=len(output),
            suffix=getattr(self.resize, "suffix", None),
        )
        return output, info

    def _target_size(self, width: int, height: int) -> Optional[Tuple[int, int]]:
        """Requested box, completing a missing side from the aspect ratio."""
        target_w, target_h = self.resize.width, self.resize.height
        if target_w is None and target_h is None:
            return None
        if target_w is None:
            target_w = max(1, round(width * target_h / height))
        elif target_h is None:
            target_h = max(1, round(height * target_w / width))
        return target_w, target_h

    def _resize(self, image: Image.Image) -> Image.Image:
        target = self._target_size(image.width, image.height)
        if target is None:
            return image

        target_w, target_h = target
        fit = self.resize.fit

        if fit in (FitMode.INSIDE, FitMode.OUTSIDE):
            pick = min if fit == FitMode.INSIDE else max
            scale = pick(target_w / image.width, target_h / image.height)
            size = (max(1, round(image.width * scale)), max(1, round(image.height * scale)))
            if self.resize.without_enlargement and scale > 1:
                return image
            return image.resize(size, Image.Resampling.LANCZOS)

        if self.resize.without_enlargement and (target_w > image.width or target_h > image.height):
            return image

        if fit == FitMode.COVER:
            return ImageOps.fit(image, (target_w, target_h), method=Image.Resampling.LANCZOS)
        if fit == FitMode.CONTAIN:
            if image.mode not in ("RGB", "RGBA", "L", "LA"):
                image = image.convert("RGBA")
            return ImageOps.pad(
                image,
                (target_w, target_h),
                method=Image.Resampling.LANCZOS,
                color=ImageColor.getcolor(self.options.background, image.mode),
            )
        return image.resize((target_w, target_h), Image.Resampling.LANCZOS)

    def _flatten(self, image: Image.Image) -> Image.Image:
        """Composite onto the background colour, dropping any alpha channel."""
        has_alpha = image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info)
        if not has_alpha:
            return image.convert("RGB")

        rgba = image.convert("RGBA")
        canvas = Image.new("RGB", rgba.size, ImageColor.getrgb(self.options.background))
        canvas.paste(rgba, mask=rgba.getchannel("A"))
        return canvas


def create_transformer(
    options: ImageOptions,
    resize: ResizeOptions,
    on_info: Optional[InfoObserver] = None,
) -> Transformer:
    """
    Default transform factory.

    Returns an ImageTransformer when any image processing is requested,
    otherwise a pass-through so non-image uploads are stored as-is.
    """
    if options.is_active() or resize.is_active():
        return ImageTransformer(options, resize, on_info)
    return PassthroughTransformer(on_info)
