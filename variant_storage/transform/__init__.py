"""Transform streams."""

from variant_storage.transform.base import ImageOptions, PassthroughTransformer, Transformer
from variant_storage.transform.image import ImageTransformer, create_transformer

__all__ = ["ImageOptions", "ImageTransformer", "PassthroughTransformer", "Transformer", "create_transformer"]
