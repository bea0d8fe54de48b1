"""Upload pipelines and the storage engine."""

from variant_storage.engine.orchestrator import VariantOrchestrator
from variant_storage.engine.pipeline import VariantPipeline
from variant_storage.engine.storage import VariantStorageEngine

__all__ = ["VariantOrchestrator", "VariantPipeline", "VariantStorageEngine"]
