"""
Multi-variant orchestrator.
Fans one upload out to a pipeline per variant and aggregates the results.
"""

import asyncio
import logging
from collections import Counter
from typing import List, Sequence

from variant_storage.engine.pipeline import VariantPipeline
from variant_storage.schemas import (
    AggregateResult,
    ResultRecord,
    UploadedFile,
    VariantLocation,
    VariantSpec,
    WriteOptions,
)
from variant_storage.utils.tee import StreamTee, TeeReader

logger = logging.getLogger(__name__)


class VariantOrchestrator:
    """
    Runs one pipeline per variant, all concurrently.

    Every variant reads its own tee reader over the upload stream. The
    aggregate is built only when every pipeline has succeeded; otherwise the
    first failure observed is raised and no partial result is returned.

    By default a failure does not cancel the other pipelines: they run to
    completion and their outcomes are discarded. With ``cancel_siblings``
    the remaining pipelines are cancelled and torn down before the failure
    is raised.
    """

    def __init__(self, pipeline: VariantPipeline, cancel_siblings: bool = False):
        self.pipeline = pipeline
        self.cancel_siblings = cancel_siblings

    async def run(
        self,
        file: UploadedFile,
        filename: str,
        variants: Sequence[VariantSpec],
        write_options: WriteOptions,
    ) -> AggregateResult:
        """
        Store every variant of an upload.

        Args:
            file: The upload; its stream is read once through a tee
            filename: Resolved output filename
            variants: Non-empty list of variants
            write_options: Options shared by every stored object

        Returns:
            Mapping of suffix to stored location

        Raises:
            ValueError: If variants is empty
            TransformError: First transform failure observed
            StoreError: First store failure observed
        """
        if not variants:
            raise ValueError("At least one variant is required")

        self._warn_duplicates(variants)

        tee = StreamTee(file.stream)
        readers = [tee.subscribe() for _ in variants]

        logger.info(f"[ORCHESTRATOR] Starting {len(variants)} variants for {filename}")
        tasks = [
            asyncio.create_task(
                self._run_variant(reader, file, filename, variant, write_options),
                name=f"variant-{variant.suffix}",
            )
            for reader, variant in zip(readers, variants)
        ]

        try:
            results = await self._settle(tasks)
        finally:
            await tee.aclose()

        aggregate = self._aggregate(results)
        logger.info(f"[ORCHESTRATOR] Stored {len(aggregate)} variants for {filename}")
        return aggregate

    async def _run_variant(
        self,
        reader: TeeReader,
        file: UploadedFile,
        filename: str,
        variant: VariantSpec,
        write_options: WriteOptions,
    ) -> ResultRecord:
        try:
            return await self.pipeline.run(reader, file, filename, write_options, variant=variant)
        finally:
            await reader.aclose()

    async def _settle(self, tasks: List[asyncio.Task]) -> List[ResultRecord]:
        """Wait for the pipelines; raise the first failure once siblings are settled."""
        failed: List[asyncio.Task] = []

        def record_failure(task: asyncio.Task) -> None:
            if not task.cancelled() and task.exception() is not None:
                failed.append(task)

        # Registered before asyncio.wait so failures are seen in completion order
        for task in tasks:
            task.add_done_callback(record_failure)

        try:
            _, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)

            if not failed:
                return [task.result() for task in tasks]

            first_error = failed[0].exception()
            logger.error(f"[ORCHESTRATOR] {failed[0].get_name()} failed: {first_error}")

            if pending:
                if self.cancel_siblings:
                    logger.warning(f"[ORCHESTRATOR] Cancelling {len(pending)} sibling pipelines")
                    for task in pending:
                        task.cancel()
                outcomes = await asyncio.gather(*pending, return_exceptions=True)
                late = sum(1 for outcome in outcomes if isinstance(outcome, ResultRecord))
                if late:
                    logger.warning(f"[ORCHESTRATOR] Discarding {late} results that completed after a failure")

            raise first_error

        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    @staticmethod
    def _aggregate(results: List[ResultRecord]) -> AggregateResult:
        aggregate: AggregateResult = {}
        for record in results:
            aggregate[record.suffix] = VariantLocation(path=record.path, filename=record.filename)
        return aggregate

    @staticmethod
    def _warn_duplicates(variants: Sequence[VariantSpec]) -> None:
        counts = Counter(variant.suffix for variant in variants)
        duplicates = sorted(suffix for suffix, count in counts.items() if count > 1)
        if duplicates:
            logger.warning(
                f"[ORCHESTRATOR] Duplicate variant suffixes {duplicates}; later variants overwrite earlier ones"
            )
