"""Batch orchestration: files in, stamped work items out."""

import asyncio
import time
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional, Tuple

from .archive import export_items
from .compositor import DEFAULT_QUALITY, composite
from .error_handling import BatchOperationContextManager
from .exceptions import MetaStampError
from .formatting import format_timestamp
from .image_utils import decode_image
from .metadata import MetadataResolver
from .models import (
    ArchiveEntry,
    BatchPartition,
    BatchSummary,
    SourceFile,
    StyleConfig,
    WorkItem,
    WorkItemState,
)
from .observability import LogContext, MetricsCollector, PerformanceMetrics, StructuredLogger
from .outputs import OutputRegistry
from .protocols import ItemObserver, LoggerProtocol


class BatchOrchestrator:
    """
    Owns the work items of a batch and drives each through the pipeline.

    ``submit`` records pending items immediately; ``process_pending`` then
    resolves, formats and composites them one at a time in submission
    order. Every item ends up done or failed on its own; a failure never
    stops the rest of the batch. Readers and observers get copies of the
    items, never the records the orchestrator transitions.

    A registry created here is owned by the orchestrator and removed by
    ``close``; one passed in is left to its owner.
    """

    def __init__(
        self,
        style: Optional[StyleConfig] = None,
        registry: Optional[OutputRegistry] = None,
        resolver: Optional[MetadataResolver] = None,
        logger: Optional[LoggerProtocol] = None,
        observer: Optional[ItemObserver] = None,
        output_format: str = "JPEG",
        quality: int = DEFAULT_QUALITY,
        metrics_collector: Optional[MetricsCollector] = None,
    ):
        self.style = style or StyleConfig()
        self._owns_registry = registry is None
        self._registry = registry if registry is not None else OutputRegistry()
        self._resolver = resolver or MetadataResolver()
        self._logger = logger or StructuredLogger("metastamp.orchestrator")
        self._observer = observer
        self._output_format = output_format.upper()
        self._quality = quality
        self._metrics_collector = metrics_collector

        self._items: List[WorkItem] = []
        self._index: Dict[str, WorkItem] = {}
        self._queue: Deque[Tuple[WorkItem, SourceFile, StyleConfig]] = deque()

    @property
    def registry(self) -> OutputRegistry:
        return self._registry

    @property
    def items(self) -> Tuple[WorkItem, ...]:
        return tuple(item.model_copy() for item in self._items)

    def get(self, item_id: str) -> WorkItem:
        return self._index[item_id].model_copy()

    def _notify(self, item: WorkItem) -> None:
        if self._observer is None:
            return
        try:
            self._observer(item.model_copy())
        except Exception as exc:  # noqa: BLE001
            self._logger.warning(f"Item observer failed for {item.source_name}: {exc}")

    def submit(
        self, files: Iterable[SourceFile], style: Optional[StyleConfig] = None
    ) -> List[WorkItem]:
        """
        Create a pending work item per image file, in order.

        Files whose content type is not ``image/*`` are skipped. The style in
        effect now is the one the items will be rendered with.
        """
        style = style or self.style
        created = []
        for source in files:
            if not source.is_image:
                self._logger.info(
                    f"Skipping non-image file {source.name} ({source.content_type})"
                )
                continue
            item = WorkItem(source_name=source.name)
            self._items.append(item)
            self._index[item.id] = item
            self._queue.append((item, source, style))
            created.append(item.model_copy())
            self._notify(item)
        return created

    async def process_pending(self) -> BatchSummary:
        """Process every queued item sequentially in submission order."""
        start_time = time.time()
        processed = 0
        with BatchOperationContextManager(operation_name="Image stamping") as batch_manager:
            while self._queue:
                item, source, style = self._queue.popleft()
                await self._process_item(item, source, style)
                processed += 1
                if item.state is WorkItemState.FAILED:
                    batch_manager.add_error(item.error, item_identifier=item.source_name)
        summary = self.summary()
        summary.processing_time = time.time() - start_time
        self._logger.info(
            f"Processed {processed} item(s): {summary.done} done, {summary.failed} failed"
        )
        return summary

    async def _process_item(
        self, item: WorkItem, source: SourceFile, style: StyleConfig
    ) -> None:
        log_context = LogContext(
            correlation_id=item.id, operation="stamp_image", component="orchestrator"
        ).with_metadata(source=item.source_name)
        start_time = time.time()

        try:
            self._logger.debug("Resolving timestamp", log_context.with_operation("resolve"))
            resolved = await asyncio.to_thread(self._resolver.resolve, source.data)
            text = format_timestamp(style.date_format, resolved.instant)

            self._logger.debug("Decoding image", log_context.with_operation("decode"))
            image = await asyncio.to_thread(decode_image, source.data)

            self._logger.debug(f"Compositing '{text}'", log_context.with_operation("composite"))
            output = await asyncio.to_thread(
                composite,
                image,
                text,
                style,
                self._registry,
                self._output_format,
                self._quality,
            )
        except Exception as exc:  # noqa: BLE001
            if not isinstance(exc, MetaStampError):
                self._logger.error(
                    f"Unexpected {type(exc).__name__} while stamping", log_context
                )
            self._finish_failed(item, str(exc) or type(exc).__name__, start_time, log_context)
            return

        elapsed = time.time() - start_time
        if item.id not in self._index:
            # Batch was cleared while this item was in flight
            self._registry.release(output.handle)
            self._logger.debug("Dropping result of cleared item", log_context)
            return

        item.mark_done(
            output=output,
            display_timestamp=text,
            is_fallback=resolved.is_fallback,
            processing_time=elapsed,
        )
        self._record(item, start_time, True)
        self._logger.info(
            "Stamped image",
            log_context,
            timestamp=text,
            fallback=resolved.is_fallback,
            processing_time_ms=round(elapsed * 1000, 1),
        )
        self._notify(item)

    def _finish_failed(
        self, item: WorkItem, error: str, start_time: float, log_context: LogContext
    ) -> None:
        if item.id not in self._index:
            return
        item.mark_failed(error, processing_time=time.time() - start_time)
        self._record(item, start_time, False)
        self._logger.error("Image stamping failed", log_context.with_metadata(error=error))
        self._notify(item)

    def _record(self, item: WorkItem, start_time: float, success: bool) -> None:
        if self._metrics_collector is None:
            return
        self._metrics_collector.record_metric(
            PerformanceMetrics(
                operation="stamp_image",
                start_time=start_time,
                end_time=start_time + item.processing_time,
                success=success,
                error_message=item.error or None,
                metadata={"item_id": item.id, "source_name": item.source_name},
            )
        )

    async def run(
        self, files: Iterable[SourceFile], style: Optional[StyleConfig] = None
    ) -> List[WorkItem]:
        """Submit ``files``, process everything pending and return the created items."""
        created = self.submit(files, style)
        await self.process_pending()
        return [
            self._index[item.id].model_copy() if item.id in self._index else item
            for item in created
        ]

    def process_batch(
        self, files: Iterable[SourceFile], style: Optional[StyleConfig] = None
    ) -> List[WorkItem]:
        """Synchronous wrapper around ``run`` for callers without an event loop."""
        return asyncio.run(self.run(files, style))

    def _in_state(self, state: WorkItemState) -> Tuple[WorkItem, ...]:
        return tuple(item for item in self._items if item.state is state)

    def done_items(self) -> Tuple[WorkItem, ...]:
        return tuple(item.model_copy() for item in self._in_state(WorkItemState.DONE))

    def failed_items(self) -> Tuple[WorkItem, ...]:
        return tuple(item.model_copy() for item in self._in_state(WorkItemState.FAILED))

    def pending_items(self) -> Tuple[WorkItem, ...]:
        return tuple(item.model_copy() for item in self._in_state(WorkItemState.PENDING))

    def partition(self) -> BatchPartition:
        return BatchPartition(
            done=self.done_items(),
            failed=self.failed_items(),
            pending=self.pending_items(),
        )

    def summary(self) -> BatchSummary:
        done = self._in_state(WorkItemState.DONE)
        failed = self._in_state(WorkItemState.FAILED)
        return BatchSummary(
            total=len(self._items),
            done=len(done),
            failed=len(failed),
            pending=len(self._items) - len(done) - len(failed),
            fallback_count=sum(1 for item in done if item.is_fallback),
            failures=[f"{item.source_name}: {item.error}" for item in failed],
        )

    def snapshot_done(self) -> Tuple[ArchiveEntry, ...]:
        """Immutable (download name, blob) pairs for every done item."""
        return tuple(
            ArchiveEntry(name=item.download_name, data=item.output.data)
            for item in self._in_state(WorkItemState.DONE)
            if item.output is not None
        )

    def export(self) -> Tuple[str, bytes]:
        """Single download for the done items; see ``archive.export_items``."""
        return export_items(self.snapshot_done())

    def clear(self) -> int:
        """
        Release every item's output handle, then forget all items.

        Items still being processed are not interrupted; their results are
        released and dropped when they arrive.

        Returns:
            Number of handles released
        """
        released = 0
        for item in self._items:
            if item.output is not None and self._registry.release(item.output.handle):
                released += 1
        self._items.clear()
        self._index.clear()
        self._queue.clear()
        self._logger.info(f"Cleared batch, released {released} output(s)")
        return released

    def close(self) -> None:
        """Clear the batch and remove the registry if this orchestrator created it."""
        self.clear()
        if self._owns_registry:
            self._registry.close()

    def __enter__(self) -> "BatchOrchestrator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False
