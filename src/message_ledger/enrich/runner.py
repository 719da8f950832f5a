"""Sequential, checkpointed enrichment loop."""

from __future__ import annotations

from collections.abc import Collection, Sequence
from dataclasses import dataclass
from typing import Protocol

from message_ledger.enrich.idempotency import add_enrichment
from message_ledger.logging.events import JsonlEventLogger
from message_ledger.records.models import Enrichment, MediaRecord, Record
from message_ledger.records.timestamps import utc_now
from message_ledger.state.checkpoint import CheckpointManager, CheckpointStats, FailedItem
from message_ledger.state.incremental import RunStats


class EnrichmentProvider(Protocol):
    """External collaborator that analyzes one media record."""

    def enrich(self, record: MediaRecord) -> Sequence[Enrichment]:
        """Return zero or more enrichments, raising on per-item failure."""


@dataclass(slots=True, frozen=True)
class EnrichmentAbortedError(Exception):
    """Raised by a provider to stop the whole run (rate limit, circuit break)."""

    reason: str

    def __str__(self) -> str:
        return self.reason


@dataclass(slots=True, frozen=True)
class EnrichmentRunResult:
    """Outcome of one enrichment loop."""

    records: list[Record]
    enriched_ids: list[str]
    stats: CheckpointStats
    failed_items: tuple[FailedItem, ...]
    start_index: int
    last_index: int
    resumed: bool
    start_time: str
    end_time: str

    def run_stats(self) -> RunStats:
        return RunStats(
            processed_count=self.stats.processed_count,
            failed_count=self.stats.failed_count,
            start_time=self.start_time,
            end_time=self.end_time,
        )

    def summary(self) -> dict[str, object]:
        """Return a serializable run summary without record bodies."""
        return {
            "start_index": self.start_index,
            "last_index": self.last_index,
            "resumed": self.resumed,
            "enriched_count": len(self.enriched_ids),
            "stats": self.stats.to_dict(),
            "failed_items": [item.to_dict() for item in self.failed_items],
        }


def run_enrichment(
    records: Sequence[Record],
    provider: EnrichmentProvider,
    checkpoints: CheckpointManager,
    delta_ids: Collection[str] | None = None,
    force_refresh: bool = False,
    resume: bool = False,
    event_logger: JsonlEventLogger | None = None,
) -> EnrichmentRunResult:
    """Enrich records in input order, checkpointing every interval.

    Only identifiers in `delta_ids` are enriched when it is given; other
    records pass through untouched. Media records go to the provider; other
    delta records are marked enriched without a provider call. A provider
    exception fails that item only, except `EnrichmentAbortedError`, which
    checkpoints the last completed item and propagates.
    """
    start_time = utc_now()
    state = checkpoints.begin(resume=resume)
    carried = state.checkpoint.stats if state.checkpoint is not None else CheckpointStats()
    processed = carried.processed_count
    failed = carried.failed_count
    by_kind = dict(carried.by_kind)
    failed_items = list(state.failed_items)
    wanted = set(delta_ids) if delta_ids is not None else None

    output = list(records)
    enriched_ids: list[str] = []
    last_index = state.start_index - 1
    for index in range(state.start_index, len(output)):
        record = output[index]
        if wanted is None or record.id in wanted:
            if isinstance(record, MediaRecord):
                try:
                    produced = provider.enrich(record)
                except EnrichmentAbortedError as error:
                    if last_index >= 0:
                        checkpoints.write(
                            last_index,
                            CheckpointStats(processed, failed, dict(by_kind)),
                            failed_items,
                        )
                    if event_logger is not None:
                        event_logger.emit(
                            "enrichment",
                            "run_aborted",
                            {
                                "record_id": record.id,
                                "index": index,
                                "error_type": type(error).__name__,
                            },
                            level="error",
                        )
                    raise
                except Exception as error:
                    failed += 1
                    failed_items.append(
                        FailedItem(
                            index=index,
                            record_id=record.id,
                            kind=record.kind.value,
                            error=str(error),
                        )
                    )
                    if event_logger is not None:
                        event_logger.emit(
                            "enrichment",
                            "item_failed",
                            {
                                "record_id": record.id,
                                "index": index,
                                "error_type": type(error).__name__,
                            },
                            level="warning",
                        )
                else:
                    for enrichment in produced:
                        record = add_enrichment(record, enrichment, force_refresh=force_refresh)
                        by_kind[enrichment.kind.value] = by_kind.get(enrichment.kind.value, 0) + 1
                    output[index] = record
                    enriched_ids.append(record.id)
                    processed += 1
            else:
                enriched_ids.append(record.id)
                processed += 1
        last_index = index
        if checkpoints.is_due(index):
            checkpoints.write(
                index, CheckpointStats(processed, failed, dict(by_kind)), failed_items
            )

    stats = CheckpointStats(processed, failed, dict(by_kind))
    if last_index >= 0:
        checkpoints.write(last_index, stats, failed_items)
    result = EnrichmentRunResult(
        records=output,
        enriched_ids=enriched_ids,
        stats=stats,
        failed_items=tuple(failed_items),
        start_index=state.start_index,
        last_index=last_index,
        resumed=state.is_resuming,
        start_time=start_time,
        end_time=utc_now(),
    )
    if event_logger is not None:
        event_logger.emit(
            "enrichment",
            "run_completed",
            {
                "start_index": result.start_index,
                "last_index": result.last_index,
                "processed_count": stats.processed_count,
                "failed_count": stats.failed_count,
                "by_kind": stats.by_kind,
            },
        )
    return result
