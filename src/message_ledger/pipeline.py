"""End-to-end normalize/link and incremental enrichment flows."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from message_ledger.config import (
    LedgerConfig,
    LinkingPolicy,
    ProviderCredentials,
    compute_config_hash,
)
from message_ledger.enrich.runner import EnrichmentProvider, EnrichmentRunResult, run_enrichment
from message_ledger.linking.resolver import LinkingResult, link_records
from message_ledger.logging.events import JsonlEventLogger
from message_ledger.merge.dedup import MergeStats, dedup_merge
from message_ledger.merge.enrichment import EnrichmentMergeResult, write_merged_enriched_file
from message_ledger.records.models import Record
from message_ledger.state.checkpoint import CheckpointManager
from message_ledger.state.incremental import (
    DEFAULT_OUTDATED_DAYS,
    DeltaResult,
    IncrementalState,
    detect_delta,
    is_state_outdated,
    save_state,
    update_state,
    verify_config_hash,
)


class BatchValidator(Protocol):
    """External schema validator for a record batch."""

    def validate(self, records: Sequence[Record]) -> None:
        """Raise RecordFormatError to reject the batch."""


@dataclass(slots=True, frozen=True)
class NormalizeResult:
    """Deduplicated, linked records with their statistics."""

    records: list[Record]
    merge_stats: MergeStats
    linking: LinkingResult

    def summary(self) -> dict[str, object]:
        return {
            "record_count": len(self.records),
            "merge": self.merge_stats.to_dict(),
            "linking": self.linking.stats.to_dict(),
            "ambiguous_links": [link.to_dict() for link in self.linking.ambiguous_links],
        }


@dataclass(slots=True, frozen=True)
class IncrementalRunResult:
    """Everything produced by one incremental enrichment run."""

    delta: DeltaResult
    run: EnrichmentRunResult
    merge: EnrichmentMergeResult
    state: IncrementalState
    config_hash: str

    def summary(self) -> dict[str, object]:
        return {
            "config_hash": self.config_hash,
            "is_first_run": self.delta.is_first_run,
            "new_count": self.delta.new_count,
            "total": self.delta.total,
            "run": self.run.summary(),
            "merge": self.merge.stats_dict(),
            "enriched_total": len(self.state.enriched_ids),
        }


def normalize_and_link(
    flat: Sequence[Record],
    rich: Sequence[Record],
    policy: LinkingPolicy | None = None,
    validator: BatchValidator | None = None,
    event_logger: JsonlEventLogger | None = None,
) -> NormalizeResult:
    """Dedup the two sources, link replies and reactions, then validate."""
    outcome = dedup_merge(flat, rich)
    linking = link_records(outcome.records, policy=policy, track_ambiguous=True)
    if validator is not None:
        validator.validate(linking.records)
    if event_logger is not None:
        event_logger.emit("dedup", "merge_completed", outcome.stats.to_dict())
        for link in linking.ambiguous_links:
            event_logger.emit(
                "linking",
                "ambiguous_link",
                {
                    "record_id": link.record_id,
                    "chosen_target": link.chosen_target,
                    "tie_count": link.tie_count,
                    "score": link.score,
                },
                level="warning",
            )
        event_logger.emit("linking", "linking_completed", linking.stats.to_dict())
    return NormalizeResult(records=linking.records, merge_stats=outcome.stats, linking=linking)


def run_incremental_enrichment(
    records: Sequence[Record],
    provider: EnrichmentProvider,
    config: LedgerConfig,
    credentials: ProviderCredentials,
    force_refresh: bool = False,
    resume: bool = False,
    incremental: bool = True,
    event_logger: JsonlEventLogger | None = None,
) -> IncrementalRunResult:
    """Delta -> config check -> enrichment loop -> enrichment merge -> state update.

    The configuration hash must match the one stored by the previous run
    unless `force_refresh` is set. With `incremental=False` every record is
    enriched again, but prior enrichment kinds are still preserved by the
    merge unless `force_refresh` is set as well.
    """
    config_hash = compute_config_hash(credentials)
    delta = detect_delta(records, config.paths.state_file, event_logger=event_logger)
    verify_config_hash(delta.state, config_hash, force=force_refresh)
    if (
        event_logger is not None
        and not delta.is_first_run
        and is_state_outdated(delta.state)
    ):
        event_logger.emit(
            "incremental_state",
            "state_outdated",
            {"threshold_days": DEFAULT_OUTDATED_DAYS},
            level="warning",
        )

    checkpoints = CheckpointManager(
        config.paths.checkpoint_dir,
        config_hash,
        interval=config.enrichment.checkpoint_interval,
        event_logger=event_logger,
    )
    run = run_enrichment(
        records,
        provider,
        checkpoints,
        delta_ids=delta.new_ids if incremental else None,
        force_refresh=force_refresh,
        resume=resume,
        event_logger=event_logger,
    )
    merge = write_merged_enriched_file(
        config.paths.enriched_file,
        run.records,
        force_refresh=force_refresh,
        event_logger=event_logger,
    )
    state = update_state(
        delta.state,
        run.enriched_ids,
        stats=run.run_stats(),
        total_records=len(records),
    )
    state.config_hash = config_hash
    save_state(state, config.paths.state_file)
    return IncrementalRunResult(
        delta=delta,
        run=run,
        merge=merge,
        state=state,
        config_hash=config_hash,
    )
