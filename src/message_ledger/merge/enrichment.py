"""Fold freshly enriched records into a previously persisted enrichment result."""

from __future__ import annotations

import json
import shutil
from collections.abc import Sequence
from dataclasses import dataclass, replace
from pathlib import Path

from message_ledger.logging.events import JsonlEventLogger
from message_ledger.records.codec import RecordFormatError, dump_envelope, load_records_file
from message_ledger.records.models import MediaRecord, Record
from message_ledger.state.atomic import atomic_write_json

BACKUP_SUFFIX = ".backup"
ENRICHED_SOURCE = "message-ledger"


@dataclass(slots=True, frozen=True)
class EnrichmentMergeResult:
    """Merged records plus merge counters."""

    records: list[Record]
    merged_count: int
    added_count: int
    preserved_count: int

    @property
    def total_records(self) -> int:
        return len(self.records)

    def stats_dict(self) -> dict[str, object]:
        """Return counters and percentages of the total."""
        total = self.total_records
        return {
            "merged_count": self.merged_count,
            "added_count": self.added_count,
            "preserved_count": self.preserved_count,
            "total_records": total,
            "merged_percentage": (self.merged_count / total) * 100 if total else 0.0,
            "added_percentage": (self.added_count / total) * 100 if total else 0.0,
        }


def merge_enrichments(
    existing: Sequence[Record],
    new: Sequence[Record],
    force_refresh: bool = False,
) -> EnrichmentMergeResult:
    """Merge new records into existing ones by exact identifier.

    Existing records keep their order and come first; identifiers only in
    the new set are appended in their input order. Without `force_refresh`
    an existing enrichment kind is never overwritten.
    """
    new_by_id: dict[str, Record] = {}
    for record in new:
        new_by_id.setdefault(record.id, record)

    output: list[Record] = []
    consumed: set[str] = set()
    merged_count = 0
    preserved_count = 0
    for record in existing:
        incoming = new_by_id.get(record.id)
        if incoming is None or record.id in consumed:
            output.append(record)
            continue
        consumed.add(record.id)
        merged = merge_record_enrichments(record, incoming, force_refresh=force_refresh)
        merged_count += 1
        if _kept_prior_enrichment(record, merged):
            preserved_count += 1
        output.append(merged)

    added_count = 0
    for record_id, record in new_by_id.items():
        if record_id in consumed:
            continue
        output.append(record)
        added_count += 1

    return EnrichmentMergeResult(
        records=output,
        merged_count=merged_count,
        added_count=added_count,
        preserved_count=preserved_count,
    )


def merge_record_enrichments(
    existing: Record, incoming: Record, force_refresh: bool = False
) -> Record:
    """Merge the enrichment list of one matched record."""
    if not isinstance(existing, MediaRecord) or not isinstance(incoming, MediaRecord):
        return existing
    if not incoming.media.enrichments:
        return existing
    if force_refresh:
        enrichments = incoming.media.enrichments
    else:
        present = {item.kind for item in existing.media.enrichments}
        enrichments = existing.media.enrichments + tuple(
            item for item in incoming.media.enrichments if item.kind not in present
        )
    return replace(existing, media=replace(existing.media, enrichments=enrichments))


def load_enriched_file(path: Path) -> list[Record] | None:
    """Load a prior enrichment result, None when missing or unreadable."""
    if not path.exists():
        return None
    try:
        return load_records_file(path)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, RecordFormatError):
        return None


def backup_enriched_file(path: Path) -> Path | None:
    """Copy the current enrichment file to its `.backup` sibling."""
    if not path.exists():
        return None
    backup_path = path.with_name(path.name + BACKUP_SUFFIX)
    shutil.copyfile(path, backup_path)
    return backup_path


def write_merged_enriched_file(
    path: Path,
    new_records: Sequence[Record],
    force_refresh: bool = False,
    event_logger: JsonlEventLogger | None = None,
) -> EnrichmentMergeResult:
    """Back up, merge and atomically persist the enrichment file."""
    existing = load_enriched_file(path)
    unreadable = existing is None and path.exists()
    backup_path = backup_enriched_file(path)
    if existing is not None:
        result = merge_enrichments(existing, new_records, force_refresh=force_refresh)
    else:
        result = EnrichmentMergeResult(
            records=list(new_records),
            merged_count=0,
            added_count=len(new_records),
            preserved_count=0,
        )
    atomic_write_json(path, dump_envelope(result.records, source=ENRICHED_SOURCE))
    if event_logger is not None:
        if unreadable:
            event_logger.emit(
                "enrichment_merge", "previous_unreadable", {"path": str(path)}, level="warning"
            )
        if backup_path is not None:
            event_logger.emit(
                "enrichment_merge", "backup_created", {"backup_path": str(backup_path)}
            )
        event_logger.emit(
            "enrichment_merge",
            "merge_completed",
            {**result.stats_dict(), "mode": "force_refresh" if force_refresh else "preserve"},
        )
    return result


def _kept_prior_enrichment(existing: Record, merged: Record) -> bool:
    if not isinstance(existing, MediaRecord) or not isinstance(merged, MediaRecord):
        return False
    return any(item in existing.media.enrichments for item in merged.media.enrichments)
