"""Kind-keyed idempotent enrichment helpers."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from message_ledger.records.models import Enrichment, EnrichmentKind, MediaRecord, Record
from message_ledger.records.timestamps import epoch_millis


def has_enrichment_kind(record: Record, kind: EnrichmentKind) -> bool:
    """Return True when a media record already carries an enrichment of `kind`."""
    if not isinstance(record, MediaRecord):
        return False
    return any(item.kind is kind for item in record.media.enrichments)


def get_enrichment(record: Record, kind: EnrichmentKind) -> Enrichment | None:
    """Return the first enrichment of `kind`, if any."""
    if not isinstance(record, MediaRecord):
        return None
    for item in record.media.enrichments:
        if item.kind is kind:
            return item
    return None


def dedupe_enrichments_by_kind(enrichments: Iterable[Enrichment]) -> tuple[Enrichment, ...]:
    """Keep one enrichment per kind, the one with the latest `created_at`.

    Kinds keep the position of their first occurrence. An entry whose
    timestamp cannot be parsed never displaces one that can.
    """
    by_kind: dict[EnrichmentKind, Enrichment] = {}
    for item in enrichments:
        current = by_kind.get(item.kind)
        if current is None:
            by_kind[item.kind] = item
            continue
        candidate_millis = epoch_millis(item.created_at)
        current_millis = epoch_millis(current.created_at)
        if candidate_millis is None:
            continue
        if current_millis is None or candidate_millis > current_millis:
            by_kind[item.kind] = item
    return tuple(by_kind.values())


def add_enrichment(record: Record, enrichment: Enrichment, force_refresh: bool = False) -> Record:
    """Attach an enrichment unless its kind is already present.

    With `force_refresh` the existing entry of the same kind is replaced in
    place. Non-media records are returned unchanged.
    """
    if not isinstance(record, MediaRecord):
        return record
    current = list(record.media.enrichments)
    existing_index = next(
        (index for index, item in enumerate(current) if item.kind is enrichment.kind),
        None,
    )
    if existing_index is None:
        current.append(enrichment)
    elif force_refresh:
        current[existing_index] = enrichment
    else:
        return record
    return replace(
        record,
        media=replace(record.media, enrichments=dedupe_enrichments_by_kind(current)),
    )
