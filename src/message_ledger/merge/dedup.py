"""Deterministic dedup and merge of a flat and an authoritative record set."""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import asdict, dataclass, fields, replace

from message_ledger.records.codec import record_to_dict
from message_ledger.records.identifiers import preferred_identifier
from message_ledger.records.models import (
    MediaPayload,
    MediaRecord,
    NotificationRecord,
    Reaction,
    ReactionRecord,
    Record,
    RecordKind,
    ReplyLink,
    TextRecord,
)


@dataclass(slots=True, frozen=True)
class DataLossError(Exception):
    """Raised when a merge would emit fewer records than its larger input."""

    left_count: int
    right_count: int
    output_count: int

    def __str__(self) -> str:
        return (
            f"Merge emitted {self.output_count} records from inputs of "
            f"{self.left_count} and {self.right_count}."
        )


@dataclass(slots=True, frozen=True)
class MergeStats:
    """Counts reported by one dedup merge."""

    left_count: int
    right_count: int
    output_count: int
    exact_matches: int
    content_matches: int
    unmatched_left: int
    unmatched_right: int

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class MergeOutcome:
    """Merged records and their statistics."""

    records: list[Record]
    stats: MergeStats


def verify_no_data_loss(left_count: int, right_count: int, output_count: int) -> None:
    """Raise DataLossError unless output covers the larger input."""
    if output_count < max(left_count, right_count):
        raise DataLossError(
            left_count=left_count,
            right_count=right_count,
            output_count=output_count,
        )


def normalize_body(body: str | None) -> str:
    """Normalize free text for content equivalence."""
    return (body or "").strip().casefold()


def content_key(record: Record) -> tuple[RecordKind, str] | None:
    """Return the equivalence key of a record, None when it cannot be matched by content."""
    if isinstance(record, TextRecord):
        normalized = normalize_body(record.body)
        if not normalized:
            return None
        return (RecordKind.TEXT, normalized)
    if isinstance(record, MediaRecord):
        return (RecordKind.MEDIA, record.media.id)
    return None


def dedup_merge(left: Sequence[Record], right: Sequence[Record]) -> MergeOutcome:
    """Merge a flat source (left) with an authoritative source (right).

    Exact identifier matches are merged first. Records still unmatched on
    the left are then paired with unmatched right records of the same kind
    whose normalized body (or media id) is identical and whose sender does
    not conflict. Everything else passes through. Inputs are sorted before
    matching and the output is sorted by timestamp and identifier, so the
    result does not depend on input order.
    """
    sorted_left = sorted(left, key=_stable_key)
    sorted_right = sorted(right, key=_stable_key)

    right_by_id: dict[str, list[int]] = {}
    for position, record in enumerate(sorted_right):
        right_by_id.setdefault(record.id, []).append(position)
    used_right: set[int] = set()

    merged: list[Record] = []
    exact_matches = 0
    pending_left: list[Record] = []
    for record in sorted_left:
        position = _first_unused(right_by_id.get(record.id, ()), used_right)
        if position is None:
            pending_left.append(record)
            continue
        used_right.add(position)
        merged.append(merge_records(record, sorted_right[position]))
        exact_matches += 1

    right_by_content: dict[tuple[RecordKind, str], list[int]] = {}
    for position, record in enumerate(sorted_right):
        if position in used_right:
            continue
        key = content_key(record)
        if key is not None:
            right_by_content.setdefault(key, []).append(position)

    content_matches = 0
    unmatched_left = 0
    for record in pending_left:
        position = _find_content_match(record, sorted_right, right_by_content, used_right)
        if position is None:
            merged.append(record)
            unmatched_left += 1
            continue
        used_right.add(position)
        merged.append(merge_records(record, sorted_right[position]))
        content_matches += 1

    unmatched_right = 0
    for position, record in enumerate(sorted_right):
        if position not in used_right:
            merged.append(record)
            unmatched_right += 1

    merged.sort(key=lambda item: (item.timestamp, _stable_key(item)))
    verify_no_data_loss(len(left), len(right), len(merged))
    return MergeOutcome(
        records=merged,
        stats=MergeStats(
            left_count=len(left),
            right_count=len(right),
            output_count=len(merged),
            exact_matches=exact_matches,
            content_matches=content_matches,
            unmatched_left=unmatched_left,
            unmatched_right=unmatched_right,
        ),
    )


def merge_records(flat: Record, authoritative: Record) -> Record:
    """Overlay every non-null authoritative field onto the flat record."""
    record_id = preferred_identifier(flat.id, authoritative.id)
    extras = _overlay_extras(flat.extras, authoritative.extras)
    if flat.kind is not authoritative.kind:
        return replace(authoritative, id=record_id, extras=extras)

    common: dict[str, object] = {
        "id": record_id,
        "timestamp": authoritative.timestamp,
        "is_from_me": authoritative.is_from_me,
        "sender": _pick(authoritative.sender, flat.sender),
        "group_id": _pick(authoritative.group_id, flat.group_id),
        "extras": extras,
    }
    if isinstance(flat, TextRecord) and isinstance(authoritative, TextRecord):
        return TextRecord(
            body=authoritative.body or flat.body,
            reply=_overlay_reply(flat.reply, authoritative.reply),
            **common,
        )
    if isinstance(flat, MediaRecord) and isinstance(authoritative, MediaRecord):
        return MediaRecord(
            media=_overlay_media(flat.media, authoritative.media),
            body=_pick(authoritative.body, flat.body),
            reply=_overlay_reply(flat.reply, authoritative.reply),
            **common,
        )
    if isinstance(flat, ReactionRecord) and isinstance(authoritative, ReactionRecord):
        return ReactionRecord(
            reaction=_overlay_fields(flat.reaction, authoritative.reaction),
            **common,
        )
    return NotificationRecord(
        body=_pick(authoritative.body, flat.body),
        **common,
    )


def _stable_key(record: Record) -> tuple[str, str]:
    return (record.id, json.dumps(record_to_dict(record), sort_keys=True))


def _first_unused(positions: Sequence[int], used: set[int]) -> int | None:
    for position in positions:
        if position not in used:
            return position
    return None


def _find_content_match(
    record: Record,
    candidates: Sequence[Record],
    index: dict[tuple[RecordKind, str], list[int]],
    used: set[int],
) -> int | None:
    key = content_key(record)
    if key is None:
        return None
    for position in index.get(key, ()):
        if position in used:
            continue
        candidate = candidates[position]
        if record.sender and candidate.sender and record.sender != candidate.sender:
            continue
        return position
    return None


def _pick(preferred: object, fallback: object) -> object:
    return preferred if preferred is not None else fallback


def _overlay_extras(flat: dict[str, object], authoritative: dict[str, object]) -> dict[str, object]:
    merged = dict(flat)
    for key, value in authoritative.items():
        if value is not None or key not in merged:
            merged[key] = value
    return merged


def _overlay_fields(
    flat: ReplyLink | Reaction, authoritative: ReplyLink | Reaction
) -> ReplyLink | Reaction:
    updates = {
        item.name: getattr(authoritative, item.name)
        for item in fields(authoritative)
        if getattr(authoritative, item.name) is not None
    }
    return replace(flat, **updates)


def _overlay_reply(flat: ReplyLink | None, authoritative: ReplyLink | None) -> ReplyLink | None:
    if flat is None:
        return authoritative
    if authoritative is None:
        return flat
    return _overlay_fields(flat, authoritative)


def _overlay_media(flat: MediaPayload, authoritative: MediaPayload) -> MediaPayload:
    return MediaPayload(
        id=authoritative.id,
        filename=authoritative.filename or flat.filename,
        path=authoritative.path or flat.path,
        mime_type=_pick(authoritative.mime_type, flat.mime_type),
        media_kind=_pick(authoritative.media_kind, flat.media_kind),
        enrichments=authoritative.enrichments or flat.enrichments,
        extras=_overlay_extras(flat.extras, authoritative.extras),
    )
