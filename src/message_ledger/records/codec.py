"""JSON codec for the collaborator-facing record shape."""

from __future__ import annotations

import json
from pathlib import Path

from message_ledger.records.models import (
    Enrichment,
    EnrichmentKind,
    MediaKind,
    MediaPayload,
    MediaRecord,
    NotificationRecord,
    Reaction,
    ReactionAction,
    ReactionKind,
    ReactionRecord,
    Record,
    RecordKind,
    ReplyLink,
    TextRecord,
)
from message_ledger.records.timestamps import utc_now

ENVELOPE_SCHEMA_VERSION = "1.0"

_HEADER_KEYS = frozenset(
    {"id", "timestamp", "is_from_me", "kind", "sender", "group_id", "text", "reply"}
)
_MEDIA_KEYS = frozenset({"id", "filename", "path", "mime_type", "media_kind", "enrichment"})
_ENRICHMENT_KEYS = frozenset({"kind", "created_at", "provider", "version", "model"})


class RecordFormatError(ValueError):
    """Raised when a record is structurally invalid."""

    def __init__(self, reason: str, record_id: str | None = None) -> None:
        message = reason if record_id is None else f"{reason} (record {record_id})"
        super().__init__(message)
        self.reason = reason
        self.record_id = record_id


def record_from_dict(payload: object) -> Record:
    """Build a typed record from one JSON object."""
    if not isinstance(payload, dict):
        raise RecordFormatError("Record must be a JSON object.")
    record_id = payload.get("id")
    if not isinstance(record_id, str) or not record_id:
        raise RecordFormatError("Record field 'id' must be a non-empty string.")
    timestamp = payload.get("timestamp")
    if not isinstance(timestamp, str):
        raise RecordFormatError("Record field 'timestamp' must be a string.", record_id)
    is_from_me = payload.get("is_from_me")
    if not isinstance(is_from_me, bool):
        raise RecordFormatError("Record field 'is_from_me' must be a boolean.", record_id)
    raw_kind = payload.get("kind")
    try:
        kind = RecordKind(raw_kind)
    except ValueError as error:
        raise RecordFormatError(f"Unknown record kind: {raw_kind!r}.", record_id) from error

    sender = _optional_str(payload, "sender", record_id)
    group_id = _optional_str(payload, "group_id", record_id)
    body = _optional_str(payload, "text", record_id)
    raw_media = payload.get("media")
    raw_tapback = payload.get("tapback")

    if kind is not RecordKind.MEDIA and raw_media is not None:
        raise RecordFormatError("Only media records may carry a media payload.", record_id)
    if kind is not RecordKind.TAPBACK and raw_tapback is not None:
        raise RecordFormatError("Only tapback records may carry a tapback payload.", record_id)

    consumed = set(_HEADER_KEYS)
    if kind is RecordKind.MEDIA:
        if raw_media is None:
            raise RecordFormatError("Media records require a media payload.", record_id)
        consumed.add("media")
        return MediaRecord(
            id=record_id,
            timestamp=timestamp,
            is_from_me=is_from_me,
            media=_media_from_dict(raw_media, record_id),
            body=body,
            sender=sender,
            group_id=group_id,
            reply=_reply_from_dict(payload.get("reply"), record_id),
            extras=_extras(payload, consumed),
        )
    if kind is RecordKind.TEXT:
        return TextRecord(
            id=record_id,
            timestamp=timestamp,
            is_from_me=is_from_me,
            body=body or "",
            sender=sender,
            group_id=group_id,
            reply=_reply_from_dict(payload.get("reply"), record_id),
            extras=_extras(payload, consumed),
        )
    if kind is RecordKind.TAPBACK:
        if raw_tapback is None:
            raise RecordFormatError("Tapback records require a tapback payload.", record_id)
        consumed.add("tapback")
        if body is not None:
            consumed.discard("text")
        return ReactionRecord(
            id=record_id,
            timestamp=timestamp,
            is_from_me=is_from_me,
            reaction=_reaction_from_dict(raw_tapback, record_id),
            sender=sender,
            group_id=group_id,
            extras=_extras(payload, consumed),
        )
    return NotificationRecord(
        id=record_id,
        timestamp=timestamp,
        is_from_me=is_from_me,
        body=body,
        sender=sender,
        group_id=group_id,
        extras=_extras(payload, consumed),
    )


def record_to_dict(record: Record) -> dict[str, object]:
    """Serialize a record back to its JSON object form."""
    payload: dict[str, object] = dict(record.extras)
    payload["id"] = record.id
    payload["timestamp"] = record.timestamp
    payload["is_from_me"] = record.is_from_me
    payload["kind"] = record.kind.value
    if record.sender is not None:
        payload["sender"] = record.sender
    if record.group_id is not None:
        payload["group_id"] = record.group_id
    if isinstance(record, ReactionRecord):
        payload["tapback"] = _reaction_to_dict(record.reaction)
        return payload
    if record.body is not None:
        payload["text"] = record.body
    if isinstance(record, (TextRecord, MediaRecord)) and record.reply is not None:
        payload["reply"] = _reply_to_dict(record.reply)
    if isinstance(record, MediaRecord):
        payload["media"] = _media_to_dict(record.media)
    return payload


def enrichment_from_dict(payload: object, record_id: str | None = None) -> Enrichment:
    """Build a typed enrichment from its JSON object."""
    if not isinstance(payload, dict):
        raise RecordFormatError("Enrichment must be a JSON object.", record_id)
    raw_kind = payload.get("kind")
    try:
        kind = EnrichmentKind(raw_kind)
    except ValueError as error:
        raise RecordFormatError(f"Unknown enrichment kind: {raw_kind!r}.", record_id) from error
    created_at = payload.get("created_at")
    provider = payload.get("provider")
    version = payload.get("version")
    if not isinstance(created_at, str):
        raise RecordFormatError("Enrichment 'created_at' must be a string.", record_id)
    if not isinstance(provider, str):
        raise RecordFormatError("Enrichment 'provider' must be a string.", record_id)
    if not isinstance(version, str):
        raise RecordFormatError("Enrichment 'version' must be a string.", record_id)
    return Enrichment(
        kind=kind,
        created_at=created_at,
        provider=provider,
        version=version,
        model=_optional_str(payload, "model", record_id),
        details={key: value for key, value in payload.items() if key not in _ENRICHMENT_KEYS},
    )


def enrichment_to_dict(enrichment: Enrichment) -> dict[str, object]:
    """Serialize an enrichment to its JSON object form."""
    payload: dict[str, object] = dict(enrichment.details)
    payload["kind"] = enrichment.kind.value
    payload["created_at"] = enrichment.created_at
    payload["provider"] = enrichment.provider
    payload["version"] = enrichment.version
    if enrichment.model is not None:
        payload["model"] = enrichment.model
    return payload


def records_from_list(items: object) -> list[Record]:
    """Decode a JSON list of records."""
    if not isinstance(items, list):
        raise RecordFormatError("Record batch must be a JSON list.")
    return [record_from_dict(item) for item in items]


def load_records_file(path: Path) -> list[Record]:
    """Load records from a bare JSON list or a `{"records": [...]}` envelope."""
    with path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if isinstance(payload, dict):
        return records_from_list(payload.get("records"))
    return records_from_list(payload)


def dump_envelope(
    records: list[Record], source: str, created_at: str | None = None
) -> dict[str, object]:
    """Wrap records in the persisted export envelope."""
    return {
        "schema_version": ENVELOPE_SCHEMA_VERSION,
        "source": source,
        "created_at": created_at or utc_now(),
        "records": [record_to_dict(record) for record in records],
    }


def _optional_str(payload: dict[str, object], key: str, record_id: str | None) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise RecordFormatError(f"Record field '{key}' must be a string.", record_id)
    return value


def _optional_int(payload: dict[str, object], key: str, record_id: str) -> int | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool):
        raise RecordFormatError(f"Record field '{key}' must be an integer.", record_id)
    return value


def _optional_bool(payload: dict[str, object], key: str, record_id: str) -> bool | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise RecordFormatError(f"Record field '{key}' must be a boolean.", record_id)
    return value


def _extras(payload: dict[str, object], consumed: set[str]) -> dict[str, object]:
    return {key: value for key, value in payload.items() if key not in consumed}


def _media_from_dict(payload: object, record_id: str) -> MediaPayload:
    if not isinstance(payload, dict):
        raise RecordFormatError("Media payload must be a JSON object.", record_id)
    media_id = payload.get("id")
    filename = payload.get("filename")
    path = payload.get("path")
    if not isinstance(media_id, str) or not media_id:
        raise RecordFormatError("Media field 'id' must be a non-empty string.", record_id)
    if not isinstance(filename, str):
        raise RecordFormatError("Media field 'filename' must be a string.", record_id)
    if not isinstance(path, str):
        raise RecordFormatError("Media field 'path' must be a string.", record_id)
    raw_media_kind = payload.get("media_kind")
    media_kind: MediaKind | None = None
    if raw_media_kind is not None:
        try:
            media_kind = MediaKind(raw_media_kind)
        except ValueError as error:
            raise RecordFormatError(
                f"Unknown media kind: {raw_media_kind!r}.", record_id
            ) from error
    raw_enrichment = payload.get("enrichment", [])
    if raw_enrichment is None:
        raw_enrichment = []
    if not isinstance(raw_enrichment, list):
        raise RecordFormatError("Media field 'enrichment' must be a list.", record_id)
    return MediaPayload(
        id=media_id,
        filename=filename,
        path=path,
        mime_type=_optional_str(payload, "mime_type", record_id),
        media_kind=media_kind,
        enrichments=tuple(enrichment_from_dict(item, record_id) for item in raw_enrichment),
        extras={key: value for key, value in payload.items() if key not in _MEDIA_KEYS},
    )


def _media_to_dict(media: MediaPayload) -> dict[str, object]:
    payload: dict[str, object] = dict(media.extras)
    payload["id"] = media.id
    payload["filename"] = media.filename
    payload["path"] = media.path
    if media.mime_type is not None:
        payload["mime_type"] = media.mime_type
    if media.media_kind is not None:
        payload["media_kind"] = media.media_kind.value
    if media.enrichments:
        payload["enrichment"] = [enrichment_to_dict(item) for item in media.enrichments]
    return payload


def _reply_from_dict(payload: object, record_id: str) -> ReplyLink | None:
    if payload is None:
        return None
    if not isinstance(payload, dict):
        raise RecordFormatError("Record field 'reply' must be an object.", record_id)
    return ReplyLink(
        target_id=_optional_str(payload, "target_id", record_id),
        snippet_text=_optional_str(payload, "text", record_id),
        sender=_optional_str(payload, "sender", record_id),
        target_timestamp=_optional_str(payload, "timestamp", record_id),
    )


def _reply_to_dict(reply: ReplyLink) -> dict[str, object]:
    payload: dict[str, object] = {}
    if reply.target_id is not None:
        payload["target_id"] = reply.target_id
    if reply.snippet_text is not None:
        payload["text"] = reply.snippet_text
    if reply.sender is not None:
        payload["sender"] = reply.sender
    if reply.target_timestamp is not None:
        payload["timestamp"] = reply.target_timestamp
    return payload


def _reaction_from_dict(payload: object, record_id: str) -> Reaction:
    if not isinstance(payload, dict):
        raise RecordFormatError("Tapback payload must be a JSON object.", record_id)
    try:
        kind = ReactionKind(payload.get("kind"))
        action = ReactionAction(payload.get("action"))
    except ValueError as error:
        raise RecordFormatError(
            "Tapback 'kind' or 'action' is not recognized.", record_id
        ) from error
    return Reaction(
        kind=kind,
        action=action,
        target_id=_optional_str(payload, "target_id", record_id),
        target_part=_optional_int(payload, "target_part", record_id),
        target_text=_optional_str(payload, "target_text", record_id),
        is_media=_optional_bool(payload, "is_media", record_id),
        emoji=_optional_str(payload, "emoji", record_id),
    )


def _reaction_to_dict(reaction: Reaction) -> dict[str, object]:
    payload: dict[str, object] = {
        "kind": reaction.kind.value,
        "action": reaction.action.value,
    }
    if reaction.target_id is not None:
        payload["target_id"] = reaction.target_id
    if reaction.target_part is not None:
        payload["target_part"] = reaction.target_part
    if reaction.target_text is not None:
        payload["target_text"] = reaction.target_text
    if reaction.is_media is not None:
        payload["is_media"] = reaction.is_media
    if reaction.emoji is not None:
        payload["emoji"] = reaction.emoji
    return payload
