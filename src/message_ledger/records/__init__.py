"""Canonical record model, identifiers, codec and indices."""

from .codec import (
    ENVELOPE_SCHEMA_VERSION,
    RecordFormatError,
    dump_envelope,
    enrichment_from_dict,
    enrichment_to_dict,
    load_records_file,
    record_from_dict,
    record_to_dict,
    records_from_list,
)
from .identifiers import (
    IdentifierShape,
    classify_identifier,
    group_identifier,
    is_flat_source,
    part_index,
    preferred_identifier,
)
from .models import (
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
    record_body,
)
from .store import RecordStore
from .timestamps import TimestampError, epoch_millis, format_timestamp, parse_timestamp, utc_now

__all__ = [
    "ENVELOPE_SCHEMA_VERSION",
    "Enrichment",
    "EnrichmentKind",
    "IdentifierShape",
    "MediaKind",
    "MediaPayload",
    "MediaRecord",
    "NotificationRecord",
    "Reaction",
    "ReactionAction",
    "ReactionKind",
    "ReactionRecord",
    "Record",
    "RecordFormatError",
    "RecordKind",
    "RecordStore",
    "ReplyLink",
    "TextRecord",
    "TimestampError",
    "classify_identifier",
    "dump_envelope",
    "enrichment_from_dict",
    "enrichment_to_dict",
    "epoch_millis",
    "format_timestamp",
    "group_identifier",
    "is_flat_source",
    "load_records_file",
    "parse_timestamp",
    "part_index",
    "preferred_identifier",
    "record_body",
    "record_from_dict",
    "record_to_dict",
    "records_from_list",
    "utc_now",
]
