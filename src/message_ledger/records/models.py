"""Typed models for canonical message records."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TypeAlias


class RecordKind(Enum):
    """Wire discriminator for record variants."""

    TEXT = "text"
    MEDIA = "media"
    TAPBACK = "tapback"
    NOTIFICATION = "notification"


class MediaKind(Enum):
    """Coarse media classification."""

    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    PDF = "pdf"
    UNKNOWN = "unknown"


class EnrichmentKind(Enum):
    """Closed set of analysis kinds attached to media."""

    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    PDF = "pdf"
    LINK = "link"
    UNKNOWN = "unknown"
    TRANSCRIPTION = "transcription"
    PDF_SUMMARY = "pdf_summary"
    VIDEO_METADATA = "video_metadata"
    LINK_CONTEXT = "link_context"
    IMAGE_ANALYSIS = "image_analysis"


class ReactionKind(Enum):
    """Tapback reaction types."""

    LOVED = "loved"
    LIKED = "liked"
    DISLIKED = "disliked"
    LAUGHED = "laughed"
    EMPHASIZED = "emphasized"
    QUESTIONED = "questioned"
    EMOJI = "emoji"


class ReactionAction(Enum):
    """Whether a reaction was added or removed."""

    ADDED = "added"
    REMOVED = "removed"


@dataclass(slots=True, frozen=True)
class Enrichment:
    """One analysis result attached to a media payload."""

    kind: EnrichmentKind
    created_at: str
    provider: str
    version: str
    model: str | None = None
    details: dict[str, object] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class MediaPayload:
    """The single attachment carried by a media record."""

    id: str
    filename: str
    path: str
    mime_type: str | None = None
    media_kind: MediaKind | None = None
    enrichments: tuple[Enrichment, ...] = ()
    extras: dict[str, object] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ReplyLink:
    """Association from a reply to the record it answers."""

    target_id: str | None = None
    snippet_text: str | None = None
    sender: str | None = None
    target_timestamp: str | None = None


@dataclass(slots=True, frozen=True)
class Reaction:
    """Tapback payload."""

    kind: ReactionKind
    action: ReactionAction
    target_id: str | None = None
    target_part: int | None = None
    target_text: str | None = None
    is_media: bool | None = None
    emoji: str | None = None


@dataclass(slots=True, frozen=True)
class TextRecord:
    """Plain text message."""

    id: str
    timestamp: str
    is_from_me: bool
    body: str
    sender: str | None = None
    group_id: str | None = None
    reply: ReplyLink | None = None
    extras: dict[str, object] = field(default_factory=dict)

    @property
    def kind(self) -> RecordKind:
        return RecordKind.TEXT


@dataclass(slots=True, frozen=True)
class MediaRecord:
    """Message carrying exactly one attachment and an optional caption."""

    id: str
    timestamp: str
    is_from_me: bool
    media: MediaPayload
    body: str | None = None
    sender: str | None = None
    group_id: str | None = None
    reply: ReplyLink | None = None
    extras: dict[str, object] = field(default_factory=dict)

    @property
    def kind(self) -> RecordKind:
        return RecordKind.MEDIA


@dataclass(slots=True, frozen=True)
class ReactionRecord:
    """Lightweight reaction targeting another record."""

    id: str
    timestamp: str
    is_from_me: bool
    reaction: Reaction
    sender: str | None = None
    group_id: str | None = None
    extras: dict[str, object] = field(default_factory=dict)

    @property
    def kind(self) -> RecordKind:
        return RecordKind.TAPBACK


@dataclass(slots=True, frozen=True)
class NotificationRecord:
    """System notification (group rename, member change, ...)."""

    id: str
    timestamp: str
    is_from_me: bool
    body: str | None = None
    sender: str | None = None
    group_id: str | None = None
    extras: dict[str, object] = field(default_factory=dict)

    @property
    def kind(self) -> RecordKind:
        return RecordKind.NOTIFICATION


Record: TypeAlias = TextRecord | MediaRecord | ReactionRecord | NotificationRecord
ReplyCapable: TypeAlias = TextRecord | MediaRecord


def record_body(record: Record) -> str | None:
    """Return the free-text body of a record, if it has one."""
    if isinstance(record, ReactionRecord):
        return None
    return record.body
