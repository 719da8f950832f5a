from __future__ import annotations

import pytest

from message_ledger.merge.dedup import (
    DataLossError,
    dedup_merge,
    merge_records,
    verify_no_data_loss,
)
from message_ledger.records.models import (
    Enrichment,
    EnrichmentKind,
    MediaPayload,
    MediaRecord,
    NotificationRecord,
    ReplyLink,
    TextRecord,
)


def test_shared_identifier_merges_with_authoritative_fields_winning() -> None:
    flat = TextRecord(
        id="shared-1",
        timestamp="2024-01-01T10:00:00.000Z",
        is_from_me=False,
        body="Hi",
        group_id="chat-1",
        reply=ReplyLink(snippet_text="earlier"),
        extras={"service": "SMS", "row": 4},
    )
    rich = TextRecord(
        id="shared-1",
        timestamp="2024-01-01T10:00:00.250Z",
        is_from_me=False,
        body="Hi there",
        sender="+15550001",
        reply=ReplyLink(target_id="DB:parent"),
        extras={"service": "iMessage"},
    )

    outcome = dedup_merge([flat], [rich])

    assert len(outcome.records) == 1
    merged = outcome.records[0]
    assert isinstance(merged, TextRecord)
    assert merged.timestamp == "2024-01-01T10:00:00.250Z"
    assert merged.sender == "+15550001"
    assert merged.body == "Hi there"
    assert merged.group_id == "chat-1"
    assert merged.reply == ReplyLink(target_id="DB:parent", snippet_text="earlier")
    assert merged.extras == {"service": "iMessage", "row": 4}
    assert outcome.stats.exact_matches == 1
    assert outcome.stats.output_count == 1


def test_media_merge_keeps_flat_enrichments_when_authoritative_has_none() -> None:
    enrichment = Enrichment(
        kind=EnrichmentKind.TRANSCRIPTION,
        created_at="2024-01-02T00:00:00.000Z",
        provider="gemini",
        version="1",
    )
    flat = MediaRecord(
        id="DB:voice",
        timestamp="2024-01-01T10:00:00.000Z",
        is_from_me=True,
        media=MediaPayload(
            id="att-1",
            filename="Audio.caf",
            path="/a/Audio.caf",
            mime_type="audio/x-caf",
            enrichments=(enrichment,),
        ),
    )
    rich = MediaRecord(
        id="DB:voice",
        timestamp="2024-01-01T10:00:00.000Z",
        is_from_me=True,
        media=MediaPayload(id="att-1", filename="Audio.caf", path="/b/Audio.caf"),
    )

    merged = merge_records(flat, rich)

    assert isinstance(merged, MediaRecord)
    assert merged.media.path == "/b/Audio.caf"
    assert merged.media.mime_type == "audio/x-caf"
    assert merged.media.enrichments == (enrichment,)


def test_kind_disagreement_takes_authoritative_variant() -> None:
    flat = TextRecord(
        id="csv:3:0", timestamp="2024-01-01T10:00:00.000Z", is_from_me=False, body="x"
    )
    rich = NotificationRecord(
        id="DB:note", timestamp="2024-01-01T10:00:00.000Z", is_from_me=False, body="renamed"
    )

    merged = merge_records(flat, rich)

    assert isinstance(merged, NotificationRecord)
    assert merged.id == "DB:note"


def test_unmatched_records_pass_through_in_timestamp_order() -> None:
    left = [
        TextRecord(id="csv:2:0", timestamp="2024-01-01T10:00:02.000Z", is_from_me=False, body="b"),
    ]
    right = [
        TextRecord(id="DB:1", timestamp="2024-01-01T10:00:01.000Z", is_from_me=False, body="a"),
        TextRecord(id="DB:3", timestamp="2024-01-01T10:00:03.000Z", is_from_me=False, body="c"),
    ]

    outcome = dedup_merge(left, right)

    assert [record.id for record in outcome.records] == ["DB:1", "csv:2:0", "DB:3"]
    assert outcome.stats.unmatched_left == 1
    assert outcome.stats.unmatched_right == 2


def test_verify_no_data_loss_rejects_shrinking_output() -> None:
    verify_no_data_loss(3, 5, 5)
    with pytest.raises(DataLossError, match="Merge emitted 4 records"):
        verify_no_data_loss(3, 5, 4)
