from __future__ import annotations

from message_ledger.linking.resolver import link_records
from message_ledger.records.models import TextRecord


def _text(record_id: str, timestamp: str, body: str) -> TextRecord:
    return TextRecord(id=record_id, timestamp=timestamp, is_from_me=False, body=body)


def test_reply_with_malformed_timestamp_is_skipped_not_fatal() -> None:
    parent = _text("DB:parent", "2024-01-01T10:00:00.000Z", "Hello")
    reply = _text("DB:reply", "2024-01-01 10:00:05", 'Replying to: "Hello"')

    result = link_records([parent, reply])

    assert result.records[1] is reply
    assert result.stats.skipped_malformed == 1


def test_candidate_with_malformed_timestamp_is_never_chosen() -> None:
    broken = _text("DB:broken", "2024-01-01T10:00:00+00:00", "Hello")
    reply = _text("DB:reply", "2024-01-01T10:00:05.000Z", 'Replying to: "Hello"')

    result = link_records([broken, reply])

    assert result.records[1] is reply
    assert result.stats.skipped_malformed == 1
    assert result.stats.unresolved == 1
