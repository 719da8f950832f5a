from __future__ import annotations

from message_ledger.linking.resolver import detect_ambiguous_links, link_records
from message_ledger.records.models import (
    MediaPayload,
    MediaRecord,
    Reaction,
    ReactionAction,
    ReactionKind,
    ReactionRecord,
)


def _media(record_id: str, timestamp: str) -> MediaRecord:
    return MediaRecord(
        id=record_id,
        timestamp=timestamp,
        is_from_me=False,
        media=MediaPayload(id=f"att-{record_id}", filename="a.png", path="/tmp/a.png"),
    )


def _batch() -> list[object]:
    return [
        _media("DB:b", "2024-01-01T10:00:00.000Z"),
        _media("DB:a", "2024-01-01T10:00:00.000Z"),
        ReactionRecord(
            id="DB:tap",
            timestamp="2024-01-01T10:00:10.000Z",
            is_from_me=True,
            reaction=Reaction(kind=ReactionKind.LIKED, action=ReactionAction.ADDED),
        ),
    ]


def test_tie_is_resolved_deterministically_and_reported() -> None:
    result = link_records(_batch())

    reaction = result.records[2]
    assert isinstance(reaction, ReactionRecord)
    assert reaction.reaction.target_id == "DB:a"
    assert result.stats.ambiguous == 1
    assert len(result.ambiguous_links) == 1
    link = result.ambiguous_links[0]
    assert link.record_id == "DB:tap"
    assert link.chosen_target == "DB:a"
    assert link.tie_count == 2
    assert [candidate.record_id for candidate in link.tied_candidates] == ["DB:a", "DB:b"]


def test_tracking_disabled_still_chooses_the_same_target() -> None:
    tracked = link_records(_batch(), track_ambiguous=True)
    untracked = link_records(_batch(), track_ambiguous=False)

    assert untracked.ambiguous_links == []
    assert untracked.stats.ambiguous == 1
    assert untracked.records == tracked.records


def test_detect_ambiguous_links_report_shape() -> None:
    report = detect_ambiguous_links(_batch())

    assert report["tie_count"] == 1
    entry = report["ambiguous"][0]
    assert entry["record_id"] == "DB:tap"
    assert entry["chosen_target"] == "DB:a"
    assert entry["score"] == 100.0
    assert [candidate["id"] for candidate in entry["tied_candidates"]] == ["DB:a", "DB:b"]
