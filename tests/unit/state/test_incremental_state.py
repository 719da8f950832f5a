from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import pytest

from message_ledger.logging.events import JsonlEventLogger
from message_ledger.records.models import TextRecord
from message_ledger.state.incremental import (
    FALLBACK_CORRUPT,
    FALLBACK_MISSING,
    FALLBACK_VERSION_MISMATCH,
    ConfigHashMismatchError,
    IncrementalState,
    RunStats,
    delta_stats,
    detect_delta,
    is_state_outdated,
    load_state,
    new_state,
    save_state,
    update_state,
    verify_config_hash,
)


def _records(*ids: str) -> list[TextRecord]:
    return [
        TextRecord(id=record_id, timestamp="2024-01-01T10:00:00.000Z", is_from_me=False, body="x")
        for record_id in ids
    ]


def test_missing_state_is_first_run(tmp_path: Path) -> None:
    result = detect_delta(_records("a", "b", "a"), tmp_path / "state.json")

    assert result.is_first_run is True
    assert result.new_ids == ["a", "b"]
    assert result.total == 3
    assert result.fallback_reason == FALLBACK_MISSING


def test_unknown_state_version_is_treated_as_first_run(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text(
        json.dumps(
            {
                "version": "2.0",
                "last_run_at": "2024-01-01T00:00:00.000Z",
                "total_records": 1,
                "enriched_ids": ["a"],
            }
        ),
        encoding="utf-8",
    )

    result = detect_delta(_records("a"), path)

    assert result.is_first_run is True
    assert result.new_ids == ["a"]
    assert result.fallback_reason == FALLBACK_VERSION_MISMATCH


def test_corrupt_state_is_logged_and_ignored(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text("{broken", encoding="utf-8")
    logger = JsonlEventLogger(tmp_path / "events.jsonl")

    result = detect_delta(_records("a"), path, event_logger=logger)

    assert result.fallback_reason == FALLBACK_CORRUPT
    events = logger.read()
    assert [entry["event"] for entry in events] == ["state_ignored", "first_run"]
    assert events[0]["level"] == "warning"
    assert events[0]["context"] == {"reason": "corrupt"}


def test_delta_excludes_previously_enriched_ids(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    state = new_state(total_records=2)
    update_state(state, ["a", "b"])
    save_state(state, path)

    result = detect_delta(_records("a", "b", "c"), path)

    assert result.is_first_run is False
    assert result.new_ids == ["c"]
    assert result.previously_enriched == 2
    assert delta_stats(result)["new"] == 1
    assert delta_stats(result)["percent_previous"] == pytest.approx(200 / 3)


def test_stale_enriched_ids_do_not_count_as_previous(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    state = new_state(total_records=3)
    update_state(state, ["a", "b", "gone"])
    save_state(state, path)

    result = detect_delta(_records("a", "b"), path)

    assert result.new_ids == []
    assert result.previously_enriched == 2
    assert delta_stats(result)["percent_previous"] == pytest.approx(100.0)
    assert "gone" in result.state.enriched_ids


def test_delta_is_empty_after_state_update(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    records = _records("a", "b", "c")
    first = detect_delta(records, path)
    save_state(update_state(first.state, first.new_ids), path)

    second = detect_delta(records, path)

    assert second.new_ids == []
    assert second.previously_enriched == 3


def test_state_only_grows(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    state = new_state()
    update_state(state, ["a", "b", "a"])
    save_state(state, path)

    result = detect_delta(_records("c"), path)
    save_state(update_state(result.state, result.new_ids), path)

    reloaded = load_state(path)
    assert reloaded is not None
    assert reloaded.enriched_ids == ["a", "b", "c"]


def test_state_round_trips_with_run_stats(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    stats = RunStats(
        processed_count=3,
        failed_count=1,
        start_time="2024-01-01T00:00:00.000Z",
        end_time="2024-01-01T00:01:00.000Z",
    )
    state = update_state(new_state(config_hash="f" * 64), ["x"], stats=stats, total_records=4)
    save_state(state, path)

    payload = json.loads(path.read_text(encoding="utf-8"))
    reloaded = load_state(path)

    assert payload["pipeline_config"] == {"config_hash": "f" * 64}
    assert payload["version"] == "1.0"
    assert reloaded == state


def test_config_hash_mismatch_requires_force() -> None:
    state = IncrementalState(
        last_run_at="2024-01-01T00:00:00.000Z", total_records=0, config_hash="1" * 64
    )

    verify_config_hash(state, "1" * 64)
    verify_config_hash(state, "2" * 64, force=True)
    with pytest.raises(ConfigHashMismatchError, match="force"):
        verify_config_hash(state, "2" * 64)


def test_empty_stored_hash_is_accepted() -> None:
    verify_config_hash(new_state(), "9" * 64)


def test_outdated_state_detection() -> None:
    now = datetime(2024, 1, 10, tzinfo=UTC)
    recent = IncrementalState(last_run_at="2024-01-05T00:00:00.000Z", total_records=0)
    stale = IncrementalState(last_run_at="2024-01-01T00:00:00.000Z", total_records=0)
    undatable = IncrementalState(last_run_at="last week", total_records=0)

    assert is_state_outdated(recent, now=now) is False
    assert is_state_outdated(stale, now=now) is True
    assert is_state_outdated(undatable, now=now) is True
