from __future__ import annotations

import json
from pathlib import Path

import pytest

from message_ledger.logging.events import JsonlEventLogger
from message_ledger.records.timestamps import format_timestamp, parse_timestamp


def test_event_entries_have_stable_schema(tmp_path: Path) -> None:
    logger = JsonlEventLogger(tmp_path / "logs" / "events.jsonl")

    event = logger.emit("checkpoint", "checkpoint_written", {"last_index": 99})

    line = (tmp_path / "logs" / "events.jsonl").read_text(encoding="utf-8").strip()
    entry = json.loads(line)
    assert set(entry.keys()) == {"timestamp", "sequence", "level", "component", "event", "context"}
    assert format_timestamp(parse_timestamp(entry["timestamp"])) == entry["timestamp"]
    assert entry["sequence"] == event.sequence == 1
    assert entry["level"] == "info"
    assert entry["context"] == {"last_index": 99}


def test_sequence_continues_across_logger_instances(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    JsonlEventLogger(path).emit("a", "first")
    JsonlEventLogger(path).emit("a", "second")

    sequences = [entry["sequence"] for entry in JsonlEventLogger(path).read()]
    assert sequences == [1, 2]


def test_unknown_level_is_rejected(tmp_path: Path) -> None:
    logger = JsonlEventLogger(tmp_path / "events.jsonl")

    with pytest.raises(ValueError, match="Unknown log level"):
        logger.emit("a", "b", level="fatal")


def test_read_applies_since_and_limit(tmp_path: Path) -> None:
    path = tmp_path / "events.jsonl"
    path.write_text(
        "\n".join(
            [
                json.dumps({"timestamp": "2024-01-01T00:00:00.000Z", "event": "old"}),
                "not json",
                json.dumps({"timestamp": "2024-02-01T00:00:00.000Z", "event": "mid"}),
                json.dumps({"timestamp": "2024-03-01T00:00:00.000Z", "event": "new"}),
            ]
        )
        + "\n",
        encoding="utf-8",
    )
    logger = JsonlEventLogger(path)

    assert [entry["event"] for entry in logger.read(since="2024-01-15T00:00:00.000Z")] == [
        "mid",
        "new",
    ]
    assert [entry["event"] for entry in logger.read(limit=1)] == ["new"]
    assert logger.read(limit=0) == []
