from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from message_ledger.cli import main
from message_ledger.config import ProviderCredentials, compute_config_hash
from message_ledger.state.checkpoint import CheckpointManager, CheckpointStats


def _run(argv: list[str]) -> tuple[int, dict[str, object]]:
    stream = io.StringIO()
    code = main(argv, out_stream=stream)
    return code, json.loads(stream.getvalue())


def _media(record_id: str, kinds: list[str]) -> dict[str, object]:
    return {
        "id": record_id,
        "timestamp": "2024-01-01T10:00:00.000Z",
        "is_from_me": False,
        "kind": "media",
        "media": {
            "id": f"att-{record_id}",
            "filename": "IMG.jpg",
            "path": "/exports/IMG.jpg",
            "enrichment": [
                {
                    "kind": kind,
                    "created_at": "2024-02-01T00:00:00.000Z",
                    "provider": "gemini",
                    "version": "1",
                }
                for kind in kinds
            ],
        },
    }


def _write(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _no_provider_keys(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("FIRECRAWL_API_KEY", raising=False)


def test_delta_reports_first_run_then_respects_reset_state(tmp_path: Path) -> None:
    records = _write(tmp_path / "records.json", [_media("DB:1", []), _media("DB:2", [])])
    root = ["--workspace-root", str(tmp_path)]

    code, first = _run([*root, "delta", "--input", str(records), "--list-ids"])
    assert code == 0
    assert first["result"]["is_first_run"] is True
    assert first["result"]["fallback_reason"] == "missing"
    assert first["result"]["new_ids"] == ["DB:1", "DB:2"]

    code, reset = _run([*root, "reset-state", "--total-records", "2"])
    assert code == 0
    assert reset["result"]["state"]["enriched_ids"] == []
    assert (tmp_path / ".message-ledger-state.json").exists()

    code, second = _run([*root, "delta", "--input", str(records)])
    assert second["result"]["is_first_run"] is False
    assert second["result"]["new"] == 2
    assert "new_ids" not in second["result"]


def test_reset_state_rejects_negative_totals(tmp_path: Path) -> None:
    code, envelope = _run(
        ["--workspace-root", str(tmp_path), "reset-state", "--total-records", "-1"]
    )

    assert code == 1
    assert envelope["error"]["code"] == "INVALID_CONFIG"


def test_merge_enriched_preserves_kinds_and_writes_backup(tmp_path: Path) -> None:
    root = ["--workspace-root", str(tmp_path)]
    first = _write(tmp_path / "first.json", [_media("DB:1", ["image_analysis"])])
    second = _write(
        tmp_path / "second.json",
        [_media("DB:1", ["image_analysis", "transcription"]), _media("DB:2", [])],
    )

    assert _run([*root, "merge-enriched", "--input", str(first)])[0] == 0
    code, envelope = _run([*root, "merge-enriched", "--input", str(second)])

    assert code == 0
    assert envelope["result"]["merged_count"] == 1
    assert envelope["result"]["added_count"] == 1
    assert envelope["result"]["preserved_count"] == 1
    enriched = tmp_path / "records.enriched.json"
    assert (tmp_path / "records.enriched.json.backup").exists()
    merged = json.loads(enriched.read_text("utf-8"))["records"][0]
    assert [item["kind"] for item in merged["media"]["enrichment"]] == [
        "image_analysis",
        "transcription",
    ]


def test_checkpoint_status_reports_resume_index(tmp_path: Path) -> None:
    current = compute_config_hash(ProviderCredentials())
    checkpoint_dir = tmp_path / ".message_ledger" / "checkpoints"
    root = ["--workspace-root", str(tmp_path)]

    code, empty = _run([*root, "checkpoint-status"])
    assert code == 0
    assert empty["result"]["exists"] is False

    CheckpointManager(checkpoint_dir, current).write(41, CheckpointStats(processed_count=42), [])
    code, status = _run([*root, "checkpoint-status"])

    assert code == 0
    assert status["result"]["config_hash"] == current
    assert status["result"]["valid"] is True
    assert status["result"]["resume_index"] == 42


def test_checkpoint_status_refuses_foreign_configuration(tmp_path: Path) -> None:
    foreign = compute_config_hash(ProviderCredentials(has_gemini_key=True))
    checkpoint_dir = tmp_path / ".message_ledger" / "checkpoints"
    CheckpointManager(checkpoint_dir, foreign).write(3, CheckpointStats(processed_count=4), [])

    code, envelope = _run(
        ["--workspace-root", str(tmp_path), "checkpoint-status", "--config-hash", foreign]
    )

    assert code == 1
    assert envelope["error"]["code"] == "CHECKPOINT_CONFIG_MISMATCH"
    assert foreign[:8] in envelope["error"]["message"]
