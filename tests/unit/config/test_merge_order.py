from __future__ import annotations

from pathlib import Path

from message_ledger.config import CliOverrides, load_effective_config


def test_merge_order_defaults_then_workspace_then_cli(tmp_path: Path) -> None:
    (tmp_path / "message_ledger.toml").write_text(
        "\n".join(
            [
                "[enrichment]",
                "checkpoint_interval = 42",
                "",
                "[paths]",
                'data_dir = "ledger-data"',
                "",
                "[linking]",
                "proximity_score = 25",
                "search_window_minutes = 10",
            ]
        ),
        encoding="utf-8",
    )

    config = load_effective_config(tmp_path, CliOverrides(checkpoint_interval=7))

    assert config.enrichment.checkpoint_interval == 7
    assert config.paths.data_dir == (tmp_path / "ledger-data").resolve()
    assert config.paths.checkpoint_dir == (tmp_path / "ledger-data" / "checkpoints").resolve()
    assert config.paths.events_log == config.paths.data_dir / "events.jsonl"
    assert config.linking.proximity_score == 25.0
    assert config.linking.search_window_minutes == 10
    assert config.linking.snippet_prefix_score == 100.0


def test_defaults_without_workspace_file(tmp_path: Path) -> None:
    config = load_effective_config(tmp_path)
    root = tmp_path.resolve()

    assert config.workspace_root == root
    assert config.paths.state_file == root / ".message-ledger-state.json"
    assert config.paths.enriched_file == root / "records.enriched.json"
    assert config.paths.checkpoint_dir == root / ".message_ledger" / "checkpoints"
    assert config.enrichment.checkpoint_interval == 100
    snapshot = config.to_public_dict()
    assert snapshot["linking"]["reply_window_seconds"] == 30
    assert snapshot["paths"]["data_dir"] == str(root / ".message_ledger")


def test_data_dir_override_has_highest_precedence(tmp_path: Path) -> None:
    (tmp_path / "message_ledger.toml").write_text(
        '[paths]\ndata_dir = "from-file"\nstate_file = "state/ledger.json"\n',
        encoding="utf-8",
    )
    custom_data_dir = tmp_path / ".custom_data"

    config = load_effective_config(tmp_path, CliOverrides(data_dir=custom_data_dir))

    assert config.paths.data_dir == custom_data_dir.resolve()
    assert config.paths.checkpoint_dir == (custom_data_dir / "checkpoints").resolve()
    assert config.paths.state_file == (tmp_path / "state" / "ledger.json").resolve()
