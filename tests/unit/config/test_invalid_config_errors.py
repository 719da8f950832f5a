from __future__ import annotations

from pathlib import Path

import pytest

from message_ledger.config import CliOverrides, load_effective_config


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("paths = 3\n", "Config section 'paths' must be a table."),
        ("[enrichment]\ncheckpoint_interval = 0\n", "'enrichment.checkpoint_interval'"),
        ("[enrichment]\ncheckpoint_interval = 100001\n", "must be <= 100000"),
        ("[linking]\nsearch_window_minutes = 61\n", "must be <= 60"),
        ("[linking]\nreply_window_seconds = true\n", "'linking.reply_window_seconds'"),
        ("[linking]\nsame_sender_score = -1\n", "'linking.same_sender_score'"),
        ("[linking]\ndistance_penalty_divisor = 0\n", "must be > 0"),
        ("[linking]\nfuzzy_threshold = 0.8\n", "'linking.fuzzy_threshold' is not recognized"),
        ('[paths]\nstate_file = "  "\n', "'paths.state_file'"),
    ],
)
def test_invalid_workspace_config_names_the_field(
    tmp_path: Path, content: str, message: str
) -> None:
    (tmp_path / "message_ledger.toml").write_text(content, encoding="utf-8")

    with pytest.raises(ValueError) as info:
        load_effective_config(tmp_path)

    assert message in str(info.value)


def test_invalid_override_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="overrides.checkpoint_interval"):
        load_effective_config(tmp_path, CliOverrides(checkpoint_interval=-5))
