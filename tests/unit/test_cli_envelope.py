from __future__ import annotations

from message_ledger.cli import build_arg_parser, error_envelope, success_envelope


def test_success_envelope_defaults_to_empty_warnings() -> None:
    envelope = success_envelope("delta", {"new_count": 2})

    assert envelope == {
        "command": "delta",
        "ok": True,
        "result": {"new_count": 2},
        "warnings": [],
    }


def test_error_envelope_carries_code_and_message() -> None:
    envelope = error_envelope("merge-enriched", "DATA_LOSS", "2 records lost")

    assert envelope["ok"] is False
    assert envelope["result"] == {}
    assert envelope["error"] == {"code": "DATA_LOSS", "message": "2 records lost"}


def test_parser_accepts_global_overrides_before_subcommand() -> None:
    args = build_arg_parser().parse_args(
        ["--checkpoint-interval", "25", "delta", "--input", "records.json", "--list-ids"]
    )

    assert args.command == "delta"
    assert args.checkpoint_interval == 25
    assert args.list_ids is True
