"""Command line entrypoint for message-ledger."""

from __future__ import annotations

import argparse
import json
import os
import sys
from collections.abc import Callable
from pathlib import Path
from typing import TextIO

from message_ledger.config import (
    CliOverrides,
    LedgerConfig,
    ProviderCredentials,
    compute_config_hash,
    load_effective_config,
)
from message_ledger.logging.events import JsonlEventLogger
from message_ledger.merge.dedup import DataLossError
from message_ledger.merge.enrichment import write_merged_enriched_file
from message_ledger.pipeline import normalize_and_link
from message_ledger.records.codec import RecordFormatError, dump_envelope, load_records_file
from message_ledger.state.atomic import atomic_write_json
from message_ledger.state.checkpoint import (
    CheckpointConfigMismatchError,
    CheckpointManager,
    initialize_checkpoint_state,
)
from message_ledger.state.incremental import (
    ConfigHashMismatchError,
    delta_stats,
    detect_delta,
    reset_state,
    save_state,
)

CommandHandler = Callable[[argparse.Namespace, LedgerConfig, JsonlEventLogger], dict[str, object]]


def build_arg_parser() -> argparse.ArgumentParser:
    """Build argument parser for all subcommands."""
    parser = argparse.ArgumentParser(prog="message-ledger")
    parser.add_argument("--workspace-root", required=False, default=".")
    parser.add_argument("--data-dir", required=False, default=None)
    parser.add_argument("--state-file", required=False, default=None)
    parser.add_argument("--checkpoint-dir", required=False, default=None)
    parser.add_argument("--enriched-file", required=False, default=None)
    parser.add_argument("--checkpoint-interval", type=int, required=False, default=None)
    subparsers = parser.add_subparsers(dest="command", required=True)

    normalize = subparsers.add_parser("normalize-link", help="dedup two sources and link replies")
    normalize.add_argument("--flat", required=True)
    normalize.add_argument("--rich", required=True)
    normalize.add_argument("--output", required=True)

    delta = subparsers.add_parser("delta", help="report records not yet enriched")
    delta.add_argument("--input", required=True)
    delta.add_argument("--list-ids", action="store_true")

    merge = subparsers.add_parser("merge-enriched", help="fold enriched records into the result")
    merge.add_argument("--input", required=True)
    merge.add_argument("--force-refresh", action="store_true")

    status = subparsers.add_parser("checkpoint-status", help="inspect the current checkpoint")
    status.add_argument("--config-hash", required=False, default=None)

    reset = subparsers.add_parser("reset-state", help="discard incremental enrichment history")
    reset.add_argument("--total-records", type=int, required=False, default=0)
    return parser


def success_envelope(
    command: str, result: dict[str, object], warnings: list[str] | None = None
) -> dict[str, object]:
    """Build success envelope."""
    return {"command": command, "ok": True, "result": result, "warnings": warnings or []}


def error_envelope(command: str, code: str, message: str) -> dict[str, object]:
    """Build explicit error envelope."""
    return {
        "command": command,
        "ok": False,
        "result": {},
        "warnings": [],
        "error": {"code": code, "message": message},
    }


def _overrides_from_args(args: argparse.Namespace) -> CliOverrides:
    def optional_path(value: str | None) -> Path | None:
        return Path(value).resolve() if value is not None else None

    return CliOverrides(
        data_dir=optional_path(args.data_dir),
        state_file=optional_path(args.state_file),
        checkpoint_dir=optional_path(args.checkpoint_dir),
        enriched_file=optional_path(args.enriched_file),
        checkpoint_interval=args.checkpoint_interval,
    )


def _normalize_link(
    args: argparse.Namespace, config: LedgerConfig, event_logger: JsonlEventLogger
) -> dict[str, object]:
    flat = load_records_file(Path(args.flat))
    rich = load_records_file(Path(args.rich))
    result = normalize_and_link(flat, rich, policy=config.linking, event_logger=event_logger)
    output = Path(args.output).resolve()
    atomic_write_json(output, dump_envelope(result.records, source="merged"))
    return {"output": str(output), **result.summary()}


def _delta(
    args: argparse.Namespace, config: LedgerConfig, event_logger: JsonlEventLogger
) -> dict[str, object]:
    records = load_records_file(Path(args.input))
    result = detect_delta(records, config.paths.state_file, event_logger=event_logger)
    payload: dict[str, object] = {
        "state_file": str(config.paths.state_file),
        "is_first_run": result.is_first_run,
        "fallback_reason": result.fallback_reason,
        **delta_stats(result),
    }
    if args.list_ids:
        payload["new_ids"] = list(result.new_ids)
    return payload


def _merge_enriched(
    args: argparse.Namespace, config: LedgerConfig, event_logger: JsonlEventLogger
) -> dict[str, object]:
    records = load_records_file(Path(args.input))
    result = write_merged_enriched_file(
        config.paths.enriched_file,
        records,
        force_refresh=args.force_refresh,
        event_logger=event_logger,
    )
    return {"enriched_file": str(config.paths.enriched_file), **result.stats_dict()}


def _checkpoint_status(
    args: argparse.Namespace, config: LedgerConfig, event_logger: JsonlEventLogger
) -> dict[str, object]:
    current_hash = compute_config_hash(ProviderCredentials.from_environment(os.environ))
    inspected_hash = args.config_hash or current_hash
    manager = CheckpointManager(
        config.paths.checkpoint_dir,
        inspected_hash,
        interval=config.enrichment.checkpoint_interval,
    )
    status = manager.status()
    checkpoint = manager.load()
    if checkpoint is not None:
        initialize_checkpoint_state(checkpoint, current_hash)
    return {"config_hash": current_hash, **status}


def _reset_state(
    args: argparse.Namespace, config: LedgerConfig, event_logger: JsonlEventLogger
) -> dict[str, object]:
    if args.total_records < 0:
        raise ValueError("Option '--total-records' must be >= 0.")
    state = reset_state(total_records=args.total_records)
    save_state(state, config.paths.state_file)
    event_logger.emit(
        "incremental_state",
        "state_reset",
        {"path": str(config.paths.state_file), "total_records": args.total_records},
    )
    return {"state_file": str(config.paths.state_file), "state": state.to_dict()}


COMMANDS: dict[str, CommandHandler] = {
    "normalize-link": _normalize_link,
    "delta": _delta,
    "merge-enriched": _merge_enriched,
    "checkpoint-status": _checkpoint_status,
    "reset-state": _reset_state,
}


def run_command(args: argparse.Namespace) -> dict[str, object]:
    """Execute one parsed command and return its envelope."""
    command = args.command
    try:
        config = load_effective_config(Path(args.workspace_root), _overrides_from_args(args))
    except ValueError as error:
        return error_envelope(command, "INVALID_CONFIG", str(error))
    event_logger = JsonlEventLogger(config.paths.events_log)
    handler = COMMANDS[command]
    try:
        return success_envelope(command, handler(args, config, event_logger))
    except FileNotFoundError as error:
        return error_envelope(command, "INPUT_NOT_FOUND", f"Input file not found: {error.filename}")
    except (RecordFormatError, json.JSONDecodeError) as error:
        return error_envelope(command, "RECORD_FORMAT", str(error))
    except DataLossError as error:
        return error_envelope(command, "DATA_LOSS", str(error))
    except ConfigHashMismatchError as error:
        return error_envelope(command, "CONFIG_HASH_MISMATCH", str(error))
    except CheckpointConfigMismatchError as error:
        return error_envelope(command, "CHECKPOINT_CONFIG_MISMATCH", str(error))
    except ValueError as error:
        return error_envelope(command, "INVALID_CONFIG", str(error))


def main(argv: list[str] | None = None, out_stream: TextIO | None = None) -> int:
    """Entrypoint for the message-ledger command line."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    envelope = run_command(args)
    stream = out_stream or sys.stdout
    stream.write(json.dumps(envelope, sort_keys=True))
    stream.write("\n")
    stream.flush()
    return 0 if envelope["ok"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
