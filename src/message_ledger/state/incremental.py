"""Persisted enrichment progress and delta detection across runs."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path

from message_ledger.logging.events import JsonlEventLogger
from message_ledger.records.models import Record
from message_ledger.records.timestamps import TimestampError, parse_timestamp, utc_now
from message_ledger.state.atomic import atomic_write_json, read_json_object

STATE_SCHEMA_VERSION = "1.0"
FALLBACK_MISSING = "missing"
FALLBACK_CORRUPT = "corrupt"
FALLBACK_VERSION_MISMATCH = "version_mismatch"
DEFAULT_OUTDATED_DAYS = 7


@dataclass(slots=True, frozen=True)
class ConfigHashMismatchError(Exception):
    """Raised when resuming with a configuration other than the one on record."""

    stored_hash: str
    current_hash: str

    def __str__(self) -> str:
        return (
            f"Enrichment configuration changed since the last run "
            f"(stored {self.stored_hash[:12]}, current {self.current_hash[:12]}). "
            "Re-run with force to accept the new configuration."
        )


@dataclass(slots=True, frozen=True)
class RunStats:
    """Statistics of one completed enrichment run."""

    processed_count: int
    failed_count: int
    start_time: str
    end_time: str

    def to_dict(self) -> dict[str, object]:
        return {
            "processed_count": self.processed_count,
            "failed_count": self.failed_count,
            "start_time": self.start_time,
            "end_time": self.end_time,
        }


@dataclass(slots=True)
class IncrementalState:
    """Long-lived record of which identifiers have been enriched."""

    last_run_at: str
    total_records: int
    enriched_ids: list[str] = field(default_factory=list)
    config_hash: str = ""
    last_run_stats: RunStats | None = None
    schema_version: str = STATE_SCHEMA_VERSION

    def to_dict(self) -> dict[str, object]:
        """Return the persisted JSON shape."""
        stats = self.last_run_stats
        return {
            "version": self.schema_version,
            "last_run_at": self.last_run_at,
            "total_records": self.total_records,
            "enriched_ids": list(self.enriched_ids),
            "pipeline_config": {"config_hash": self.config_hash},
            "last_run_stats": None if stats is None else stats.to_dict(),
        }


@dataclass(slots=True, frozen=True)
class DeltaResult:
    """Identifiers still needing enrichment plus the state they came from."""

    new_ids: list[str]
    total: int
    previously_enriched: int
    is_first_run: bool
    state: IncrementalState
    fallback_reason: str | None = None

    @property
    def new_count(self) -> int:
        return len(self.new_ids)


def new_state(total_records: int = 0, config_hash: str = "") -> IncrementalState:
    """Create empty state stamped with the current time."""
    return IncrementalState(
        last_run_at=utc_now(),
        total_records=total_records,
        config_hash=config_hash,
    )


def reset_state(total_records: int = 0, config_hash: str = "") -> IncrementalState:
    """Discard enrichment history so every record is treated as new."""
    return new_state(total_records=total_records, config_hash=config_hash)


def state_from_dict(payload: dict[str, object]) -> IncrementalState:
    """Decode a persisted state object, raising ValueError on an invalid shape."""
    version = payload.get("version")
    if version != STATE_SCHEMA_VERSION:
        raise ValueError(f"Unsupported state version: {version!r}")
    last_run_at = payload.get("last_run_at")
    total_records = payload.get("total_records")
    enriched_ids = payload.get("enriched_ids")
    pipeline_config = payload.get("pipeline_config", {})
    if not isinstance(last_run_at, str):
        raise ValueError("State field 'last_run_at' must be a string.")
    if isinstance(total_records, bool) or not isinstance(total_records, int):
        raise ValueError("State field 'total_records' must be an integer.")
    if not isinstance(enriched_ids, list) or not all(isinstance(i, str) for i in enriched_ids):
        raise ValueError("State field 'enriched_ids' must be a list of strings.")
    if not isinstance(pipeline_config, dict):
        raise ValueError("State field 'pipeline_config' must be an object.")
    config_hash = pipeline_config.get("config_hash", "")
    if not isinstance(config_hash, str):
        raise ValueError("State field 'pipeline_config.config_hash' must be a string.")
    return IncrementalState(
        last_run_at=last_run_at,
        total_records=total_records,
        enriched_ids=list(enriched_ids),
        config_hash=config_hash,
        last_run_stats=_run_stats_from_dict(payload.get("last_run_stats")),
    )


def read_state(path: Path) -> tuple[IncrementalState | None, str | None]:
    """Load state and, when it cannot be used, the reason it was ignored."""
    if not path.exists():
        return None, FALLBACK_MISSING
    payload = read_json_object(path)
    if payload is None:
        return None, FALLBACK_CORRUPT
    if payload.get("version") != STATE_SCHEMA_VERSION:
        return None, FALLBACK_VERSION_MISMATCH
    try:
        return state_from_dict(payload), None
    except ValueError:
        return None, FALLBACK_CORRUPT


def load_state(path: Path) -> IncrementalState | None:
    """Load state, treating missing, corrupt and unknown-version files as absent."""
    state, _ = read_state(path)
    return state


def save_state(state: IncrementalState, path: Path) -> None:
    """Persist state with the atomic write primitive."""
    atomic_write_json(path, state.to_dict())


def detect_delta(
    records: Sequence[Record],
    state_path: Path,
    event_logger: JsonlEventLogger | None = None,
) -> DeltaResult:
    """Return identifiers of records not yet enriched, in input order."""
    previous, reason = read_state(state_path)
    current_ids = _unique_ids(record.id for record in records)
    if previous is None:
        state = new_state(total_records=len(records))
        result = DeltaResult(
            new_ids=current_ids,
            total=len(records),
            previously_enriched=0,
            is_first_run=True,
            state=state,
            fallback_reason=reason,
        )
    else:
        enriched = set(previous.enriched_ids)
        result = DeltaResult(
            new_ids=[record_id for record_id in current_ids if record_id not in enriched],
            total=len(records),
            previously_enriched=sum(1 for record_id in current_ids if record_id in enriched),
            is_first_run=False,
            state=previous,
        )
    if event_logger is not None:
        _log_delta(event_logger, result)
    return result


def delta_stats(result: DeltaResult) -> dict[str, object]:
    """Return counts and percentages for progress reporting."""
    total = result.total
    return {
        "total": total,
        "new": result.new_count,
        "previous": result.previously_enriched,
        "percent_new": (result.new_count / total) * 100 if total else 0.0,
        "percent_previous": (result.previously_enriched / total) * 100 if total else 0.0,
    }


def update_state(
    state: IncrementalState,
    enriched_ids: Iterable[str],
    stats: RunStats | None = None,
    total_records: int | None = None,
) -> IncrementalState:
    """Append newly enriched identifiers, de-duplicated, and restamp the run."""
    known = set(state.enriched_ids)
    for record_id in enriched_ids:
        if record_id not in known:
            state.enriched_ids.append(record_id)
            known.add(record_id)
    state.last_run_at = utc_now()
    if stats is not None:
        state.last_run_stats = stats
    if total_records is not None:
        state.total_records = total_records
    return state


def verify_config_hash(state: IncrementalState, current_hash: str, force: bool = False) -> None:
    """Refuse to continue when the stored configuration hash differs.

    An empty stored hash means no run has completed yet and is accepted.
    """
    if force or not state.config_hash or state.config_hash == current_hash:
        return
    raise ConfigHashMismatchError(stored_hash=state.config_hash, current_hash=current_hash)


def is_state_outdated(
    state: IncrementalState,
    days: int = DEFAULT_OUTDATED_DAYS,
    now: datetime | None = None,
) -> bool:
    """Return True when the last run is older than `days`, or undatable."""
    try:
        last_run = parse_timestamp(state.last_run_at)
    except TimestampError:
        return True
    reference = now or datetime.now(tz=UTC)
    return reference - last_run > timedelta(days=days)


def _unique_ids(ids: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    output: list[str] = []
    for record_id in ids:
        if record_id in seen:
            continue
        seen.add(record_id)
        output.append(record_id)
    return output


def _run_stats_from_dict(payload: object) -> RunStats | None:
    if payload is None:
        return None
    if not isinstance(payload, dict):
        raise ValueError("State field 'last_run_stats' must be an object or null.")
    processed = payload.get("processed_count")
    failed = payload.get("failed_count")
    start_time = payload.get("start_time")
    end_time = payload.get("end_time")
    if not isinstance(processed, int) or not isinstance(failed, int):
        raise ValueError("Run stats counts must be integers.")
    if not isinstance(start_time, str) or not isinstance(end_time, str):
        raise ValueError("Run stats times must be strings.")
    return RunStats(
        processed_count=processed,
        failed_count=failed,
        start_time=start_time,
        end_time=end_time,
    )


def _log_delta(event_logger: JsonlEventLogger, result: DeltaResult) -> None:
    if result.fallback_reason is not None and result.fallback_reason != FALLBACK_MISSING:
        event_logger.emit(
            "incremental_state",
            "state_ignored",
            {"reason": result.fallback_reason},
            level="warning",
        )
    if result.is_first_run:
        event_logger.emit("incremental_state", "first_run", {"total_records": result.total})
        return
    stats = delta_stats(result)
    event_logger.emit(
        "incremental_state",
        "delta_detected",
        {
            "new_records": stats["new"],
            "percent_new": stats["percent_new"],
            "total_records": stats["total"],
            "previously_enriched": stats["previous"],
        },
    )
