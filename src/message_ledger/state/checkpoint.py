"""Periodic, atomically written checkpoints for the enrichment loop."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from message_ledger.config import DEFAULT_CHECKPOINT_INTERVAL
from message_ledger.logging.events import JsonlEventLogger
from message_ledger.records.timestamps import utc_now
from message_ledger.state.atomic import atomic_write_json, read_json_object

CHECKPOINT_SCHEMA_VERSION = "1.0"


@dataclass(slots=True, frozen=True)
class CheckpointConfigMismatchError(Exception):
    """Raised when a checkpoint was written under a different configuration."""

    checkpoint_hash: str
    current_hash: str

    def __str__(self) -> str:
        return (
            f"Config mismatch: checkpoint was created with config {self.checkpoint_hash[:8]}, "
            f"but current config is {self.current_hash[:8]}. "
            "Cannot resume with different configuration."
        )


@dataclass(slots=True, frozen=True)
class FailedItem:
    """One record that failed enrichment."""

    index: int
    record_id: str
    kind: str
    error: str

    def to_dict(self) -> dict[str, object]:
        return {
            "index": self.index,
            "id": self.record_id,
            "kind": self.kind,
            "error": self.error,
        }


@dataclass(slots=True, frozen=True)
class CheckpointStats:
    """Processed/failed counters and enrichments produced per kind."""

    processed_count: int = 0
    failed_count: int = 0
    by_kind: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "processed_count": self.processed_count,
            "failed_count": self.failed_count,
            "by_kind": {key: self.by_kind[key] for key in sorted(self.by_kind)},
        }


@dataclass(slots=True, frozen=True)
class Checkpoint:
    """Snapshot of enrichment progress up to and including `last_index`."""

    config_hash: str
    last_index: int
    total_processed: int
    total_failed: int
    stats: CheckpointStats
    failed_items: tuple[FailedItem, ...]
    created_at: str
    schema_version: str = CHECKPOINT_SCHEMA_VERSION

    def to_dict(self) -> dict[str, object]:
        """Return the persisted JSON shape."""
        return {
            "version": self.schema_version,
            "config_hash": self.config_hash,
            "last_index": self.last_index,
            "total_processed": self.total_processed,
            "total_failed": self.total_failed,
            "stats": self.stats.to_dict(),
            "failed_items": [item.to_dict() for item in self.failed_items],
            "created_at": self.created_at,
        }


@dataclass(slots=True, frozen=True)
class CheckpointState:
    """Where the enrichment loop starts and what it carries over."""

    is_resuming: bool
    start_index: int
    config_hash: str
    checkpoint: Checkpoint | None = None

    @property
    def failed_items(self) -> tuple[FailedItem, ...]:
        return () if self.checkpoint is None else self.checkpoint.failed_items


def checkpoint_path(checkpoint_dir: Path, config_hash: str) -> Path:
    """Return the checkpoint file owned by one configuration hash."""
    return checkpoint_dir / f"checkpoint-{config_hash}.json"


def checkpoint_from_dict(payload: dict[str, object]) -> Checkpoint:
    """Decode a persisted checkpoint, raising ValueError on an invalid shape."""
    if payload.get("version") != CHECKPOINT_SCHEMA_VERSION:
        raise ValueError(f"Unsupported checkpoint version: {payload.get('version')!r}")
    config_hash = payload.get("config_hash")
    last_index = payload.get("last_index")
    total_processed = payload.get("total_processed")
    total_failed = payload.get("total_failed")
    created_at = payload.get("created_at")
    if not isinstance(config_hash, str):
        raise ValueError("Checkpoint field 'config_hash' must be a string.")
    for name, value in (
        ("last_index", last_index),
        ("total_processed", total_processed),
        ("total_failed", total_failed),
    ):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"Checkpoint field '{name}' must be an integer.")
    if not isinstance(created_at, str):
        raise ValueError("Checkpoint field 'created_at' must be a string.")
    return Checkpoint(
        config_hash=config_hash,
        last_index=last_index,
        total_processed=total_processed,
        total_failed=total_failed,
        stats=_stats_from_dict(payload.get("stats")),
        failed_items=_failed_items_from_list(payload.get("failed_items", [])),
        created_at=created_at,
    )


def load_checkpoint(path: Path) -> Checkpoint | None:
    """Load a checkpoint, None when missing, corrupt or of an unknown version."""
    payload = read_json_object(path)
    if payload is None:
        return None
    try:
        return checkpoint_from_dict(payload)
    except ValueError:
        return None


def save_checkpoint(checkpoint: Checkpoint, path: Path) -> None:
    """Persist a checkpoint with the atomic write primitive."""
    atomic_write_json(path, checkpoint.to_dict())


def resume_index(checkpoint: Checkpoint) -> int:
    """Return the first index not covered by a checkpoint."""
    return checkpoint.last_index + 1


def should_write_checkpoint(item_number: int, interval: int = DEFAULT_CHECKPOINT_INTERVAL) -> bool:
    """Return True at every positive multiple of `interval` processed items."""
    return item_number > 0 and item_number % interval == 0


def initialize_checkpoint_state(
    checkpoint: Checkpoint | None, current_hash: str
) -> CheckpointState:
    """Decide where to start, refusing to resume across configurations."""
    if checkpoint is None:
        return CheckpointState(is_resuming=False, start_index=0, config_hash=current_hash)
    if checkpoint.config_hash != current_hash:
        raise CheckpointConfigMismatchError(
            checkpoint_hash=checkpoint.config_hash,
            current_hash=current_hash,
        )
    return CheckpointState(
        is_resuming=True,
        start_index=resume_index(checkpoint),
        config_hash=checkpoint.config_hash,
        checkpoint=checkpoint,
    )


class CheckpointManager:
    """Owns the checkpoint file for one configuration hash."""

    def __init__(
        self,
        checkpoint_dir: Path,
        config_hash: str,
        interval: int = DEFAULT_CHECKPOINT_INTERVAL,
        event_logger: JsonlEventLogger | None = None,
    ) -> None:
        if interval < 1:
            raise ValueError("Checkpoint interval must be a positive integer.")
        self._checkpoint_dir = checkpoint_dir
        self._config_hash = config_hash
        self._interval = interval
        self._event_logger = event_logger

    @property
    def path(self) -> Path:
        return checkpoint_path(self._checkpoint_dir, self._config_hash)

    @property
    def interval(self) -> int:
        return self._interval

    @property
    def config_hash(self) -> str:
        return self._config_hash

    def load(self) -> Checkpoint | None:
        return load_checkpoint(self.path)

    def begin(self, resume: bool = True) -> CheckpointState:
        """Return the starting state, resuming from disk when asked to."""
        checkpoint = self.load() if resume else None
        state = initialize_checkpoint_state(checkpoint, self._config_hash)
        if state.is_resuming and self._event_logger is not None:
            self._event_logger.emit(
                "checkpoint",
                "resuming",
                {
                    "start_index": state.start_index,
                    "total_processed": state.checkpoint.total_processed,
                    "total_failed": state.checkpoint.total_failed,
                },
            )
        return state

    def is_due(self, index: int) -> bool:
        """Return True when the item at absolute `index` closes an interval."""
        return should_write_checkpoint(index + 1, self._interval)

    def write(
        self,
        last_index: int,
        stats: CheckpointStats,
        failed_items: Sequence[FailedItem],
    ) -> Checkpoint:
        """Atomically replace the checkpoint with the given progress."""
        checkpoint = Checkpoint(
            config_hash=self._config_hash,
            last_index=last_index,
            total_processed=stats.processed_count,
            total_failed=stats.failed_count,
            stats=stats,
            failed_items=tuple(failed_items),
            created_at=utc_now(),
        )
        save_checkpoint(checkpoint, self.path)
        if self._event_logger is not None:
            self._event_logger.emit(
                "checkpoint",
                "checkpoint_written",
                {
                    "last_index": last_index,
                    "total_processed": stats.processed_count,
                    "total_failed": stats.failed_count,
                },
            )
        return checkpoint

    def status(self) -> dict[str, object]:
        """Return a serializable summary of the checkpoint on disk."""
        checkpoint = self.load()
        if checkpoint is None:
            return {"path": str(self.path), "exists": self.path.exists(), "valid": False}
        return {
            "path": str(self.path),
            "exists": True,
            "valid": True,
            "resume_index": resume_index(checkpoint),
            "checkpoint": checkpoint.to_dict(),
        }


def _stats_from_dict(payload: object) -> CheckpointStats:
    if not isinstance(payload, dict):
        raise ValueError("Checkpoint field 'stats' must be an object.")
    processed = payload.get("processed_count")
    failed = payload.get("failed_count")
    by_kind = payload.get("by_kind", {})
    if isinstance(processed, bool) or not isinstance(processed, int):
        raise ValueError("Checkpoint field 'stats.processed_count' must be an integer.")
    if isinstance(failed, bool) or not isinstance(failed, int):
        raise ValueError("Checkpoint field 'stats.failed_count' must be an integer.")
    if not isinstance(by_kind, dict) or not all(
        isinstance(key, str) and isinstance(value, int) for key, value in by_kind.items()
    ):
        raise ValueError("Checkpoint field 'stats.by_kind' must map strings to integers.")
    return CheckpointStats(processed_count=processed, failed_count=failed, by_kind=dict(by_kind))


def _failed_items_from_list(payload: object) -> tuple[FailedItem, ...]:
    if not isinstance(payload, list):
        raise ValueError("Checkpoint field 'failed_items' must be a list.")
    items: list[FailedItem] = []
    for entry in payload:
        if not isinstance(entry, dict):
            raise ValueError("Checkpoint failed item must be an object.")
        index = entry.get("index")
        record_id = entry.get("id")
        kind = entry.get("kind")
        error = entry.get("error")
        if isinstance(index, bool) or not isinstance(index, int):
            raise ValueError("Checkpoint failed item 'index' must be an integer.")
        if not all(isinstance(value, str) for value in (record_id, kind, error)):
            raise ValueError("Checkpoint failed item fields must be strings.")
        items.append(FailedItem(index=index, record_id=record_id, kind=kind, error=error))
    return tuple(items)
