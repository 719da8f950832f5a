"""Atomic persistence, incremental state and checkpoints."""

from .atomic import atomic_write_json, read_json_object
from .checkpoint import (
    CHECKPOINT_SCHEMA_VERSION,
    Checkpoint,
    CheckpointConfigMismatchError,
    CheckpointManager,
    CheckpointState,
    CheckpointStats,
    FailedItem,
    checkpoint_path,
    initialize_checkpoint_state,
    load_checkpoint,
    resume_index,
    save_checkpoint,
    should_write_checkpoint,
)
from .incremental import (
    STATE_SCHEMA_VERSION,
    ConfigHashMismatchError,
    DeltaResult,
    IncrementalState,
    RunStats,
    delta_stats,
    detect_delta,
    is_state_outdated,
    load_state,
    new_state,
    read_state,
    reset_state,
    save_state,
    update_state,
    verify_config_hash,
)

__all__ = [
    "CHECKPOINT_SCHEMA_VERSION",
    "STATE_SCHEMA_VERSION",
    "Checkpoint",
    "CheckpointConfigMismatchError",
    "CheckpointManager",
    "CheckpointState",
    "CheckpointStats",
    "ConfigHashMismatchError",
    "DeltaResult",
    "FailedItem",
    "IncrementalState",
    "RunStats",
    "atomic_write_json",
    "checkpoint_path",
    "delta_stats",
    "detect_delta",
    "initialize_checkpoint_state",
    "is_state_outdated",
    "load_checkpoint",
    "load_state",
    "new_state",
    "read_json_object",
    "read_state",
    "reset_state",
    "resume_index",
    "save_checkpoint",
    "save_state",
    "should_write_checkpoint",
    "update_state",
    "verify_config_hash",
]
