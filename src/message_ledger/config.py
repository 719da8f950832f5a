"""Configuration loading and deterministic merge order."""

from __future__ import annotations

import hashlib
import json
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, fields, replace
from pathlib import Path

CONFIG_FILENAME = "message_ledger.toml"
CONFIG_HASH_SCHEMA_VERSION = "1.0"
DEFAULT_STATE_FILENAME = ".message-ledger-state.json"
DEFAULT_ENRICHED_FILENAME = "records.enriched.json"
DEFAULT_CHECKPOINT_INTERVAL = 100
CHECKPOINT_INTERVAL_CAP = 100_000
SEARCH_WINDOW_MINUTES_CAP = 60

GEMINI_KEY_ENV = "GEMINI_API_KEY"
FIRECRAWL_KEY_ENV = "FIRECRAWL_API_KEY"


@dataclass(slots=True, frozen=True)
class LinkingPolicy:
    """Reply/reaction matching thresholds and score weights.

    The defaults reproduce the behavior of the chat-export analyzer these
    heuristics were tuned against; they are policy, not invariants.
    """

    reply_window_seconds: int = 30
    search_window_minutes: int = 5
    reaction_window_seconds: int = 30
    proximity_score: float = 20.0
    snippet_prefix_score: float = 100.0
    snippet_contains_score: float = 50.0
    media_candidate_score: float = 80.0
    part_preference_base: float = 10.0
    same_sender_score: float = 15.0
    same_group_score: float = 10.0
    distance_penalty_divisor: float = 100.0
    reaction_proximity_score: float = 20.0
    reaction_media_score: float = 80.0
    reaction_text_score: float = 20.0


@dataclass(slots=True, frozen=True)
class PathsConfig:
    """Where persisted state, checkpoints and logs live."""

    data_dir: Path
    state_file: Path
    checkpoint_dir: Path
    enriched_file: Path

    @property
    def events_log(self) -> Path:
        return self.data_dir / "events.jsonl"


@dataclass(slots=True, frozen=True)
class EnrichmentSettings:
    """Enrichment loop settings."""

    checkpoint_interval: int = DEFAULT_CHECKPOINT_INTERVAL


@dataclass(slots=True, frozen=True)
class LedgerConfig:
    """Fully merged configuration."""

    workspace_root: Path
    paths: PathsConfig
    enrichment: EnrichmentSettings
    linking: LinkingPolicy

    def to_public_dict(self) -> dict[str, object]:
        """Return serializable config snapshot for command output."""
        return {
            "workspace_root": str(self.workspace_root),
            "paths": {
                "data_dir": str(self.paths.data_dir),
                "state_file": str(self.paths.state_file),
                "checkpoint_dir": str(self.paths.checkpoint_dir),
                "enriched_file": str(self.paths.enriched_file),
            },
            "enrichment": {
                "checkpoint_interval": self.enrichment.checkpoint_interval,
            },
            "linking": {
                item.name: getattr(self.linking, item.name) for item in fields(LinkingPolicy)
            },
        }


@dataclass(slots=True, frozen=True)
class CliOverrides:
    """Optional startup overrides applied at highest precedence."""

    data_dir: Path | None = None
    state_file: Path | None = None
    checkpoint_dir: Path | None = None
    enriched_file: Path | None = None
    checkpoint_interval: int | None = None


@dataclass(slots=True, frozen=True)
class ProviderCredentials:
    """Presence of enrichment-provider credentials, never the secrets."""

    has_gemini_key: bool = False
    has_firecrawl_key: bool = False

    @classmethod
    def from_environment(cls, env: Mapping[str, str]) -> ProviderCredentials:
        """Read credential presence from an explicit environment mapping."""
        return cls(
            has_gemini_key=bool(env.get(GEMINI_KEY_ENV)),
            has_firecrawl_key=bool(env.get(FIRECRAWL_KEY_ENV)),
        )


def compute_config_hash(credentials: ProviderCredentials) -> str:
    """Hash the enrichment-relevant configuration."""
    payload = json.dumps(
        {
            "version": CONFIG_HASH_SCHEMA_VERSION,
            "has_gemini_key": credentials.has_gemini_key,
            "has_firecrawl_key": credentials.has_firecrawl_key,
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def default_config(workspace_root: Path) -> LedgerConfig:
    """Build default config for a given workspace root."""
    resolved_root = workspace_root.resolve()
    data_dir = resolved_root / ".message_ledger"
    return LedgerConfig(
        workspace_root=resolved_root,
        paths=PathsConfig(
            data_dir=data_dir,
            state_file=resolved_root / DEFAULT_STATE_FILENAME,
            checkpoint_dir=data_dir / "checkpoints",
            enriched_file=resolved_root / DEFAULT_ENRICHED_FILENAME,
        ),
        enrichment=EnrichmentSettings(),
        linking=LinkingPolicy(),
    )


def load_workspace_config_file(workspace_root: Path) -> dict[str, object]:
    """Load optional message_ledger.toml from the workspace root."""
    config_path = workspace_root / CONFIG_FILENAME
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        raise ValueError(f"{CONFIG_FILENAME} must contain a top-level table.")
    return payload


def _get_table(payload: dict[str, object], key: str) -> dict[str, object]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise ValueError(f"Config section '{key}' must be a table.")
    return value


def merge_config(
    base: LedgerConfig, file_payload: dict[str, object], overrides: CliOverrides
) -> LedgerConfig:
    """Merge defaults, workspace config, then CLI overrides."""
    paths_payload = _get_table(file_payload, "paths")
    enrichment_payload = _get_table(file_payload, "enrichment")
    linking_payload = _get_table(file_payload, "linking")

    root = base.workspace_root
    data_dir = _optional_path(paths_payload.get("data_dir"), "paths.data_dir", root)
    resolved_data_dir = data_dir or base.paths.data_dir
    paths = PathsConfig(
        data_dir=resolved_data_dir,
        state_file=(
            _optional_path(paths_payload.get("state_file"), "paths.state_file", root)
            or base.paths.state_file
        ),
        checkpoint_dir=(
            _optional_path(paths_payload.get("checkpoint_dir"), "paths.checkpoint_dir", root)
            or (
                resolved_data_dir / "checkpoints"
                if data_dir is not None
                else base.paths.checkpoint_dir
            )
        ),
        enriched_file=(
            _optional_path(paths_payload.get("enriched_file"), "paths.enriched_file", root)
            or base.paths.enriched_file
        ),
    )
    checkpoint_interval = _optional_positive_int_with_cap(
        enrichment_payload.get("checkpoint_interval"),
        "enrichment.checkpoint_interval",
        base.enrichment.checkpoint_interval,
        CHECKPOINT_INTERVAL_CAP,
    )
    merged = LedgerConfig(
        workspace_root=root,
        paths=paths,
        enrichment=EnrichmentSettings(checkpoint_interval=checkpoint_interval),
        linking=_merge_linking(base.linking, linking_payload),
    )
    return apply_cli_overrides(merged, overrides)


def apply_cli_overrides(config: LedgerConfig, overrides: CliOverrides) -> LedgerConfig:
    """Apply startup overrides at highest precedence."""
    checkpoint_interval = _optional_positive_int_with_cap(
        overrides.checkpoint_interval,
        "overrides.checkpoint_interval",
        config.enrichment.checkpoint_interval,
        CHECKPOINT_INTERVAL_CAP,
    )
    data_dir = overrides.data_dir or config.paths.data_dir
    checkpoint_dir = overrides.checkpoint_dir or (
        data_dir / "checkpoints"
        if overrides.data_dir is not None
        else config.paths.checkpoint_dir
    )
    return LedgerConfig(
        workspace_root=config.workspace_root,
        paths=PathsConfig(
            data_dir=data_dir.resolve(),
            state_file=(overrides.state_file or config.paths.state_file).resolve(),
            checkpoint_dir=checkpoint_dir.resolve(),
            enriched_file=(overrides.enriched_file or config.paths.enriched_file).resolve(),
        ),
        enrichment=EnrichmentSettings(checkpoint_interval=checkpoint_interval),
        linking=config.linking,
    )


def load_effective_config(
    workspace_root: Path, overrides: CliOverrides | None = None
) -> LedgerConfig:
    """Load effective config using merge order defaults -> file -> overrides."""
    resolved_root = workspace_root.resolve()
    base = default_config(resolved_root)
    payload = load_workspace_config_file(resolved_root)
    return merge_config(base, payload, overrides or CliOverrides())


def _merge_linking(base: LinkingPolicy, payload: dict[str, object]) -> LinkingPolicy:
    known = {item.name for item in fields(LinkingPolicy)}
    for key in sorted(payload.keys()):
        if key not in known:
            raise ValueError(f"Config field 'linking.{key}' is not recognized.")
    updates: dict[str, object] = {}
    for name in ("reply_window_seconds", "search_window_minutes", "reaction_window_seconds"):
        cap = SEARCH_WINDOW_MINUTES_CAP if name == "search_window_minutes" else None
        updates[name] = _optional_positive_int_with_cap(
            payload.get(name), f"linking.{name}", getattr(base, name), cap
        )
    for name in sorted(known - set(updates)):
        value = payload.get(name)
        if value is None:
            continue
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise ValueError(f"Config field 'linking.{name}' must be a non-negative number.")
        if name == "distance_penalty_divisor" and value == 0:
            raise ValueError("Config field 'linking.distance_penalty_divisor' must be > 0.")
        updates[name] = float(value)
    return replace(base, **updates)


def _optional_path(value: object, name: str, root: Path) -> Path | None:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Config field '{name}' must be a non-empty string path.")
    candidate = Path(value)
    if not candidate.is_absolute():
        candidate = root / candidate
    return candidate.resolve()


def _optional_positive_int_with_cap(
    value: object,
    name: str,
    default: int,
    cap: int | None,
) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"Config field '{name}' must be a positive integer.")
    if cap is not None and value > cap:
        raise ValueError(f"Config field '{name}' must be <= {cap}.")
    return value
