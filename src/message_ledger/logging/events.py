"""Structured JSONL event log utilities."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path

from message_ledger.records.timestamps import utc_now

LEVELS = ("debug", "info", "warning", "error")

_VERBATIM_STRING_KEYS = frozenset(
    {
        "record_id",
        "chosen_target",
        "reason",
        "path",
        "backup_path",
        "kind",
        "mode",
        "error_type",
        "config_hash_prefix",
        "stored_hash_prefix",
        "current_hash_prefix",
    }
)


@dataclass(slots=True, frozen=True)
class LedgerEvent:
    """Sanitized representation of a single pipeline event."""

    timestamp: str
    sequence: int
    level: str
    component: str
    event: str
    context: dict[str, object]


def sanitize_context(context: dict[str, object]) -> dict[str, object]:
    """Sanitize event context to avoid logging message bodies or secrets."""
    sanitized: dict[str, object] = {}
    for key in sorted(context.keys()):
        value = context[key]
        if key in _VERBATIM_STRING_KEYS and isinstance(value, str):
            sanitized[key] = value
            continue
        if isinstance(value, (int, float, bool)) or value is None:
            sanitized[key] = value
            continue
        if isinstance(value, str):
            sanitized[f"{key}_present"] = True
            sanitized[f"{key}_length"] = len(value)
            continue
        if isinstance(value, (list, tuple, set, frozenset)):
            sanitized[f"{key}_type"] = "list"
            sanitized[f"{key}_length"] = len(value)
            continue
        if isinstance(value, dict):
            if all(isinstance(item, (int, float)) for item in value.values()):
                sanitized[key] = {str(k): value[k] for k in sorted(value.keys(), key=str)}
                continue
            sanitized[f"{key}_type"] = "dict"
            sanitized[f"{key}_keys"] = sorted(str(k) for k in value.keys())
            continue
        sanitized[f"{key}_type"] = type(value).__name__
    return sanitized


class JsonlEventLogger:
    """Append-only JSONL event logger and bounded reader."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._sequence = self._count_existing_lines()

    @property
    def path(self) -> Path:
        """Return on-disk JSONL path."""
        return self._path

    def append(self, event: LedgerEvent) -> None:
        """Append an event as one JSON object per line."""
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(asdict(event), sort_keys=True))
            handle.write("\n")

    def emit(
        self,
        component: str,
        event: str,
        context: dict[str, object] | None = None,
        level: str = "info",
    ) -> LedgerEvent:
        """Sanitize, number and append one event."""
        if level not in LEVELS:
            raise ValueError(f"Unknown log level: {level}")
        self._sequence += 1
        entry = LedgerEvent(
            timestamp=utc_now(),
            sequence=self._sequence,
            level=level,
            component=component,
            event=event,
            context=sanitize_context(context or {}),
        )
        self.append(entry)
        return entry

    def read(self, since: str | None = None, limit: int = 50) -> list[dict[str, object]]:
        """Read recent events, optionally filtered by timestamp lower bound."""
        if limit < 1:
            return []
        entries: list[dict[str, object]] = []
        if not self._path.exists():
            return entries
        with self._path.open("r", encoding="utf-8") as handle:
            for line in handle:
                stripped = line.strip()
                if not stripped:
                    continue
                try:
                    record = json.loads(stripped)
                except json.JSONDecodeError:
                    continue
                if since is not None:
                    ts = record.get("timestamp")
                    if not isinstance(ts, str) or ts < since:
                        continue
                entries.append(record)
        if len(entries) <= limit:
            return entries
        return entries[-limit:]

    def _count_existing_lines(self) -> int:
        if not self._path.exists():
            return 0
        with self._path.open("r", encoding="utf-8") as handle:
            return sum(1 for line in handle if line.strip())
