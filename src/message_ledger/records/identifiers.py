"""Record identifier shapes and provenance helpers."""

from __future__ import annotations

import re
from enum import Enum
from typing import Final

PART_PREFIX_PATTERN: Final[re.Pattern[str]] = re.compile(r"^p:(\d+)/(.+)$")


class IdentifierShape(Enum):
    """Provenance encoded by an identifier's shape."""

    LINE_PART = "line_part"
    DIRECT = "direct"
    PART = "part"


def classify_identifier(identifier: str) -> IdentifierShape:
    """Classify an identifier as line/part, direct, or split-part."""
    if PART_PREFIX_PATTERN.match(identifier):
        return IdentifierShape.PART
    segments = identifier.split(":")
    if len(segments) == 3 and segments[1].isdigit() and segments[2].isdigit():
        return IdentifierShape.LINE_PART
    return IdentifierShape.DIRECT


def is_flat_source(identifier: str) -> bool:
    """Return True for identifiers produced by flat single-source ingestion."""
    return classify_identifier(identifier) is IdentifierShape.LINE_PART


def part_index(identifier: str) -> int | None:
    """Return the split index of a `p:N/...` identifier."""
    match = PART_PREFIX_PATTERN.match(identifier)
    if match is None:
        return None
    return int(match.group(1))


def group_identifier(identifier: str) -> str | None:
    """Return the unprefixed group identifier shared by split siblings."""
    match = PART_PREFIX_PATTERN.match(identifier)
    if match is None:
        return None
    return match.group(2)


def preferred_identifier(first: str, second: str) -> str:
    """Pick the canonical identifier among two equivalent records.

    Identifiers from direct extraction (plain or split-part) win over
    line/part-numbered ones. When both have the same provenance class the
    second argument wins, so callers pass the authoritative side second.
    """
    first_flat = is_flat_source(first)
    second_flat = is_flat_source(second)
    if second_flat and not first_flat:
        return first
    return second
