"""Reply and reaction link resolution."""

from .resolver import (
    AmbiguousLink,
    LinkingResult,
    LinkingStats,
    LinkResolver,
    ScoredCandidate,
    detect_ambiguous_links,
    extract_snippet,
    link_records,
    rank_candidates,
)

__all__ = [
    "AmbiguousLink",
    "LinkResolver",
    "LinkingResult",
    "LinkingStats",
    "ScoredCandidate",
    "detect_ambiguous_links",
    "extract_snippet",
    "link_records",
    "rank_candidates",
]
