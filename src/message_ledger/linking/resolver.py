"""Heuristic reply and reaction linking over time-bucketed candidates."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field, replace

from message_ledger.config import LinkingPolicy
from message_ledger.records.identifiers import part_index
from message_ledger.records.models import (
    MediaRecord,
    NotificationRecord,
    ReactionRecord,
    Record,
    ReplyLink,
    TextRecord,
    record_body,
)
from message_ledger.records.store import RecordStore

SNIPPET_PATTERN = re.compile(
    r'(?:➜\s*Replying to:?\s+[«"]([^»"]+)[»"]|Replying to:?\s+[«"]([^»"]+)[»"])'
)
MEDIA_HINT_WORDS = ("photo", "image")


@dataclass(slots=True, frozen=True)
class ScoredCandidate:
    """A possible parent with its additive score and the signals behind it."""

    record_id: str
    score: float
    delta_ms: int
    reasons: tuple[str, ...]

    def to_dict(self) -> dict[str, object]:
        return {"id": self.record_id, "score": self.score, "reasons": list(self.reasons)}


@dataclass(slots=True, frozen=True)
class AmbiguousLink:
    """A link whose top score was shared by more than one candidate."""

    record_id: str
    chosen_target: str
    tied_candidates: tuple[ScoredCandidate, ...]
    tie_count: int
    score: float

    def to_dict(self) -> dict[str, object]:
        return {
            "record_id": self.record_id,
            "chosen_target": self.chosen_target,
            "tie_count": self.tie_count,
            "score": self.score,
            "tied_candidates": [candidate.to_dict() for candidate in self.tied_candidates],
        }


@dataclass(slots=True)
class LinkingStats:
    """Counters reported for one linking pass."""

    replies_linked: int = 0
    reactions_linked: int = 0
    unresolved: int = 0
    skipped_malformed: int = 0
    ambiguous: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(slots=True, frozen=True)
class LinkingResult:
    """Linked records plus ambiguity report and counters."""

    records: list[Record]
    ambiguous_links: list[AmbiguousLink] = field(default_factory=list)
    stats: LinkingStats = field(default_factory=LinkingStats)


def extract_snippet(body: str | None) -> str | None:
    """Return the quoted text after a "Replying to" marker, if any."""
    if not body:
        return None
    match = SNIPPET_PATTERN.search(body)
    if match is None:
        return None
    return match.group(1) or match.group(2)


def rank_candidates(candidates: list[ScoredCandidate]) -> list[ScoredCandidate]:
    """Order by score, then nearest preceding timestamp, then identifier."""
    return sorted(candidates, key=lambda item: (-item.score, item.delta_ms, item.record_id))


class LinkResolver:
    """Propose parents for replies and reactions lacking an explicit target.

    The resolver never raises for a missing match: an unresolved record is
    returned unchanged and counted. Records whose own timestamp cannot be
    parsed are skipped, and candidates with malformed timestamps are never
    considered because they are absent from the time buckets.
    """

    def __init__(self, policy: LinkingPolicy | None = None) -> None:
        self._policy = policy or LinkingPolicy()

    @property
    def policy(self) -> LinkingPolicy:
        return self._policy

    def resolve(self, records: Sequence[Record], track_ambiguous: bool = True) -> LinkingResult:
        """Link every unlinked reply and reaction in one batch."""
        store = RecordStore(records)
        stats = LinkingStats()
        ambiguous: list[AmbiguousLink] = []
        linked: list[Record] = []
        for position, record in enumerate(store):
            if not self._needs_link(record):
                linked.append(record)
                continue
            if store.millis_at(position) is None:
                stats.skipped_malformed += 1
                linked.append(record)
                continue
            if isinstance(record, ReactionRecord):
                candidates = self.reaction_candidates(store, position)
            else:
                candidates = self.reply_candidates(store, position)
            if not candidates:
                stats.unresolved += 1
                linked.append(record)
                continue
            top = candidates[0]
            tied = tuple(item for item in candidates if item.score == top.score)
            if len(tied) > 1:
                stats.ambiguous += 1
                if track_ambiguous:
                    ambiguous.append(
                        AmbiguousLink(
                            record_id=record.id,
                            chosen_target=top.record_id,
                            tied_candidates=tied,
                            tie_count=len(tied),
                            score=top.score,
                        )
                    )
            if isinstance(record, ReactionRecord):
                stats.reactions_linked += 1
            else:
                stats.replies_linked += 1
            linked.append(_with_target(record, top.record_id))
        return LinkingResult(records=linked, ambiguous_links=ambiguous, stats=stats)

    def reply_candidates(self, store: RecordStore, position: int) -> list[ScoredCandidate]:
        """Score possible parents for the reply stored at `position`."""
        policy = self._policy
        reply = store.record_at(position)
        reply_millis = store.millis_at(position)
        if reply_millis is None or isinstance(reply, (ReactionRecord, NotificationRecord)):
            return []
        body = reply.body or ""
        snippet = extract_snippet(body)
        folded_snippet = snippet.casefold() if snippet else None
        folded_body = body.casefold()
        mentions_media = any(word in folded_body for word in MEDIA_HINT_WORDS)

        scored: list[ScoredCandidate] = []
        for candidate_position in self._window_positions(store, position, reply_millis):
            candidate = store.record_at(candidate_position)
            candidate_text = record_body(candidate)
            is_media = isinstance(candidate, MediaRecord)
            if not candidate_text and not is_media:
                continue
            delta_ms = reply_millis - (store.millis_at(candidate_position) or 0)
            delta_s = delta_ms / 1000
            score = 0.0
            reasons: list[str] = []

            if delta_s <= policy.reply_window_seconds:
                score += policy.proximity_score
                reasons.append(f"within_reply_window (Δ{delta_s:.1f}s)")

            content_match = False
            if folded_snippet and candidate_text:
                folded_text = candidate_text.casefold()
                if folded_text.startswith(folded_snippet):
                    score += policy.snippet_prefix_score
                    reasons.append("snippet_prefix")
                    content_match = True
                elif folded_snippet in folded_text:
                    score += policy.snippet_contains_score
                    reasons.append("snippet_contains")
                    content_match = True

            if is_media and (folded_snippet is None or mentions_media):
                score += policy.media_candidate_score
                reasons.append("media_candidate")
                content_match = True
                index = part_index(candidate.id)
                if index is not None:
                    score += policy.part_preference_base - index
                    reasons.append(f"part_preference({index})")

            if delta_s > policy.reply_window_seconds and content_match:
                score -= delta_s / policy.distance_penalty_divisor
                reasons.append(f"extended_window (Δ{delta_s:.1f}s)")

            if reply.sender and candidate.sender == reply.sender:
                score += policy.same_sender_score
                reasons.append("same_sender")
            if reply.group_id and candidate.group_id == reply.group_id:
                score += policy.same_group_score
                reasons.append("same_group")

            if score > 0:
                scored.append(
                    ScoredCandidate(
                        record_id=candidate.id,
                        score=score,
                        delta_ms=delta_ms,
                        reasons=tuple(reasons),
                    )
                )
        return rank_candidates(scored)

    def reaction_candidates(self, store: RecordStore, position: int) -> list[ScoredCandidate]:
        """Score possible targets for the reaction stored at `position`."""
        policy = self._policy
        reaction = store.record_at(position)
        reaction_millis = store.millis_at(position)
        if reaction_millis is None:
            return []

        scored: list[ScoredCandidate] = []
        for candidate_position in self._window_positions(store, position, reaction_millis):
            candidate = store.record_at(candidate_position)
            delta_ms = reaction_millis - (store.millis_at(candidate_position) or 0)
            delta_s = delta_ms / 1000
            score = 0.0
            reasons: list[str] = []

            if delta_s <= policy.reaction_window_seconds:
                score += policy.reaction_proximity_score
                reasons.append(f"near_reaction (Δ{delta_s:.1f}s)")
            else:
                score -= delta_s
                reasons.append(f"distance_penalty (Δ{delta_s:.1f}s)")

            if isinstance(candidate, MediaRecord):
                score += policy.reaction_media_score
                reasons.append("is_media")
            elif isinstance(candidate, TextRecord):
                score += policy.reaction_text_score
                reasons.append("is_text")

            if reaction.group_id and candidate.group_id == reaction.group_id:
                score += policy.same_group_score
                reasons.append("same_group")

            if score > 0:
                scored.append(
                    ScoredCandidate(
                        record_id=candidate.id,
                        score=score,
                        delta_ms=delta_ms,
                        reasons=tuple(reasons),
                    )
                )
        return rank_candidates(scored)

    def _window_positions(self, store: RecordStore, position: int, millis: int) -> list[int]:
        """Return eligible parent positions at or before `millis` within the search window."""
        record_id = store.record_at(position).id
        window_minutes = self._policy.search_window_minutes
        limit_ms = window_minutes * 60_000
        seen: set[str] = set()
        positions: list[int] = []
        for candidate_position in store.preceding_window(millis, window_minutes):
            candidate = store.record_at(candidate_position)
            if isinstance(candidate, (ReactionRecord, NotificationRecord)):
                continue
            if candidate.id == record_id or candidate.id in seen:
                continue
            candidate_millis = store.millis_at(candidate_position)
            if candidate_millis is None:
                continue
            delta_ms = millis - candidate_millis
            if delta_ms < 0 or delta_ms > limit_ms:
                continue
            seen.add(candidate.id)
            positions.append(candidate_position)
        return positions

    @staticmethod
    def _needs_link(record: Record) -> bool:
        if isinstance(record, ReactionRecord):
            return record.reaction.target_id is None
        if isinstance(record, (TextRecord, MediaRecord)):
            if record.reply is not None and record.reply.target_id:
                return False
            return bool(record.body and record.body.strip())
        return False


def _with_target(record: Record, target_id: str) -> Record:
    if isinstance(record, ReactionRecord):
        return replace(record, reaction=replace(record.reaction, target_id=target_id))
    if isinstance(record, (TextRecord, MediaRecord)):
        reply = record.reply or ReplyLink()
        return replace(record, reply=replace(reply, target_id=target_id))
    return record


def link_records(
    records: Sequence[Record],
    policy: LinkingPolicy | None = None,
    track_ambiguous: bool = True,
) -> LinkingResult:
    """Link replies and reactions with a fresh resolver."""
    return LinkResolver(policy).resolve(records, track_ambiguous=track_ambiguous)


def detect_ambiguous_links(
    records: Sequence[Record], policy: LinkingPolicy | None = None
) -> dict[str, object]:
    """Report every reply or reaction whose best parent was a tie."""
    result = link_records(records, policy=policy, track_ambiguous=True)
    return {
        "tie_count": len(result.ambiguous_links),
        "ambiguous": [link.to_dict() for link in result.ambiguous_links],
    }
