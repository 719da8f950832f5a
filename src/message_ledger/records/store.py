"""In-memory indices over one batch of records."""

from __future__ import annotations

from collections.abc import Iterator, Sequence

from message_ledger.records.models import Record
from message_ledger.records.timestamps import epoch_millis

MILLIS_PER_MINUTE = 60_000


class RecordStore:
    """Arena of records with identifier and minute-bucket indices.

    Records are addressed by their position in the arena; both indices map
    to integer positions so lookups never copy or alias records. Records
    whose timestamp cannot be parsed stay addressable by identifier but are
    left out of the time buckets.
    """

    def __init__(self, records: Sequence[Record]) -> None:
        self._records: list[Record] = list(records)
        self._millis: list[int | None] = []
        self._by_id: dict[str, int] = {}
        self._by_minute: dict[int, list[int]] = {}
        for position, record in enumerate(self._records):
            self._by_id.setdefault(record.id, position)
            millis = epoch_millis(record.timestamp)
            self._millis.append(millis)
            if millis is None:
                continue
            self._by_minute.setdefault(millis // MILLIS_PER_MINUTE, []).append(position)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self._records)

    def record_at(self, position: int) -> Record:
        """Return the record stored at an arena position."""
        return self._records[position]

    def millis_at(self, position: int) -> int | None:
        """Return the parsed timestamp of a position, None when malformed."""
        return self._millis[position]

    def position_of(self, record_id: str) -> int | None:
        """Return the arena position of the first record with an identifier."""
        return self._by_id.get(record_id)

    def get(self, record_id: str) -> Record | None:
        """Return a record by identifier."""
        position = self._by_id.get(record_id)
        if position is None:
            return None
        return self._records[position]

    def preceding_window(self, millis: int, window_minutes: int) -> list[int]:
        """Return positions in the minute buckets at or before `millis`.

        Scans the bucket containing `millis` and the `window_minutes` buckets
        before it, in ascending arena order and without duplicates.
        """
        base = millis // MILLIS_PER_MINUTE
        positions: list[int] = []
        for offset in range(window_minutes + 1):
            positions.extend(self._by_minute.get(base - offset, ()))
        return sorted(positions)
