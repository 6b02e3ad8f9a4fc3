"""Day-partitioned in-memory record store."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Generic, TypeVar

from funnelwire.utils.dates import day_key, iter_days
from funnelwire.utils.locks import ReadWriteLock

T = TypeVar("T")

DEFAULT_LIMIT = 100


class LookupStatus(str, Enum):
    FOUND = "found"
    EMPTY = "empty"


@dataclass
class DayLookup(Generic[T]):
    day: date
    status: LookupStatus
    records: list[T] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.status is LookupStatus.FOUND


class PartitionedStore(Generic[T]):
    """Records grouped under their UTC calendar day.

    Appends are additive; nothing is ever replaced or evicted.
    """

    def __init__(self, timestamp_of: Callable[[T], datetime], *, name: str = "records") -> None:
        self.name = name
        self._timestamp_of = timestamp_of
        self._partitions: dict[date, list[T]] = defaultdict(list)
        self._lock = ReadWriteLock()

    def append(self, records: Iterable[T], key_fn: Callable[[T], date] | None = None) -> int:
        key = key_fn or (lambda record: day_key(self._timestamp_of(record)))
        grouped: dict[date, list[T]] = defaultdict(list)
        count = 0
        for record in records:
            grouped[key(record)].append(record)
            count += 1
        with self._lock.write():
            for day, items in grouped.items():
                self._partitions[day].extend(items)
        return count

    def range_scan(self, start: date, end: date) -> list[T]:
        with self._lock.read():
            return self._scan(start, end)

    def query(self, start: date, end: date, predicate: Callable[[T], bool]) -> list[T]:
        with self._lock.read():
            return filter_records(self._scan(start, end), predicate)

    def lookup_day(self, day: date) -> DayLookup[T]:
        with self._lock.read():
            records = list(self._partitions.get(day, ()))
        if records:
            return DayLookup(day=day, status=LookupStatus.FOUND, records=records)
        return DayLookup(day=day, status=LookupStatus.EMPTY)

    def days(self) -> list[date]:
        with self._lock.read():
            return sorted(day for day, items in self._partitions.items() if items)

    def __len__(self) -> int:
        with self._lock.read():
            return sum(len(items) for items in self._partitions.values())

    def _scan(self, start: date, end: date) -> list[T]:
        result: list[T] = []
        for day in iter_days(start, end):
            items = self._partitions.get(day)
            if items:
                result.extend(items)
        return result


def filter_records(records: Iterable[T], predicate: Callable[[T], bool]) -> list[T]:
    return [record for record in records if predicate(record)]


def paginate(
    records: Sequence[T],
    limit: int | None,
    offset: int | None,
    date_of: Callable[[T], datetime],
) -> tuple[list[T], int, bool]:
    """Sort ascending by date and slice ``[offset, offset + limit)``.

    Returns ``(page, total, has_more)``.
    """
    limit = limit if limit and limit > 0 else DEFAULT_LIMIT
    offset = offset if offset and offset > 0 else 0
    ordered = sorted(records, key=date_of)
    total = len(ordered)
    start = min(offset, total)
    end = min(offset + limit, total)
    return ordered[start:end], total, end < total
