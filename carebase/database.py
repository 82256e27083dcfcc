from collections.abc import Iterator, MutableMapping
from datetime import datetime
from typing import Generic, TypeVar

from carebase.models import ACTIVE_STATUSES, Shift, ShiftStatus

K = TypeVar("K")
V = TypeVar("V")


class InMemoryKeyValueDatabase(Generic[K, V]):
    """
    Simple in-memory key/value database.
    """

    def __init__(self) -> None:
        self._store: MutableMapping[K, V] = {}

    def put(self, key: K, value: V) -> None:
        self._store[key] = value

    def get(self, key: K) -> V | None:
        return self._store.get(key)

    def delete(self, key: K) -> None:
        self._store.pop(key, None)

    def all(self) -> list[V]:
        return list(self._store.values())

    def clear(self) -> None:
        self._store.clear()

    def __iter__(self) -> Iterator[V]:
        return iter(self._store.values())

    def __len__(self) -> int:
        return len(self._store)

    def shifts(self) -> list[Shift]:
        return [v for v in self._store.values() if isinstance(v, Shift)]

    def find_shifts(
        self,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        caregiver_id: str | None = None,
        client_id: str | None = None,
        status: ShiftStatus | None = None,
    ) -> list[Shift]:
        """
        Shifts starting at or after `start` and ending at or before `end`,
        narrowed by caregiver, client and status, earliest first.
        """
        found = [
            s
            for s in self.shifts()
            if (start is None or s.scheduled_start >= start)
            and (end is None or s.scheduled_end <= end)
            and (caregiver_id is None or s.caregiver.id == caregiver_id)
            and (client_id is None or s.client.id == client_id)
            and (status is None or s.status == status)
        ]
        return sorted(found, key=lambda s: s.scheduled_start)

    def find_conflicting_shift(
        self,
        caregiver_id: str,
        start: datetime,
        end: datetime,
        *,
        exclude_id: str | None = None,
    ) -> Shift | None:
        """
        First active shift for the caregiver overlapping [start, end).
        Back-to-back shifts (one ends when the next starts) do not conflict.
        """
        return next(
            (
                s
                for s in self.find_shifts(caregiver_id=caregiver_id)
                if s.id != exclude_id
                and s.status in ACTIVE_STATUSES
                and s.scheduled_start < end
                and s.scheduled_end > start
            ),
            None,
        )
