from __future__ import annotations

import logging

from timetabling.schemas.timetable import Timetable

logger = logging.getLogger(__name__)


class HistoryManager:
    """Bounded linear undo/redo history of timetable snapshots.

    Snapshots live in a fixed-size ring buffer holding ``limit + 1`` entries:
    the present state plus ``limit`` states that can be undone to. Entries are
    deep copies, and every restore hands out a fresh copy, so nothing stored
    here is ever aliased by the caller.
    """

    def __init__(self, limit: int = 20) -> None:
        if limit < 1:
            raise ValueError("History limit must be at least 1")
        self.limit = limit
        self._capacity = limit + 1
        self._buffer: list[Timetable | None] = [None] * self._capacity
        self._head = 0
        self._size = 0
        self.history_index = -1

    def __len__(self) -> int:
        return self._size

    def _physical(self, logical_index: int) -> int:
        return (self._head + logical_index) % self._capacity

    def _entry(self, logical_index: int) -> Timetable:
        entry = self._buffer[self._physical(logical_index)]
        assert entry is not None
        return entry.model_copy(deep=True)

    @property
    def can_undo(self) -> bool:
        return self.history_index > 0

    @property
    def can_redo(self) -> bool:
        return self.history_index < self._size - 1

    def clear(self) -> None:
        self._buffer = [None] * self._capacity
        self._head = 0
        self._size = 0
        self.history_index = -1

    def reset(self, timetable: Timetable) -> None:
        self.clear()
        self.snapshot(timetable)

    def snapshot(self, timetable: Timetable) -> None:
        # A new edit after undo discards the redo branch.
        for logical_index in range(self.history_index + 1, self._size):
            self._buffer[self._physical(logical_index)] = None
        self._size = self.history_index + 1

        if self._size == self._capacity:
            self._buffer[self._head] = None
            self._head = (self._head + 1) % self._capacity
            self._size -= 1
            logger.debug("History full; evicted oldest snapshot")

        self._buffer[self._physical(self._size)] = timetable.model_copy(deep=True)
        self._size += 1
        self.history_index = self._size - 1

    def undo(self) -> Timetable | None:
        if not self.can_undo:
            return None
        self.history_index -= 1
        return self._entry(self.history_index)

    def redo(self) -> Timetable | None:
        if not self.can_redo:
            return None
        self.history_index += 1
        return self._entry(self.history_index)

    def entries(self) -> list[Timetable]:
        return [self._entry(index) for index in range(self._size)]
