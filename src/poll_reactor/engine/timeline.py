"""
Timeline - ascending map from due-time to the registrations due then.

Due-times live in a heap; entries live in a dict keyed by due-time. Removing
the last registration from an entry deletes the dict entry and leaves its
due-time in the heap, where ``_prune()`` discards it lazily. Each
registration carries a back-reference (``Registration.due``) to the entry
holding it, so removal never searches.
"""

import heapq
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..interfaces.service import Registration


@dataclass
class ScheduleEntry:
    """Registrations sharing one due-time, in insertion order."""
    due: int
    registrations: Dict[Registration, None] = field(default_factory=dict)

    def __iter__(self):
        return iter(list(self.registrations))

    def __len__(self):
        return len(self.registrations)


class Timeline:
    """Time-ordered schedule of pollable registrations."""

    def __init__(self):
        self._heap: List[int] = []
        self._entries: Dict[int, ScheduleEntry] = {}
        self._size = 0

    def __len__(self) -> int:
        """Number of scheduled registrations."""
        return self._size

    def __contains__(self, registration: Registration) -> bool:
        entry = self._entries.get(registration.due) if registration.due is not None else None
        return entry is not None and registration in entry.registrations

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    def insert(self, registration: Registration, due: int):
        """Schedule ``registration`` at ``due``, moving it if already scheduled."""
        if registration.due is not None:
            self.discard(registration)

        entry = self._entries.get(due)
        if entry is None:
            entry = ScheduleEntry(due)
            self._entries[due] = entry
            heapq.heappush(self._heap, due)
        entry.registrations[registration] = None
        registration.due = due
        self._size += 1

    def discard(self, registration: Registration) -> bool:
        """Unschedule ``registration``. Returns False if it was not scheduled."""
        due = registration.due
        if due is None:
            return False
        entry = self._entries.get(due)
        if entry is None or registration not in entry.registrations:
            registration.due = None
            return False

        del entry.registrations[registration]
        if not entry.registrations:
            del self._entries[due]
        registration.due = None
        self._size -= 1
        return True

    def next_due(self) -> Optional[int]:
        """Smallest scheduled due-time, or None when empty."""
        self._prune()
        return self._heap[0] if self._heap else None

    def pop_next(self) -> ScheduleEntry:
        """Remove and return the entry with the smallest due-time."""
        self._prune()
        if not self._heap:
            raise IndexError("pop from empty timeline")
        due = heapq.heappop(self._heap)
        entry = self._entries.pop(due)
        for registration in entry.registrations:
            registration.due = None
        self._size -= len(entry.registrations)
        return entry

    def snapshot(self) -> List[Tuple[int, List[str]]]:
        """Sorted ``(due, [names])`` pairs for diagnostics."""
        return [
            (due, [r.name for r in self._entries[due].registrations])
            for due in sorted(self._entries)
        ]

    def _prune(self):
        # Drop heap heads whose entry was emptied, or that duplicate a
        # due-time whose entry was already popped and re-created.
        while self._heap and self._heap[0] not in self._entries:
            heapq.heappop(self._heap)
