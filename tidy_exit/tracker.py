"""Per-slot completion bookkeeping for notified cleanup tasks."""

from __future__ import annotations


class CompletionTracker:
    """Completion counters, one per notified cleanup task.

    Slots are 1-based and assigned in notification order.  Counters (not
    booleans) so a task that signals completion twice is harmless.
    """

    def __init__(self) -> None:
        self._slots: list[int] = []

    def __len__(self) -> int:
        return len(self._slots)

    @property
    def pending(self) -> int:
        return sum(1 for count in self._slots if count < 1)

    def add_slot(self) -> int:
        self._slots.append(0)
        return len(self._slots)

    def mark_done(self, slot: int | None) -> bool:
        """Count a completion for *slot*.  Returns False for unknown slots."""
        if slot is None or not 1 <= slot <= len(self._slots):
            return False
        self._slots[slot - 1] += 1
        return True

    def is_drained(self, registered_count: int) -> bool:
        """True once every one of *registered_count* tasks reported done."""
        if registered_count > len(self._slots):
            return False
        return all(count >= 1 for count in self._slots)
