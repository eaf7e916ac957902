"""Tests for tidy_exit.broadcast and tidy_exit.tracker."""

from __future__ import annotations

from tidy_exit.broadcast import ShutdownBroadcast
from tidy_exit.tracker import CompletionTracker


class TestShutdownBroadcast:
    def test_fires_in_subscription_order(self):
        broadcast = ShutdownBroadcast()
        seen = []
        broadcast.subscribe(lambda source: seen.append(("a", source)))
        broadcast.subscribe(lambda source: seen.append(("b", source)))

        assert broadcast.fire("SIGTERM") == 2
        assert seen == [("a", "SIGTERM"), ("b", "SIGTERM")]

    def test_fires_only_once(self):
        broadcast = ShutdownBroadcast()
        seen = []
        broadcast.subscribe(seen.append)

        broadcast.fire("shutdown")
        assert broadcast.fire("shutdown") == 0
        assert seen == ["shutdown"]
        assert broadcast.subscriber_count == 0

    def test_subscriber_added_while_firing_waits_for_next_emission(self):
        broadcast = ShutdownBroadcast()
        late = []

        def _subscribe_late(source):
            broadcast.subscribe(late.append)

        broadcast.subscribe(_subscribe_late)
        broadcast.fire("SIGINT")

        assert late == []
        assert broadcast.subscriber_count == 1

    def test_unsubscribe(self):
        broadcast = ShutdownBroadcast()
        seen = []
        listener = broadcast.subscribe(seen.append)

        assert broadcast.unsubscribe(listener) is True
        assert broadcast.unsubscribe(listener) is False
        broadcast.fire("SIGTERM")
        assert seen == []

    def test_clear(self):
        broadcast = ShutdownBroadcast()
        broadcast.subscribe(lambda source: None)
        broadcast.clear()
        assert broadcast.subscriber_count == 0


class TestCompletionTracker:
    def test_slots_are_one_based(self):
        tracker = CompletionTracker()
        assert tracker.add_slot() == 1
        assert tracker.add_slot() == 2
        assert len(tracker) == 2
        assert tracker.pending == 2

    def test_drained_after_every_slot_done(self):
        tracker = CompletionTracker()
        first, second = tracker.add_slot(), tracker.add_slot()

        assert tracker.mark_done(first)
        assert not tracker.is_drained(2)
        assert tracker.mark_done(second)
        assert tracker.is_drained(2)
        assert tracker.pending == 0

    def test_not_drained_until_all_registered_notified(self):
        tracker = CompletionTracker()
        tracker.mark_done(tracker.add_slot())
        assert not tracker.is_drained(3)

    def test_double_completion_is_harmless(self):
        tracker = CompletionTracker()
        slot = tracker.add_slot()
        tracker.add_slot()

        tracker.mark_done(slot)
        tracker.mark_done(slot)

        assert tracker.pending == 1
        assert not tracker.is_drained(2)

    def test_unknown_slots_are_rejected(self):
        tracker = CompletionTracker()
        tracker.add_slot()
        assert tracker.mark_done(0) is False
        assert tracker.mark_done(2) is False
        assert tracker.mark_done(None) is False
        assert tracker.pending == 1
