"""Tests for the debounce tracker."""

import threading

from pysyncbox.sync.debounce import DebounceTracker


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestRapidDuplicate:
    """Tests for is_rapid_duplicate."""

    def test_first_event_is_not_duplicate(self):
        tracker = DebounceTracker(clock=FakeClock())
        assert tracker.is_rapid_duplicate("/sync/a.txt") is False

    def test_event_within_window_is_duplicate(self):
        """A second call 500 ms later is dropped with the 2000 ms window."""
        clock = FakeClock()
        tracker = DebounceTracker(clock=clock)

        assert tracker.is_rapid_duplicate("/sync/a.txt", 2000) is False
        clock.advance(0.5)
        assert tracker.is_rapid_duplicate("/sync/a.txt", 2000) is True

    def test_event_after_window_is_not_duplicate(self):
        """A call 2500 ms after the previous one proceeds."""
        clock = FakeClock()
        tracker = DebounceTracker(clock=clock)

        tracker.is_rapid_duplicate("/sync/a.txt", 2000)
        clock.advance(2.5)
        assert tracker.is_rapid_duplicate("/sync/a.txt", 2000) is False

    def test_last_seen_is_updated_on_every_call(self):
        """Dropped events still push the window forward."""
        clock = FakeClock()
        tracker = DebounceTracker(clock=clock)

        tracker.is_rapid_duplicate("/sync/a.txt", 2000)
        clock.advance(1.5)
        assert tracker.is_rapid_duplicate("/sync/a.txt", 2000) is True
        clock.advance(1.5)
        # 3.0 s after the first call but only 1.5 s after the second
        assert tracker.is_rapid_duplicate("/sync/a.txt", 2000) is True

    def test_paths_are_tracked_independently(self):
        tracker = DebounceTracker(clock=FakeClock())
        tracker.is_rapid_duplicate("/sync/a.txt")
        assert tracker.is_rapid_duplicate("/sync/b.txt") is False

    def test_concurrent_callers_let_exactly_one_through(self):
        """The check-and-set is atomic across threads."""
        tracker = DebounceTracker()
        results = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            results.append(tracker.is_rapid_duplicate("/sync/a.txt", 60_000))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(False) == 1
        assert results.count(True) == 7


class TestEcho:
    """Tests for upload marks and echo suppression."""

    def test_no_mark_is_no_echo(self):
        tracker = DebounceTracker(clock=FakeClock())
        assert tracker.is_echo("/sync/a.txt", mtime=999.0) is False
        assert tracker.time_since_upload("/sync/a.txt") is None

    def test_unmodified_file_after_self_write_is_echo(self):
        """A change 3 s after the engine wrote the file is suppressed."""
        clock = FakeClock(1000.0)
        tracker = DebounceTracker(clock=clock)

        tracker.mark_uploaded("/sync/a.txt")
        clock.advance(3)

        assert tracker.time_since_upload("/sync/a.txt") == 3
        assert tracker.is_echo("/sync/a.txt", mtime=1000.0) is True

    def test_modified_file_after_self_write_is_not_echo(self):
        """A user edit after the self-write is processed."""
        clock = FakeClock(1000.0)
        tracker = DebounceTracker(clock=clock)

        tracker.mark_uploaded("/sync/a.txt")
        clock.advance(3)

        assert tracker.is_echo("/sync/a.txt", mtime=1002.0) is False

    def test_edit_within_a_second_of_self_write_is_not_echo(self):
        """Any mtime later than the self-write counts as a user edit."""
        clock = FakeClock(1000.0)
        tracker = DebounceTracker(clock=clock)

        tracker.mark_uploaded("/sync/a.txt")
        clock.advance(1)

        assert tracker.is_echo("/sync/a.txt", mtime=1000.5) is False
        assert tracker.is_echo("/sync/a.txt", mtime=1000.0) is True

    def test_mark_older_than_window_is_not_echo(self):
        clock = FakeClock(1000.0)
        tracker = DebounceTracker(clock=clock)

        tracker.mark_uploaded("/sync/a.txt")
        clock.advance(12)

        assert tracker.is_echo("/sync/a.txt", mtime=990.0) is False

    def test_last_uploaded_returns_mark(self):
        clock = FakeClock(1234.0)
        tracker = DebounceTracker(clock=clock)
        tracker.mark_uploaded("/sync/a.txt")
        assert tracker.last_uploaded("/sync/a.txt") == 1234.0

    def test_pushed_version_is_the_server_timestamp(self):
        tracker = DebounceTracker(clock=FakeClock(1234.0))
        assert tracker.pushed_version("/sync/a.txt") is None

        tracker.mark_pushed("/sync/a.txt", 1240.5)

        assert tracker.pushed_version("/sync/a.txt") == 1240.5
        assert tracker.last_uploaded("/sync/a.txt") is None


class TestEviction:
    """Tests for forget, prune and clear."""

    def test_forget_drops_both_timestamps(self):
        tracker = DebounceTracker(clock=FakeClock())
        tracker.is_rapid_duplicate("/sync/a.txt")
        tracker.mark_uploaded("/sync/a.txt")
        assert len(tracker) == 1

        tracker.forget("/sync/a.txt")

        assert len(tracker) == 0
        assert tracker.is_rapid_duplicate("/sync/a.txt") is False

    def test_forget_drops_pushed_version(self):
        tracker = DebounceTracker(clock=FakeClock())
        tracker.mark_pushed("/sync/a.txt", 1000.0)

        tracker.forget("/sync/a.txt")

        assert tracker.pushed_version("/sync/a.txt") is None
        assert len(tracker) == 0

    def test_prune_drops_pushed_version_of_missing_path(self):
        tracker = DebounceTracker(clock=FakeClock())
        tracker.mark_pushed("/sync/gone.txt", 1000.0)

        assert tracker.prune(exists=lambda path: False) == 1
        assert tracker.pushed_version("/sync/gone.txt") is None

    def test_prune_drops_missing_paths(self):
        tracker = DebounceTracker(clock=FakeClock())
        tracker.mark_uploaded("/sync/kept.txt")
        tracker.is_rapid_duplicate("/sync/gone.txt")

        removed = tracker.prune(exists=lambda path: path.endswith("kept.txt"))

        assert removed == 1
        assert len(tracker) == 1
        assert tracker.last_uploaded("/sync/kept.txt") is not None

    def test_prune_with_nothing_stale(self):
        tracker = DebounceTracker(clock=FakeClock())
        tracker.mark_uploaded("/sync/a.txt")
        assert tracker.prune(exists=lambda path: True) == 0

    def test_clear(self):
        tracker = DebounceTracker(clock=FakeClock())
        tracker.mark_uploaded("/sync/a.txt")
        tracker.is_rapid_duplicate("/sync/b.txt")
        tracker.clear()
        assert len(tracker) == 0
