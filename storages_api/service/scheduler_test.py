"""Tests for IndexScheduler."""

import threading
import time

import pytest

from storages_api.service.scheduler import IndexScheduler, IndexState


class RecordingReindex:
    """Reindex callback that records calls and can be held open."""

    def __init__(self, fail_for: set[str] | None = None):
        self.calls: list[str] = []
        self.fail_for = fail_for or set()
        self.release = threading.Event()
        self.release.set()
        self.started = threading.Event()
        self._lock = threading.Lock()
        self.active = 0
        self.max_active = 0

    def __call__(self, storage: str) -> int:
        with self._lock:
            self.calls.append(storage)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        self.started.set()
        try:
            self.release.wait(5)
            if storage in self.fail_for:
                raise RuntimeError(f"walk of {storage} failed")
            return 1
        finally:
            with self._lock:
                self.active -= 1


@pytest.fixture
def reindex():
    return RecordingReindex()


@pytest.fixture
def scheduler(reindex, fake_clock):
    sched = IndexScheduler(["ssd", "hdd"], reindex, interval=1800, clock=fake_clock)
    yield sched
    reindex.release.set()
    sched.stop()


def test_initial_state_is_stale(scheduler):
    assert scheduler.states() == {"ssd": IndexState.STALE, "hdd": IndexState.STALE}


def test_tick_runs_full_pass_per_interval(scheduler, reindex, fake_clock):
    assert scheduler.tick() is True
    assert sorted(reindex.calls) == ["hdd", "ssd"]
    assert scheduler.states() == {"ssd": IndexState.FRESH, "hdd": IndexState.FRESH}

    fake_clock.advance(1799)
    assert scheduler.tick() is False
    assert len(reindex.calls) == 2

    fake_clock.advance(1)
    assert scheduler.tick() is True
    assert len(reindex.calls) == 4


def test_trigger_is_single_flight_and_coalesces(scheduler, reindex):
    reindex.release.clear()
    first = scheduler.trigger("ssd")
    assert reindex.started.wait(5)
    assert scheduler.state("ssd") == IndexState.INDEXING

    # Requests arriving mid-run fold into one follow-up run
    assert scheduler.trigger("ssd") is first
    assert scheduler.trigger("ssd") is first
    assert scheduler.trigger("ssd") is first

    reindex.release.set()
    first.result(timeout=5)

    assert reindex.calls == ["ssd", "ssd"]
    assert reindex.max_active == 1
    assert scheduler.state("ssd") == IndexState.FRESH


def test_trigger_after_completion_starts_new_job(scheduler, reindex):
    scheduler.trigger("ssd").result(timeout=5)
    scheduler.trigger("ssd").result(timeout=5)
    assert reindex.calls == ["ssd", "ssd"]


def test_different_storages_run_concurrently(scheduler, reindex):
    reindex.release.clear()
    futures = scheduler.reindex_all()
    assert len(futures) == 2

    for _ in range(50):
        if reindex.active == 2:
            break
        time.sleep(0.05)
    assert reindex.active == 2

    reindex.release.set()
    assert scheduler.wait_idle(timeout=5)
    assert reindex.max_active == 2


def test_failed_job_leaves_storage_stale(fake_clock):
    reindex = RecordingReindex(fail_for={"hdd"})
    scheduler = IndexScheduler(["ssd", "hdd"], reindex, clock=fake_clock)
    try:
        scheduler.reindex_all(wait=True)
        assert scheduler.state("ssd") == IndexState.FRESH
        assert scheduler.state("hdd") == IndexState.STALE

        # The pool survives a failure
        reindex.fail_for.clear()
        scheduler.trigger("hdd").result(timeout=5)
        assert scheduler.state("hdd") == IndexState.FRESH
    finally:
        scheduler.stop()


def test_unknown_storage(scheduler):
    with pytest.raises(ValueError):
        scheduler.trigger("nas")


def test_trigger_after_stop_is_dropped(scheduler, reindex):
    scheduler.stop()
    assert scheduler.trigger("ssd") is None
    assert reindex.calls == []


def test_start_and_stop_background_loop(reindex, fake_clock):
    stop_event = threading.Event()
    scheduler = IndexScheduler(
        ["ssd"], reindex, interval=1800, clock=fake_clock, stop_event=stop_event
    )
    scheduler.start()
    assert reindex.started.wait(5)
    assert scheduler.wait_idle(timeout=5)

    scheduler.stop(timeout=5)

    assert stop_event.is_set()
    assert reindex.calls == ["ssd"]
