"""Background and on-demand reindexing of storages.

One job rebuilds the index rows of one storage. Jobs of different storages run
in parallel on a thread pool; jobs of the same storage are single-flight, with
any requests that arrive meanwhile coalesced into one follow-up run.
"""

import concurrent.futures
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
import logging
import threading
import time
from typing import Callable, Iterable

logger = logging.getLogger(__name__)

DEFAULT_REINDEX_INTERVAL = 30 * 60.0


class IndexState(str, Enum):
    STALE = "stale"
    INDEXING = "indexing"
    FRESH = "fresh"


class IndexScheduler:
    """Run reindex jobs periodically and on request.

    Usage:
        scheduler = IndexScheduler(["ssd", "hdd"], service.reindex_storage)
        scheduler.start()
        scheduler.trigger("ssd")
        scheduler.stop()

    ``reindex`` is called with a storage name from a worker thread and may
    raise; a failed job leaves that storage STALE.
    """

    def __init__(
        self,
        storages: Iterable[str],
        reindex: Callable[[str], int],
        interval: float = DEFAULT_REINDEX_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        stop_event: threading.Event | None = None,
        max_workers: int | None = None,
    ):
        self.storages = list(storages)
        self.interval = interval
        self.clock = clock
        self._reindex = reindex
        self._stop_event = stop_event or threading.Event()

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._states = {storage: IndexState.STALE for storage in self.storages}
        self._inflight: dict[str, Future] = {}
        self._rerun: set[str] = set()
        self._closed = False

        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or max(len(self.storages), 1),
            thread_name_prefix="reindex",
        )
        self._thread: threading.Thread | None = None
        self._last_pass: float | None = None

    # Lifecycle

    def start(self) -> None:
        """Reindex every storage now, then every ``interval`` seconds."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._loop, name="index-scheduler", daemon=True)
        self._thread.start()
        logger.info(
            f"Index scheduler started for {len(self.storages)} storages "
            f"(every {self.interval:.0f}s)"
        )

    def stop(self, timeout: float | None = None) -> None:
        """Stop the loop and the pool. In-flight jobs run to completion."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        with self._lock:
            self._closed = True
            self._rerun.clear()
        self._executor.shutdown(wait=True)
        logger.info("Index scheduler stopped")

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(self._seconds_until_next_pass())

    def _seconds_until_next_pass(self) -> float:
        if self._last_pass is None:
            return 0.0
        return max(self.interval - (self.clock() - self._last_pass), 0.0)

    def tick(self) -> bool:
        """Run a full pass if the interval has elapsed since the last one.

        Blocks until every job of the pass has finished. Returns True when a
        pass ran.
        """
        now = self.clock()
        if self._last_pass is not None and now - self._last_pass < self.interval:
            return False
        self._last_pass = now
        logger.info("Starting periodic reindex of all storages")
        self.reindex_all(wait=True)
        return True

    # Jobs

    def trigger(self, storage: str) -> Future | None:
        """Schedule a reindex of ``storage`` without waiting for it.

        If a job of that storage is already running, the request is folded
        into a single follow-up run and the running job's future is returned.
        Returns None once the scheduler has been stopped.
        """
        with self._lock:
            if storage not in self._states:
                raise ValueError(f"unknown storage '{storage}'")
            if self._closed:
                logger.debug(f"Scheduler stopped, dropping reindex of {storage}")
                return None

            future = self._inflight.get(storage)
            if future is not None:
                self._rerun.add(storage)
                return future

            future = self._executor.submit(self._run, storage)
            self._inflight[storage] = future
            return future

    def reindex_all(self, wait: bool = False) -> list[Future]:
        futures = []
        for storage in self.storages:
            future = self.trigger(storage)
            if future is not None:
                futures.append(future)
        if wait:
            concurrent.futures.wait(futures)
        return futures

    def _run(self, storage: str) -> int | None:
        count = None
        while True:
            with self._lock:
                self._rerun.discard(storage)
                self._states[storage] = IndexState.INDEXING

            started = time.monotonic()
            try:
                count = self._reindex(storage)
            except Exception as e:
                # Any failure leaves the storage STALE until the next run
                logger.error(f"Reindex of {storage} failed: {e}", exc_info=True)
                state = IndexState.STALE
                count = None
            else:
                logger.info(
                    f"Reindexed {storage}: {count} entries in {time.monotonic() - started:.2f}s"
                )
                state = IndexState.FRESH

            with self._lock:
                self._states[storage] = state
                if storage in self._rerun and not self._closed:
                    continue
                self._rerun.discard(storage)
                del self._inflight[storage]
                self._idle.notify_all()
                return count

    # Introspection

    def wait_idle(self, timeout: float | None = None) -> bool:
        """Block until no job is in flight. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: not self._inflight, timeout)

    def state(self, storage: str) -> IndexState:
        with self._lock:
            return self._states[storage]

    def states(self) -> dict[str, IndexState]:
        with self._lock:
            return dict(self._states)
