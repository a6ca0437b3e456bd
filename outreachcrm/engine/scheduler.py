"""
Scheduling primitives for the sync engine.

The engine never starts timers by itself; it is handed a scheduler (periodic
jobs) and an executor (fire-and-forget propagation). Production wiring uses
ThreadScheduler + a ThreadPoolExecutor; tests use ManualScheduler +
InlineExecutor and drive time by hand.
"""

import logging
import threading
from concurrent.futures import Executor, Future
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class ThreadScheduler:
    """
    Runs each job on its own daemon thread. Jobs are independent: a slow tick
    of one never delays the other.
    """

    def __init__(self):
        self._jobs: Dict[int, threading.Event] = {}
        self._threads: Dict[int, threading.Thread] = {}
        self._next_handle = 0
        self._lock = threading.Lock()

    def every(self, interval: float, callback: Callable[[], None], name: str = 'job') -> int:
        stop = threading.Event()
        with self._lock:
            handle = self._next_handle
            self._next_handle += 1
            self._jobs[handle] = stop

        def _loop():
            while not stop.wait(interval):
                try:
                    callback()
                except Exception as e:
                    logger.error(f"Scheduled job '{name}' failed: {e}")

        thread = threading.Thread(target=_loop, name=f"outreachcrm-{name}", daemon=True)
        with self._lock:
            self._threads[handle] = thread
        thread.start()
        logger.debug(f"Scheduled '{name}' every {interval}s")
        return handle

    def cancel(self, handle: int) -> None:
        with self._lock:
            stop = self._jobs.pop(handle, None)
            thread = self._threads.pop(handle, None)
        if stop:
            stop.set()
        if thread and thread is not threading.current_thread():
            thread.join(timeout=1)


class ManualScheduler:
    """Deterministic scheduler: nothing runs until advance() is called."""

    def __init__(self):
        self.now = 0.0
        self._jobs: Dict[int, List] = {}
        self._next_handle = 0

    def every(self, interval: float, callback: Callable[[], None], name: str = 'job') -> int:
        handle = self._next_handle
        self._next_handle += 1
        self._jobs[handle] = [interval, self.now + interval, callback, name]
        return handle

    def cancel(self, handle: int) -> None:
        self._jobs.pop(handle, None)

    @property
    def job_names(self) -> List[str]:
        return [job[3] for job in self._jobs.values()]

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due jobs in time order."""
        target = self.now + seconds
        while True:
            due = self._next_due(target)
            if due is None:
                break
            handle, job = due
            self.now = job[1]
            job[1] += job[0]
            job[2]()
        self.now = target

    def _next_due(self, target: float) -> Optional[tuple]:
        pending = [(job[1], handle) for handle, job in self._jobs.items() if job[1] <= target]
        if not pending:
            return None
        _, handle = min(pending)
        return handle, self._jobs[handle]


class InlineExecutor(Executor):
    """Executor that runs the submitted call immediately on the caller's thread."""

    def __init__(self):
        self._shutdown = False

    def submit(self, fn, *args, **kwargs) -> Future:
        if self._shutdown:
            raise RuntimeError("cannot schedule new futures after shutdown")
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future

    def shutdown(self, wait=True, *, cancel_futures=False):
        self._shutdown = True
