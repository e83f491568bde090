"""
Delayed launch classification tasks.

Every confirmed start is classified a fixed delay later. Pending
classifications are kept in a due-time ordered queue owned by the
tracker, so they can be listed, cancelled, retried after a store failure
and drained on shutdown instead of being lost in detached timers.

A dispatcher thread hands due tasks to a small worker pool. Without
start() nothing runs in the background; run_pending() executes due
tasks in the calling thread.
"""

import heapq
import itertools
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from startlist.errors import StoreUnavailable
from startlist.observability import ErrorSink

logger = logging.getLogger(__name__)

TaskKey = Tuple[str, datetime]


@dataclass(order=True)
class PendingClassification:
    """A scheduled classification of one start."""
    due: float
    seq: int
    aircraft_id: str = field(compare=False)
    start_time: datetime = field(compare=False)
    attempts: int = field(default=0, compare=False)
    cancelled: bool = field(default=False, compare=False)

    @property
    def key(self) -> TaskKey:
        return (self.aircraft_id, self.start_time)


class ClassificationScheduler:
    """
    Due-time queue of launch classifications.

    Args:
        classifier: object with classify(aircraft_id, start_time)
        delay_s: delay between schedule() and the first attempt
        max_retries: attempts after the first one when the store fails
        retry_delay_s: delay before each retry
        max_workers: classifier threads used once started
        sink: where dropped classifications are reported
        clock: monotonic time source in seconds
    """

    def __init__(
        self,
        classifier,
        delay_s: float = 20.0,
        max_retries: int = 3,
        retry_delay_s: float = 10.0,
        max_workers: int = 4,
        sink: Optional[ErrorSink] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.classifier = classifier
        self.delay_s = delay_s
        self.max_retries = max_retries
        self.retry_delay_s = retry_delay_s
        self.max_workers = max_workers
        self.sink = sink or ErrorSink()
        self.clock = clock

        self._queue: List[PendingClassification] = []
        self._by_key: Dict[TaskKey, PendingClassification] = {}
        self._seq = itertools.count()
        self._cond = threading.Condition()

        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._executor: Optional[ThreadPoolExecutor] = None

        # Statistics
        self._stats_lock = threading.Lock()
        self._completed = 0
        self._retried = 0
        self._failed = 0

    # -------------------------------------------------------------------------
    # Queue management
    # -------------------------------------------------------------------------

    def schedule(
        self,
        aircraft_id: str,
        start_time: datetime,
        delay_s: Optional[float] = None,
    ) -> PendingClassification:
        """
        Schedule classification of a start.

        A start that is already pending is not scheduled twice; the
        existing task is returned.
        """
        key = (aircraft_id, start_time)
        delay = self.delay_s if delay_s is None else delay_s

        with self._cond:
            existing = self._by_key.get(key)
            if existing is not None:
                return existing

            task = PendingClassification(
                due=self.clock() + delay,
                seq=next(self._seq),
                aircraft_id=aircraft_id,
                start_time=start_time,
            )
            self._push(task)
            self._cond.notify()

        logger.debug(f'Classification of {aircraft_id} ({start_time}) due in {delay:.0f}s')
        return task

    def _push(self, task: PendingClassification) -> None:
        heapq.heappush(self._queue, task)
        self._by_key[task.key] = task

    def cancel(self, aircraft_id: str, start_time: datetime) -> bool:
        """Cancel a pending classification. Returns False if none was pending."""
        with self._cond:
            task = self._by_key.pop((aircraft_id, start_time), None)
            if task is None:
                return False
            # Lazily removed from the heap when it comes due
            task.cancelled = True
            self._cond.notify()
        return True

    def pending(self) -> List[PendingClassification]:
        """Outstanding classifications ordered by due time."""
        with self._cond:
            return sorted(t for t in self._queue if not t.cancelled)

    def _pop_due(self, now: float) -> List[PendingClassification]:
        due = []
        with self._cond:
            while self._queue and self._queue[0].due <= now:
                task = heapq.heappop(self._queue)
                if task.cancelled:
                    continue
                self._by_key.pop(task.key, None)
                due.append(task)
        return due

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def run_pending(self, now: Optional[float] = None) -> int:
        """
        Run every task due at `now` in the calling thread.

        Returns the number of tasks executed (including failed attempts).
        """
        now = self.clock() if now is None else now
        tasks = self._pop_due(now)
        for task in tasks:
            self._execute(task)
        return len(tasks)

    def _execute(self, task: PendingClassification) -> None:
        task.attempts += 1
        try:
            self.classifier.classify(task.aircraft_id, task.start_time)
            with self._stats_lock:
                self._completed += 1

        except StoreUnavailable as e:
            if task.attempts <= self.max_retries:
                with self._stats_lock:
                    self._retried += 1
                logger.warning(
                    f'Classification of {task.aircraft_id} ({task.start_time}) failed, '
                    f'retry {task.attempts}/{self.max_retries} in {self.retry_delay_s:.0f}s: {e}'
                )
                with self._cond:
                    if task.key not in self._by_key:
                        task.due = self.clock() + self.retry_delay_s
                        task.seq = next(self._seq)
                        self._push(task)
                        self._cond.notify()
            else:
                with self._stats_lock:
                    self._failed += 1
                self.sink.report(
                    'classification_failed',
                    f'start {task.start_time} left unknown after {task.attempts} attempts: {e}',
                    aircraft_id=task.aircraft_id,
                )

        except Exception as e:
            with self._stats_lock:
                self._failed += 1
            logger.exception(f'Classification of {task.aircraft_id} ({task.start_time}) crashed')
            self.sink.report(
                'classification_failed',
                f'start {task.start_time}: {e}',
                aircraft_id=task.aircraft_id,
            )

    # -------------------------------------------------------------------------
    # Background dispatch
    # -------------------------------------------------------------------------

    def start(self) -> None:
        """Start dispatching due tasks in the background."""
        if self._thread and self._thread.is_alive():
            logger.warning('Classification scheduler already running')
            return

        self._running = True
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix='classifier',
        )
        self._thread = threading.Thread(
            target=self._dispatch_loop,
            name='classification-scheduler',
            daemon=True,
        )
        self._thread.start()
        logger.info(f'Classification scheduler started ({self.max_workers} workers)')

    def _dispatch_loop(self) -> None:
        while True:
            with self._cond:
                if not self._running:
                    break
                timeout = None
                if self._queue:
                    timeout = max(0.0, self._queue[0].due - self.clock())
                self._cond.wait(timeout=timeout)
                if not self._running:
                    break

            for task in self._pop_due(self.clock()):
                self._executor.submit(self._execute, task)

    def shutdown(self, drain: bool = True, timeout: Optional[float] = None) -> None:
        """
        Stop the scheduler.

        With drain=True pending tasks are still run when they come due,
        waiting at most `timeout` seconds. Whatever is left afterwards
        is reported as abandoned; those flights stay unknown.
        """
        with self._cond:
            self._running = False
            self._cond.notify_all()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

        if drain:
            deadline = None if timeout is None else self.clock() + timeout
            while True:
                remaining = self.pending()
                if not remaining:
                    break
                wait = remaining[0].due - self.clock()
                if deadline is not None and self.clock() + max(wait, 0.0) > deadline:
                    break
                if wait > 0:
                    time.sleep(wait)
                self.run_pending()

        if self._executor:
            self._executor.shutdown(wait=True)
            self._executor = None

        for task in self.pending():
            self.sink.report(
                'classification_abandoned',
                f'start {task.start_time} still pending at shutdown',
                aircraft_id=task.aircraft_id,
            )
            self.cancel(task.aircraft_id, task.start_time)

        logger.info('Classification scheduler stopped')

    @property
    def stats(self) -> dict:
        """Get scheduler statistics."""
        with self._stats_lock:
            counters = {
                'completed': self._completed,
                'retried': self._retried,
                'failed': self._failed,
            }
        return {'pending': len(self.pending()), **counters, 'running': self._running}
