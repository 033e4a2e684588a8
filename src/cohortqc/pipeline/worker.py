"""Cohort worker thread.

Pulls cohort names from a shared queue and runs the full stage list on each
one. Workers never share tables: each cohort is owned by exactly one worker
from dequeue to result.
"""

import logging
import queue
import threading
from typing import Callable, Dict, Optional

__all__ = ['CohortWorker']

logger = logging.getLogger(__name__)


class CohortWorker(threading.Thread):
    """Runs ``run_cohort(name)`` for cohorts taken from ``input_queue``.

    The worker exits when the queue is empty, when ``stop()`` is called, or
    when ``abort_event`` is set by any worker. The first error stops the
    worker and is kept on ``error`` for the orchestrator to re-raise.

    Parameters
    ----------
    input_queue : queue.Queue
        Cohort names, fully populated before workers start.
    run_cohort : callable
        ``run_cohort(name) -> result`` for a single cohort.
    results : dict
        Shared mapping cohort -> result, written under ``results_lock``.
    results_lock : threading.Lock
    abort_event : threading.Event
        Set on first failure; no new cohort is started afterwards.
    """

    def __init__(self, input_queue: queue.Queue, run_cohort: Callable,
                 results: Dict, results_lock: threading.Lock,
                 abort_event: threading.Event, name: str = "CohortWorker"):
        super().__init__(daemon=True, name=name)
        self.input_queue = input_queue
        self.run_cohort = run_cohort
        self.results = results
        self.results_lock = results_lock
        self.abort_event = abort_event
        self.error: Optional[BaseException] = None
        self._stop_event = threading.Event()

    def stop(self):
        """Signal worker to stop after the current cohort."""
        self._stop_event.set()

    def stopped(self):
        return self._stop_event.is_set() or self.abort_event.is_set()

    def run(self):
        while not self.stopped():
            try:
                cohort = self.input_queue.get_nowait()
            except queue.Empty:
                break

            try:
                result = self.run_cohort(cohort)
                with self.results_lock:
                    self.results[cohort] = result
            except Exception as e:
                self.error = e
                self.abort_event.set()
                logger.error("%s: cohort '%s' failed, aborting run", self.name, cohort)
            finally:
                self.input_queue.task_done()

        logger.debug("%s stopped", self.name)
