"""
Processing Worker.

Single consumer for observation batches. Producers (scan callbacks) call
submit_observations(); the reference stream calls submit_reference(). Each
batch is stamped with the smoothed reference at queue time and processed
strictly in arrival order by one daemon thread.
"""

import logging
import threading
from queue import Queue, Empty, Full
from typing import Iterable, Optional

from rfloc_core.proto import Observation, ObservationBatch, ReferenceFix
from rfloc_core.metrics import get_metrics
from rfloc_core.localization.reference_tracker import ReferenceTracker
from .processor import CycleProcessor

logger = logging.getLogger(__name__)


class ProcessingWorker:
    """
    Queue plus one consumer thread in front of a CycleProcessor.

    Usage:
        worker = ProcessingWorker(processor)
        worker.start()
        worker.submit_reference(gps_fix)
        worker.submit_observations(observations, time_s)
        worker.join()       # wait until the queue is drained
        worker.stop()
    """

    POLL_INTERVAL_S = 0.1

    def __init__(
        self,
        processor: CycleProcessor,
        reference_tracker: Optional[ReferenceTracker] = None,
        max_queue_size: int = 0,
    ):
        """
        Args:
            processor: Cycle processor that consumes batches
            reference_tracker: Reference smoother (new one if None)
            max_queue_size: Queue bound, 0 for unbounded
        """
        self.processor = processor
        self.reference_tracker = reference_tracker or ReferenceTracker()
        self.metrics = get_metrics()

        self._queue: Queue = Queue(maxsize=max_queue_size)
        self._reference_lock = threading.Lock()
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def start(self):
        """Start the consumer thread."""
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._run, name='rfloc-worker', daemon=True)
        self._thread.start()
        logger.info("Processing worker started")

    def stop(self, timeout: Optional[float] = None):
        """
        Stop the consumer thread. Batches still queued are not processed.

        Args:
            timeout: Seconds to wait for the thread to exit
        """
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Processing worker stopped")

    def join(self):
        """Block until every submitted batch has been processed."""
        self._queue.join()

    @property
    def is_running(self) -> bool:
        return self._running

    def submit_reference(self, fix: ReferenceFix) -> bool:
        """
        Feed the reference smoother.

        Returns:
            True if the sample was accepted
        """
        with self._reference_lock:
            return self.reference_tracker.update(fix)

    def submit_observations(self, observations: Iterable[Observation], time_s: float) -> bool:
        """
        Queue one scan for processing.

        Args:
            observations: Sightings from the scan
            time_s: Scan time (seconds)

        Returns:
            False if the queue is full and the batch was dropped
        """
        with self._reference_lock:
            reference = self.reference_tracker.snapshot(time_s)

        batch = ObservationBatch(list(observations), time_s, reference)
        try:
            self._queue.put_nowait(batch)
        except Full:
            self.metrics.increment_drop('queue_full')
            logger.warning(f"Work queue full, dropped batch of {len(batch)} observations")
            return False
        return True

    def _run(self):
        while self._running:
            try:
                batch = self._queue.get(timeout=self.POLL_INTERVAL_S)
            except Empty:
                continue
            try:
                self.processor.process(batch)
            except Exception:
                self.metrics.increment('worker_errors')
                logger.exception(f"Failed to process batch at t={batch.time_s:.3f}")
            finally:
                self._queue.task_done()
