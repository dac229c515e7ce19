from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime

from .events import EventBus
from .models import JobPriority, JobStatus, SamplingJob

log = logging.getLogger(__name__)


class SamplingScheduler:
    """Priority deque of sampling jobs drained by a single worker.

    High-priority jobs are pushed to the head, normal ones to the tail, and
    the worker always pops the head.  A high-priority job therefore runs
    before every normal job that has not started yet, but never preempts
    the job already running.  At most one job executes at any instant.

    The deque is guarded by ``lock`` (re-entrant), which callers such as
    :class:`~audiowaveformlib.cache.WaveformManager` share so that cache
    bookkeeping and submission form one critical section.  The lock is
    never held while a job runs.
    """

    def __init__(
        self,
        lock: threading.RLock | None = None,
        event_bus: EventBus | None = None,
        name: str = "AudioWaveformSampling",
        autostart: bool = True,
    ):
        self.lock = lock or threading.RLock()
        self.event_bus = event_bus
        self.name = name
        self.autostart = autostart
        self._wakeup = threading.Condition(self.lock)
        self._jobs: deque[SamplingJob] = deque()
        self._dispatch = threading.Lock()
        self._worker: threading.Thread | None = None
        self._shutdown = False

    # -- submission ---------------------------------------------------------

    def submit(self, job: SamplingJob, high_priority: bool = False) -> SamplingJob:
        """Enqueue *job* at the head (high priority) or tail of the deque."""
        job.priority = JobPriority.HIGH if high_priority else JobPriority.NORMAL
        with self._wakeup:
            if self._shutdown:
                raise RuntimeError(f"{self.name} scheduler has been shut down")
            if high_priority:
                self._jobs.appendleft(job)
            else:
                self._jobs.append(job)
            self._emit("job.submitted", job_id=job.job_id, priority=job.priority.value)
            self._wakeup.notify()
            if self.autostart:
                self._ensure_worker()
        return job

    def cancel(self, job: SamplingJob) -> None:
        """Flag *job* as cancelled; it is skipped if it has not started."""
        job.cancel()

    def pending(self) -> list[SamplingJob]:
        with self.lock:
            return list(self._jobs)

    # -- execution ----------------------------------------------------------

    def run_next(self) -> SamplingJob | None:
        """
        Pop the head job and run it to completion. Returns the finished
        job, or None if the deque is empty.
        """
        with self._dispatch:
            with self.lock:
                if not self._jobs:
                    return None
                job = self._jobs.popleft()
            self._execute(job)
            return job

    def run_all(self) -> list[SamplingJob]:
        """Drain the deque on the calling thread."""
        completed = []
        while True:
            job = self.run_next()
            if job is None:
                return completed
            completed.append(job)

    def _execute(self, job: SamplingJob) -> None:
        if job.is_cancelled:
            job.status = JobStatus.CANCELLED
            job.completed_at = datetime.now()
            log.debug("Skipping cancelled job %s", job.job_id)
            self._emit("job.skipped", job_id=job.job_id)
            # The decode never ran, so nothing else removes the alias link.
            job.source.release()
            job.on_complete(None)
            return

        job.status = JobStatus.RUNNING
        self._emit("job.start", job_id=job.job_id, path=job.source.original_path)

        samples = None
        try:
            if job.on_start is not None:
                job.on_start()
            samples = job.work(job.cancel_event)
            if samples is None:
                job.status = JobStatus.CANCELLED
            else:
                job.status = JobStatus.COMPLETED
        except Exception as e:
            job.status = JobStatus.FAILED
            job.error = str(e)
            log.warning("Sampling %s failed: %s", job.source.original_path, e)
        finally:
            job.source.release()

        job.completed_at = datetime.now()
        job.on_complete(samples)
        self._emit("job.complete", job_id=job.job_id, status=job.status.value)

    # -- worker thread ------------------------------------------------------

    def start(self) -> None:
        """Start the worker thread if it is not already running."""
        with self.lock:
            self._ensure_worker()

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker once the deque has been drained."""
        with self._wakeup:
            self._shutdown = True
            self._wakeup.notify_all()
            worker = self._worker
        if wait and worker is not None and worker is not threading.current_thread():
            worker.join()

    def _ensure_worker(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            return
        self._worker = threading.Thread(target=self._run_worker, name=self.name, daemon=True)
        self._worker.start()

    def _run_worker(self) -> None:
        while True:
            with self._wakeup:
                while not self._jobs and not self._shutdown:
                    self._wakeup.wait()
                if not self._jobs:
                    return
            try:
                self.run_next()
            except Exception:
                log.exception("Unexpected error in %s worker", self.name)

    def _emit(self, event_type: str, **data) -> None:
        if self.event_bus:
            self.event_bus.emit(event_type, **data)
