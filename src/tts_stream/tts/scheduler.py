"""
Job Scheduler.

A single background worker that runs synthesis jobs in FIFO order, one
step at a time. It guarantees that at most one backend call is in flight
and that no step of a later job starts before an earlier job finished or
was canceled.

How It Works:
    1. enqueue() appends the job and notifies the worker
    2. The worker pops the head job and calls job.progress(backend)
       until the job is completed or canceled
    3. When the queue is empty the worker blocks on a condition variable
       (with a timeout of idle_wait_s) until a job arrives

    Timeline:
        enqueue(A), enqueue(B)
        worker: A.step0, A.step1, A.step2, B.step0, B.step1
        A.cancel() during A.step1 -> A.step1 finishes, result dropped,
                                     worker moves to B

Failure Policy:
    A backend error is never retried. It propagates out of progress(),
    is logged, and on_error(job, exc) decides what happens to the job;
    the default cancels it. Either way the worker stops driving that job
    and moves on to the next one.

Thread Safety:
    - The queue is a deque guarded by a threading.Condition
    - Stats counters share the same condition lock

Usage:
    scheduler = JobScheduler(backend)
    job = scheduler.enqueue(Job.create(segments, voice))
    ...
    scheduler.dispose()

See Also:
    - tts/job.py: Job.progress() and the job events
    - services/speech_service.py: Builds jobs and hands steps to playback
"""
from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Optional

from tts_stream.core.config import Defaults
from tts_stream.core.errors import EngineDisposedError
from tts_stream.core.logging import debug, fail, get_logger, info, set_job_id, verbose
from tts_stream.core.metrics import metrics
from tts_stream.tts.backend import InferenceBackend
from tts_stream.tts.job import Job, JobState

_LOG = get_logger("tts-stream.scheduler")

ErrorHandler = Callable[[Job, BaseException], None]


@dataclass
class SchedulerStats:
    """Statistics for the job scheduler."""
    queued: int
    active_job: Optional[str]
    jobs_completed: int
    jobs_canceled: int
    jobs_failed: int
    disposed: bool


def cancel_on_error(job: Job, exc: BaseException) -> None:
    """Default error handler: cancel the job whose step failed."""
    job.cancel()


class JobScheduler:
    """
    Single-consumer FIFO scheduler for synthesis jobs.

    Args:
        backend: Inference backend shared by all jobs.
        idle_wait_s: Wait timeout while the queue is empty.
        on_error: Called with (job, exception) when a step fails.
    """

    def __init__(
        self,
        backend: InferenceBackend,
        idle_wait_s: float = Defaults.SCHEDULER_IDLE_WAIT_S,
        on_error: Optional[ErrorHandler] = None,
    ):
        self.backend = backend
        self._idle_wait_s = idle_wait_s
        self._on_error = on_error or cancel_on_error

        self._cond = threading.Condition()
        self._queue: Deque[Job] = deque()
        self._active: Optional[Job] = None
        self._disposed = False

        self._jobs_completed = 0
        self._jobs_canceled = 0
        self._jobs_failed = 0

        self._thread = threading.Thread(target=self._run, name="tts-stream-scheduler", daemon=True)
        self._thread.start()
        verbose(_LOG, "scheduler_started", backend=backend.name)

    # ─────────────────────────────────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────────────────────────────────

    def enqueue(self, job: Job) -> Job:
        """
        Append a job to the queue. Non-blocking.

        Raises:
            EngineDisposedError: If the scheduler was disposed.
        """
        with self._cond:
            if self._disposed:
                raise EngineDisposedError()
            self._queue.append(job)
            depth = len(self._queue)
            self._cond.notify()
        metrics.set_scheduler_queue_depth(depth)
        debug(_LOG, "job_enqueued", job=job.id, steps=len(job.steps), queued=depth)
        return job

    @property
    def active_job(self) -> Optional[Job]:
        """The job the worker is currently advancing, if any."""
        return self._active

    @property
    def disposed(self) -> bool:
        return self._disposed

    def stats(self) -> SchedulerStats:
        with self._cond:
            return SchedulerStats(
                queued=len(self._queue),
                active_job=self._active.id if self._active else None,
                jobs_completed=self._jobs_completed,
                jobs_canceled=self._jobs_canceled,
                jobs_failed=self._jobs_failed,
                disposed=self._disposed,
            )

    def dispose(self, timeout: Optional[float] = 5.0) -> None:
        """
        Cancel all queued jobs and the active one, stop the worker and
        close the backend. Further enqueue() calls raise.
        """
        with self._cond:
            if self._disposed:
                return
            self._disposed = True
            pending = list(self._queue)
            self._queue.clear()
            active = self._active
            self._cond.notify_all()

        for job in pending:
            job.cancel()
        if active is not None:
            active.cancel()

        if threading.current_thread() is not self._thread:
            self._thread.join(timeout)
        self.backend.close()
        metrics.set_scheduler_queue_depth(0)
        info(_LOG, "scheduler_disposed", canceled=len(pending) + (1 if active else 0))

    # ─────────────────────────────────────────────────────────────────────────
    # Worker
    # ─────────────────────────────────────────────────────────────────────────

    def _next_job(self) -> Optional[Job]:
        with self._cond:
            while not self._queue and not self._disposed:
                self._cond.wait(self._idle_wait_s)
            if self._disposed:
                return None
            job = self._queue.popleft()
            self._active = job
            depth = len(self._queue)
        metrics.set_scheduler_queue_depth(depth)
        return job

    def _run(self) -> None:
        while True:
            job = self._next_job()
            if job is None:
                break
            set_job_id(job.id)
            try:
                self._drive(job)
            finally:
                with self._cond:
                    self._active = None
                set_job_id("-")

    def _drive(self, job: Job) -> None:
        failed = False
        while not job.is_done:
            try:
                job.progress(self.backend)
            except Exception as exc:
                failed = True
                fail(_LOG, "step_failed", job=job.id, step=job.step_index, error=str(exc))
                try:
                    self._on_error(job, exc)
                except Exception as handler_exc:
                    fail(_LOG, "error_handler_failed", job=job.id, error=str(handler_exc))
                    job.cancel()
                # Failed steps are not retried; the job is left to on_error
                break

        status = "failed" if failed else job.state.value
        with self._cond:
            if failed:
                self._jobs_failed += 1
            elif job.state is JobState.COMPLETED:
                self._jobs_completed += 1
            else:
                self._jobs_canceled += 1
        metrics.record_job(status)
        verbose(_LOG, "job_finished", job=job.id, status=status, steps=len(job.steps))
