from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable
from uuid import uuid4

import numpy as np

from .audio import AudioSource


class WaveformState(Enum):
    PENDING = "pending"
    SAMPLING = "sampling"
    COMPLETE = "complete"
    FAILED = "failed"


class JobPriority(Enum):
    HIGH = "high"
    NORMAL = "normal"


class JobStatus(Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(eq=False)
class SamplingJob:
    """A single decode of one audio source, consumed exactly once.

    Attributes:
        source:      The opened audio source the job decodes.
        work:        Callable doing the decode.  Receives the job's
                     cancellation event and returns the decibel samples,
                     or None when it stopped because of cancellation.
        on_complete: Continuation receiving the samples (None on failure
                     or cancellation).  Always invoked once per job.
        on_start:    Optional hook invoked right before ``work`` runs.
    """
    source: AudioSource
    work: Callable[[threading.Event], np.ndarray | None]
    on_complete: Callable[[np.ndarray | None], Any]
    on_start: Callable[[], Any] | None = None
    priority: JobPriority = JobPriority.NORMAL
    job_id: str = field(default_factory=lambda: uuid4().hex)
    status: JobStatus = JobStatus.PENDING
    error: str | None = None
    created_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
    _cancelled: threading.Event = field(default_factory=threading.Event, repr=False)

    def cancel(self) -> None:
        """Flag the job as cancelled.

        A job that has not started yet is skipped by the scheduler; a
        running job stops at its next buffer read and discards its output.
        """
        self._cancelled.set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancelled
