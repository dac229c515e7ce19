from __future__ import annotations

import inspect
import logging
import threading
import weakref
from typing import TYPE_CHECKING, Any, Callable

import numpy as np

from .config import CLIPPING_THRESHOLD_DB, SILENCE_THRESHOLD_DB
from .dsp import normalize_levels
from .errors import WaveformStateError
from .models import SamplingJob, WaveformState

if TYPE_CHECKING:
    from .reader import SampleReader
    from .scheduler import SamplingScheduler

log = logging.getLogger(__name__)

CompletionObserver = Callable[["Waveform"], Any]

_FINISHED = (WaveformState.COMPLETE, WaveformState.FAILED)


def _weak_observer(observer: CompletionObserver) -> weakref.ref:
    if inspect.ismethod(observer):
        return weakref.WeakMethod(observer)
    return weakref.ref(observer)


class Waveform:
    """The decibel profile of one audio file.

    A waveform starts ``PENDING``, moves to ``SAMPLING`` when the worker
    picks up its job and ends ``COMPLETE`` or ``FAILED``.  Waveforms loaded
    from disk start out ``COMPLETE``.  ``samples`` is set at most once and
    is a read-only array, so it can be shared between threads as is.

    Completion observers are held weakly: keep a reference to them for as
    long as you want to be notified.
    """

    def __init__(
        self,
        samples: np.ndarray | list[float] | None = None,
        *,
        identifier: str | None = None,
        silence_threshold: float = SILENCE_THRESHOLD_DB,
        clipping_threshold: float = CLIPPING_THRESHOLD_DB,
    ):
        self.identifier = identifier
        self.silence_threshold = silence_threshold
        self.clipping_threshold = clipping_threshold
        self._lock = threading.Lock()
        self._observers: list[weakref.ref] = []
        self._job_ref: weakref.ref | None = None
        self._finalizer: weakref.finalize | None = None

        if samples is None:
            self._samples: np.ndarray | None = None
            self._state = WaveformState.PENDING
        else:
            self._samples = _frozen(samples)
            self._state = WaveformState.COMPLETE

    def __repr__(self) -> str:
        count = None if self._samples is None else self._samples.size
        return f"Waveform(identifier={self.identifier!r}, state={self._state.value}, samples={count})"

    @property
    def state(self) -> WaveformState:
        return self._state

    @property
    def samples(self) -> np.ndarray | None:
        return self._samples

    @property
    def is_sampling_complete(self) -> bool:
        return self._state is WaveformState.COMPLETE

    @property
    def is_finished(self) -> bool:
        return self._state in _FINISHED

    # -- display ------------------------------------------------------------

    def normalized_levels(self, sample_count: int) -> np.ndarray | None:
        """Levels in ``[0, 1]`` for drawing *sample_count* bars.

        None until sampling is complete; empty for ``sample_count <= 0``.
        """
        samples = self._samples
        if not self.is_sampling_complete or samples is None:
            return None
        return normalize_levels(
            samples, sample_count, self.silence_threshold, self.clipping_threshold,
        )

    # -- sampling -----------------------------------------------------------

    def begin_sampling(
        self,
        reader: SampleReader,
        scheduler: SamplingScheduler,
        high_priority: bool = False,
    ) -> SamplingJob:
        """Submit a job decoding *reader*'s source into this waveform."""
        with self._lock:
            if self._state is not WaveformState.PENDING or self._job_ref is not None:
                raise WaveformStateError(f"{self!r} is already sampling or finished")

        waveform_ref = weakref.ref(self)

        def on_start() -> None:
            waveform = waveform_ref()
            if waveform is not None:
                waveform._mark_sampling()

        def on_complete(samples: np.ndarray | None) -> None:
            waveform = waveform_ref()
            if waveform is not None:
                waveform._finish(samples)

        job = SamplingJob(
            source=reader.source,
            work=reader.read,
            on_complete=on_complete,
            on_start=on_start,
        )
        self._job_ref = weakref.ref(job)
        # Abandoned waveforms should not keep the worker busy.
        self._finalizer = weakref.finalize(self, job.cancel)
        scheduler.submit(job, high_priority=high_priority)
        return job

    def cancel_sampling(self) -> bool:
        """Cancel the in-flight job. Returns False if there is none."""
        job = self._job_ref() if self._job_ref is not None else None
        if job is None or self.is_finished:
            return False
        job.cancel()
        return True

    def _mark_sampling(self) -> None:
        with self._lock:
            if self._state is WaveformState.PENDING:
                self._state = WaveformState.SAMPLING

    def _finish(self, samples: np.ndarray | None) -> None:
        with self._lock:
            if self._state in _FINISHED:
                log.warning("%r finished twice", self)
                return
            if samples is None:
                self._state = WaveformState.FAILED
            else:
                self._samples = _frozen(samples)
                self._state = WaveformState.COMPLETE
            observers, self._observers = self._observers, []
        if self._finalizer is not None:
            self._finalizer.detach()

        for ref in observers:
            observer = ref()
            if observer is None:
                continue
            try:
                observer(self)
            except Exception:
                log.exception("Completion observer %r of %r failed", observer, self)

    # -- observation --------------------------------------------------------

    def add_completion_observer(self, observer: CompletionObserver) -> None:
        """Call *observer(waveform)* once sampling finishes.

        If sampling has already finished the observer is called right away,
        on the calling thread.
        """
        with self._lock:
            if self._state not in _FINISHED:
                self._observers.append(_weak_observer(observer))
                return
        observer(self)


def _frozen(samples: np.ndarray | list[float]) -> np.ndarray:
    arr = np.asarray(samples, dtype=np.float32)
    if arr.flags.writeable:
        arr = arr.copy()
        arr.setflags(write=False)
    return arr
