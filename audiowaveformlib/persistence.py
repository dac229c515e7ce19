"""On-disk waveform files.

A waveform file is the raw sequence of little-endian float32 decibel
values, with no header.  Files are replaced atomically so a reader never
observes a half-written waveform.
"""

from __future__ import annotations

import logging
import os

import numpy as np

from .config import CLIPPING_THRESHOLD_DB, SILENCE_THRESHOLD_DB
from .errors import PersistenceCorruptError, PersistenceWriteError, WaveformStateError
from .utils import atomic_write_bytes, ensure_directory_exists
from .waveform import Waveform

log = logging.getLogger(__name__)

SAMPLE_DTYPE = np.dtype("<f4")


def write_waveform(waveform: Waveform, path: str) -> None:
    """Persist a completed waveform to *path*.

    Raises :class:`WaveformStateError` for an incomplete waveform and
    :class:`PersistenceWriteError` when the file cannot be written.
    """
    samples = waveform.samples
    if not waveform.is_sampling_complete or samples is None:
        raise WaveformStateError(f"can't write incomplete waveform to file {path}")

    parent = os.path.dirname(os.path.abspath(path))
    if not ensure_directory_exists(parent):
        raise PersistenceWriteError(f"Could not create parent directory {parent}")

    try:
        atomic_write_bytes(path, samples.astype(SAMPLE_DTYPE, copy=False).tobytes())
    except OSError as e:
        raise PersistenceWriteError(f"Could not write waveform to {path}: {e}") from e
    log.debug("Wrote %d samples to %s", samples.size, path)


def read_waveform(
    path: str,
    *,
    identifier: str | None = None,
    silence_threshold: float = SILENCE_THRESHOLD_DB,
    clipping_threshold: float = CLIPPING_THRESHOLD_DB,
) -> Waveform:
    """Load a completed waveform from *path*.

    Raises :class:`PersistenceCorruptError` if the file does not hold a
    whole number of finite float32 values.  A missing file raises
    ``FileNotFoundError``.
    """
    with open(path, "rb") as f:
        data = f.read()

    if len(data) % SAMPLE_DTYPE.itemsize != 0:
        raise PersistenceCorruptError(
            f"{path}: {len(data)} bytes is not a whole number of samples"
        )
    samples = np.frombuffer(data, dtype=SAMPLE_DTYPE).astype(np.float32)
    if not np.all(np.isfinite(samples)):
        raise PersistenceCorruptError(f"{path}: contains non-finite samples")

    return Waveform(
        samples,
        identifier=identifier,
        silence_threshold=silence_threshold,
        clipping_threshold=clipping_threshold,
    )
