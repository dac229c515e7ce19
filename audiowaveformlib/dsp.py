"""Pure sample transforms: decibel conversion, downsampling, normalization."""

from __future__ import annotations

import math

import numpy as np

from .config import CLIPPING_THRESHOLD_DB, SILENCE_THRESHOLD_DB

# maximum amplitude storable in int16 = 0 dB (loudest)
INT16_FULL_SCALE = float(np.iinfo(np.int16).max)


# ---------------------------------------------------------------------------
# Decibel conversion
# ---------------------------------------------------------------------------

def amplitudes_to_decibels(
    pcm: np.ndarray,
    silence_threshold: float = SILENCE_THRESHOLD_DB,
    clipping_threshold: float = CLIPPING_THRESHOLD_DB,
) -> np.ndarray:
    """Convert signed 16-bit amplitudes to clipped decibels.

    Absolute value, then ``20 * log10(|x| / 32767)``, then clip into
    ``[silence_threshold, clipping_threshold]``.  Returns float32.
    """
    # int32 so that abs(-32768) does not wrap around
    magnitudes = np.abs(np.asarray(pcm, dtype=np.int32)).astype(np.float64)
    with np.errstate(divide="ignore"):
        decibels = 20.0 * np.log10(magnitudes / INT16_FULL_SCALE)
    return np.clip(decibels, silence_threshold, clipping_threshold).astype(np.float32)


# ---------------------------------------------------------------------------
# Downsampling
# ---------------------------------------------------------------------------

def downsample(samples: np.ndarray, target_count: int) -> np.ndarray:
    """Reduce *samples* to *target_count* points by weighted averaging.

    Each output point averages ``ceil(len / target_count)`` consecutive
    inputs starting at ``floor(i * len / target_count)``.  When the length
    does not divide evenly, the first and last weight of every group are
    blended with the weight of the fractional remainder, which softens the
    group boundaries a little.  This is meant for display resolution, not
    for faithful resampling.
    """
    data = np.asarray(samples, dtype=np.float32)

    if target_count <= 0:
        return np.empty(0, dtype=np.float32)
    if target_count >= data.size:
        return data

    distribution = data.size / target_count
    group_length = math.ceil(distribution)

    average = 1.0 / distribution
    weights = np.full(group_length, average, dtype=np.float64)
    if data.size % target_count != 0:
        remainder = math.modf(distribution)[0] * average
        bookend = (average + remainder) / 2.0
        weights[0] = bookend
        weights[-1] = bookend

    starts = np.floor(np.arange(target_count) * distribution).astype(np.intp)
    np.minimum(starts, data.size - group_length, out=starts)
    groups = data[starts[:, None] + np.arange(group_length)]
    return (groups @ weights).astype(np.float32)


# ---------------------------------------------------------------------------
# Display normalization
# ---------------------------------------------------------------------------

def inverse_lerp(
    values: np.ndarray,
    lower: float,
    upper: float,
) -> np.ndarray:
    """Map ``[lower, upper]`` onto ``[0, 1]``, clamping values outside it."""
    scaled = (np.asarray(values, dtype=np.float32) - lower) / (upper - lower)
    return np.clip(scaled, 0.0, 1.0).astype(np.float32)


def normalize_levels(
    decibels: np.ndarray,
    sample_count: int,
    silence_threshold: float = SILENCE_THRESHOLD_DB,
    clipping_threshold: float = CLIPPING_THRESHOLD_DB,
) -> np.ndarray:
    """Levels in ``[0, 1]`` for drawing, 0 being silence.

    Downsamples first when fewer points than available are requested.
    """
    if sample_count <= 0:
        return np.empty(0, dtype=np.float32)
    data = np.asarray(decibels, dtype=np.float32)
    if sample_count < data.size:
        data = downsample(data, sample_count)
    return inverse_lerp(data, silence_threshold, clipping_threshold)
