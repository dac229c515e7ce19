from __future__ import annotations

import logging
import threading
from typing import Any

import numpy as np
import soundfile as sf

from .audio import AudioSource, format_duration
from .config import (
    CLIPPING_THRESHOLD_DB,
    DEFAULT_MAX_DURATION_SEC,
    DEFAULT_READ_BLOCK_FRAMES,
    DEFAULT_SAMPLE_COUNT,
    SILENCE_THRESHOLD_DB,
)
from .dsp import amplitudes_to_decibels, downsample
from .errors import DecodeError, DurationExceededError, UnreadableAssetError

log = logging.getLogger(__name__)


class SampleReader:
    """Decodes an :class:`AudioSource` into decibel samples.

    The first (and, for libsndfile, only) stream is decoded as interleaved
    signed 16-bit PCM, so channels are averaged together by the grouping.
    Decoded samples accumulate in a rolling buffer; every time enough of
    them form one or more complete groups, those groups are converted to
    decibels, averaged down to one point each and dropped from the buffer.
    The group size targets ``sample_count`` points for the whole file.
    """

    def __init__(
        self,
        source: AudioSource,
        *,
        sample_count: int = DEFAULT_SAMPLE_COUNT,
        silence_threshold: float = SILENCE_THRESHOLD_DB,
        clipping_threshold: float = CLIPPING_THRESHOLD_DB,
        block_frames: int = DEFAULT_READ_BLOCK_FRAMES,
        max_duration_sec: float = DEFAULT_MAX_DURATION_SEC,
    ):
        self.source = source
        self.sample_count = sample_count
        self.silence_threshold = silence_threshold
        self.clipping_threshold = clipping_threshold
        self.block_frames = block_frames
        self.max_duration_sec = max_duration_sec

    @classmethod
    def from_config(cls, source: AudioSource, config: dict[str, Any]) -> SampleReader:
        return cls(
            source,
            sample_count=config.get("sample_count", DEFAULT_SAMPLE_COUNT),
            silence_threshold=config.get("silence_threshold_db", SILENCE_THRESHOLD_DB),
            clipping_threshold=config.get("clipping_threshold_db", CLIPPING_THRESHOLD_DB),
            block_frames=config.get("read_block_frames", DEFAULT_READ_BLOCK_FRAMES),
            max_duration_sec=config.get("max_duration_sec", DEFAULT_MAX_DURATION_SEC),
        )

    @property
    def group_size(self) -> int:
        """Raw interleaved samples folded into each output point."""
        return max(1, self.source.total_samples // self.sample_count)

    def read(self, cancelled: threading.Event | None = None) -> np.ndarray | None:
        """Decode the whole source.

        Returns a read-only float32 array, or None if *cancelled* was set
        at any point (a truncated waveform is never returned).

        Raises :class:`DurationExceededError`, :class:`UnreadableAssetError`
        or :class:`DecodeError`.
        """
        if cancelled is None:
            cancelled = threading.Event()
        try:
            samples = self._read_decibels(cancelled)
        finally:
            self.source.release()

        # If the job was cancelled the samples may be incomplete.
        if cancelled.is_set():
            log.debug("Sampling of %s cancelled", self.source.original_path)
            return None

        samples.setflags(write=False)
        return samples

    def _read_decibels(self, cancelled: threading.Event) -> np.ndarray:
        source = self.source
        if source.duration_sec > self.max_duration_sec:
            raise DurationExceededError(
                f"{source.original_path} is {format_duration(source.duration_sec)} long, "
                f"limit is {format_duration(self.max_duration_sec)}"
            )
        if source.channels <= 0:
            raise UnreadableAssetError(f"Audio file has no tracks: {source.original_path}")

        group_size = self.group_size
        chunks: list[np.ndarray] = []
        pending = np.empty(0, dtype=np.int16)

        try:
            with sf.SoundFile(source.path) as f:
                while not cancelled.is_set():
                    block = f.read(self.block_frames, dtype="int16", always_2d=True)
                    if block.size == 0:
                        break
                    pending = np.concatenate((pending, block.reshape(-1)))

                    groups = pending.size // group_size
                    if groups == 0:
                        continue
                    consumed = groups * group_size
                    decibels = amplitudes_to_decibels(
                        pending[:consumed],
                        self.silence_threshold,
                        self.clipping_threshold,
                    )
                    chunks.append(downsample(decibels, groups))
                    pending = pending[consumed:]
        except (RuntimeError, OSError) as e:
            raise DecodeError(f"Failed decoding {source.original_path}: {e}") from e

        if not chunks:
            return np.empty(0, dtype=np.float32)
        return np.concatenate(chunks).astype(np.float32, copy=False)
