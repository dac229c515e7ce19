from __future__ import annotations


class WaveformError(Exception):
    """Base class for every error raised while building a waveform."""
    pass


class InvalidInputError(WaveformError):
    """Empty identifier, missing paths, or a file that is not audio."""
    pass


class UnreadableAssetError(WaveformError):
    """The audio file cannot be opened, even through an extension alias."""
    pass


class DurationExceededError(WaveformError):
    """The audio is longer than the configured sampling ceiling."""
    pass


class DecodeError(WaveformError):
    """Decoding failed part way through the stream."""
    pass


class PersistenceCorruptError(WaveformError):
    """A persisted waveform file could not be parsed."""
    pass


class PersistenceWriteError(WaveformError):
    """A completed waveform could not be written to disk."""
    pass


class WaveformStateError(WaveformError):
    """Operation requires a waveform in a different state."""
    pass
