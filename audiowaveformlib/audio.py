from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import soundfile as sf

from .config import DEFAULT_EXTENSION_OVERRIDES
from .errors import UnreadableAssetError
from .utils import delete_file_if_exists, temporary_file_path

log = logging.getLogger(__name__)

# Files with these extensions are accepted as audio.  libsndfile cannot decode
# AAC, so .m4a/.aac only sample when they actually hold another format.
AUDIO_EXTENSIONS = frozenset({
    ".wav", ".wave", ".aif", ".aiff", ".aifc", ".flac",
    ".ogg", ".oga", ".opus", ".mp3", ".m4a", ".aac", ".caf",
})


def format_duration(seconds: float) -> str:
    if seconds <= 0:
        return "00:00.000"
    m = int(seconds // 60)
    s = int(seconds % 60)
    ms = int((seconds % 1) * 1000)
    return f"{m:02d}:{s:02d}.{ms:03d}"


def is_audio_file(
    path: str,
    content_type: str | None = None,
    extensions: frozenset[str] | set[str] | list[str] = AUDIO_EXTENSIONS,
) -> bool:
    """True if *path* should be treated as audio.

    A content type, when known, wins over the file extension.
    """
    if content_type:
        return content_type.strip().lower().startswith("audio/")
    ext = os.path.splitext(path)[1].lower()
    return ext in {e.lower() for e in extensions}


# ---------------------------------------------------------------------------
# Readable audio sources
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AudioSource:
    """An audio file that libsndfile has been able to probe.

    Attributes:
        path:          Path to open for decoding.  Differs from
                       ``original_path`` when the file was only readable
                       through an alias with another extension.
        original_path: The caller's path.
        samplerate:    Frames per second.
        channels:      Interleaved channels per frame.
        frames:        Total frames (as reported by the container).
        duration_sec:  Length in seconds.
        format:        libsndfile major format, e.g. ``"WAV"``.
        subtype:       libsndfile subtype, e.g. ``"PCM_16"``.
    """
    path: str
    original_path: str
    samplerate: int
    channels: int
    frames: int
    duration_sec: float
    format: str = ""
    subtype: str = ""

    @property
    def alias_path(self) -> str | None:
        return self.path if self.path != self.original_path else None

    @property
    def total_samples(self) -> int:
        """Interleaved samples across all channels."""
        return self.frames * self.channels

    def release(self) -> None:
        """Remove the alias link, if one was created for this source."""
        alias = self.alias_path
        if alias is not None and delete_file_if_exists(alias):
            log.debug("Removed audio alias %s", alias)


def _probe(path: str, original_path: str) -> AudioSource:
    try:
        info = sf.info(path)
    except (RuntimeError, OSError) as e:
        # sf.LibsndfileError derives from RuntimeError
        raise UnreadableAssetError(f"Cannot open audio file {original_path}: {e}") from e
    return AudioSource(
        path=path,
        original_path=original_path,
        samplerate=int(info.samplerate),
        channels=int(info.channels),
        frames=int(info.frames),
        duration_sec=float(info.duration),
        format=info.format,
        subtype=info.subtype,
    )


def open_audio_source(
    path: str,
    extension_overrides: dict[str, str] | None = None,
) -> AudioSource:
    """Probe *path* and return an :class:`AudioSource`.

    If the file cannot be read and its extension is one that is commonly
    mislabelled (see ``extension_overrides``), a symlink carrying the
    corrected extension is created in the temp directory and probed
    instead.  The link is owned by the returned source; call
    :meth:`AudioSource.release` when done.

    Raises :class:`UnreadableAssetError`.
    """
    if not os.path.isfile(path):
        raise UnreadableAssetError(f"Audio file not found: {path}")

    try:
        return _probe(path, path)
    except UnreadableAssetError:
        overrides = DEFAULT_EXTENSION_OVERRIDES if extension_overrides is None else extension_overrides
        ext = os.path.splitext(path)[1].lstrip(".").lower()
        override = overrides.get(ext)
        if override is None:
            raise

    alias = temporary_file_path(override)
    try:
        os.symlink(os.path.abspath(path), alias)
    except OSError as e:
        raise UnreadableAssetError(f"Failed to create audio alias for {path}: {e}") from e

    log.debug("Retrying %s as .%s through %s", path, override, alias)
    try:
        return _probe(alias, path)
    except UnreadableAssetError:
        delete_file_if_exists(alias)
        raise
