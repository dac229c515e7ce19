import tempfile
from pathlib import Path

import numpy as np
import pytest
import soundfile as sf

from audiowaveformlib.audio import AudioSource


@pytest.fixture
def write_wav(tmp_path: Path):
    """Write a 16-bit WAV file and return its path as a string."""

    def _write(
        name: str = "tone.wav",
        *,
        seconds: float = 1.0,
        samplerate: int = 8000,
        channels: int = 1,
        amplitude: int = 1000,
        data: np.ndarray | None = None,
    ) -> str:
        path = tmp_path / name
        if data is None:
            frames = int(seconds * samplerate)
            data = np.full((frames, channels), amplitude, dtype=np.int16)
        sf.write(str(path), data, samplerate, subtype="PCM_16", format="WAV")
        return str(path)

    return _write


@pytest.fixture
def dummy_source() -> AudioSource:
    return AudioSource(
        path="dummy.wav",
        original_path="dummy.wav",
        samplerate=8000,
        channels=1,
        frames=0,
        duration_sec=0.0,
    )


@pytest.fixture
def mp3_unreadable(monkeypatch):
    """Make libsndfile refuse anything named *.mp3 or *.flac."""
    real_info = sf.info

    def picky_info(path, *args, **kwargs):
        if str(path).endswith((".mp3", ".flac")):
            raise RuntimeError("Format not recognised.")
        return real_info(path, *args, **kwargs)

    monkeypatch.setattr(sf, "info", picky_info)


@pytest.fixture
def alias_dir(tmp_path: Path, monkeypatch) -> Path:
    """Private temp directory, so alias links can be looked for."""
    path = tmp_path / "aliases"
    path.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(path))
    return path
