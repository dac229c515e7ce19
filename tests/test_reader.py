import gc
import math
import os
import threading

import numpy as np
import pytest
import soundfile as sf

from audiowaveformlib.audio import AudioSource, open_audio_source
from audiowaveformlib.cache import WaveformManager
from audiowaveformlib.errors import DecodeError, DurationExceededError, UnreadableAssetError
from audiowaveformlib.models import JobStatus, WaveformState
from audiowaveformlib.reader import SampleReader
from audiowaveformlib.scheduler import SamplingScheduler
from audiowaveformlib.waveform import Waveform


class CancelAfter:
    """Stands in for a threading.Event that becomes set after *n* checks."""

    def __init__(self, n: int):
        self.remaining = n

    def is_set(self) -> bool:
        self.remaining -= 1
        return self.remaining < 0


def test_constant_tone_gives_flat_profile(write_wav) -> None:
    source = open_audio_source(write_wav(amplitude=1000))
    samples = SampleReader(source).read()

    assert 0 < len(samples) <= 100
    expected = 20 * math.log10(1000 / 32767)
    np.testing.assert_allclose(samples, expected, atol=1e-3)

    levels = Waveform(samples).normalized_levels(len(samples))
    np.testing.assert_allclose(levels, levels[0], atol=1e-5)


def test_output_is_read_only_float32(write_wav) -> None:
    samples = SampleReader(open_audio_source(write_wav())).read()
    assert samples.dtype == np.float32
    assert not samples.flags.writeable


def test_group_size_targets_sample_count(write_wav) -> None:
    source = open_audio_source(write_wav(seconds=1.0, samplerate=8000, channels=2))
    reader = SampleReader(source, sample_count=100, block_frames=333)
    assert reader.group_size == 160
    assert len(reader.read()) == 100


def test_profile_follows_loudness(write_wav) -> None:
    data = np.concatenate([
        np.zeros(4000, dtype=np.int16),
        np.full(4000, 20000, dtype=np.int16),
    ]).reshape(-1, 1)
    samples = SampleReader(open_audio_source(write_wav(data=data))).read()
    assert samples[0] == pytest.approx(-50.0)
    assert samples[-1] == pytest.approx(-20.0)


def test_short_file_keeps_one_point_per_sample(write_wav) -> None:
    samples = SampleReader(open_audio_source(write_wav(seconds=0.005))).read()
    assert len(samples) == 40


def test_too_long_audio_is_rejected(write_wav) -> None:
    reader = SampleReader(open_audio_source(write_wav(seconds=1.0)), max_duration_sec=0.5)
    with pytest.raises(DurationExceededError):
        reader.read()


def test_cancel_before_reading_returns_nothing(write_wav) -> None:
    cancelled = threading.Event()
    cancelled.set()
    assert SampleReader(open_audio_source(write_wav())).read(cancelled) is None


def test_cancel_mid_stream_discards_partial_output(write_wav) -> None:
    reader = SampleReader(open_audio_source(write_wav()), block_frames=512)
    assert reader.read(CancelAfter(3)) is None


def test_alias_link_is_released_after_read(write_wav, mp3_unreadable, alias_dir) -> None:
    source = open_audio_source(write_wav("voice.mp3"))
    assert source.alias_path is not None

    SampleReader(source).read()
    assert not os.path.lexists(source.alias_path)


def _manager() -> WaveformManager:
    return WaveformManager(scheduler=SamplingScheduler(autostart=False))


def test_alias_link_is_released_when_job_is_cancelled_before_start(
    write_wav, mp3_unreadable, alias_dir, tmp_path
) -> None:
    manager = _manager()
    waveform = manager.get_or_build_waveform(
        "a", write_wav("voice.mp3"), str(tmp_path / "a.waveform"),
    )
    assert len(list(alias_dir.iterdir())) == 1

    assert manager.cancel_sampling("a")
    manager.scheduler.run_all()

    assert waveform.state is WaveformState.FAILED
    assert list(alias_dir.iterdir()) == []


def test_alias_link_is_released_when_waveform_is_abandoned(
    write_wav, mp3_unreadable, alias_dir
) -> None:
    scheduler = SamplingScheduler(autostart=False)
    source = open_audio_source(write_wav("voice.mp3"))
    waveform = Waveform(identifier="a")
    job = waveform.begin_sampling(SampleReader(source), scheduler)

    del waveform
    gc.collect()
    assert job.is_cancelled

    scheduler.run_all()
    assert job.status is JobStatus.CANCELLED
    assert list(alias_dir.iterdir()) == []


def test_source_without_channels_is_unreadable() -> None:
    source = AudioSource(
        path="empty.wav",
        original_path="empty.wav",
        samplerate=8000,
        channels=0,
        frames=0,
        duration_sec=0.0,
    )
    with pytest.raises(UnreadableAssetError):
        SampleReader(source).read()


@pytest.fixture
def fails_after_first_block(monkeypatch):
    """Make SoundFile.read fail on every block after the first one."""
    real_read = sf.SoundFile.read
    calls = {"n": 0}

    def flaky_read(self, *args, **kwargs):
        calls["n"] += 1
        if calls["n"] > 1:
            raise RuntimeError("Internal error in decoder.")
        return real_read(self, *args, **kwargs)

    monkeypatch.setattr(sf.SoundFile, "read", flaky_read)


def test_decode_failure_mid_stream_raises(write_wav, fails_after_first_block) -> None:
    reader = SampleReader(open_audio_source(write_wav()), block_frames=512)
    with pytest.raises(DecodeError):
        reader.read()


def test_decode_failure_mid_stream_fails_waveform_without_writing(
    write_wav, fails_after_first_block, tmp_path
) -> None:
    manager = WaveformManager(
        config={"read_block_frames": 512},
        scheduler=SamplingScheduler(autostart=False),
    )
    waveform_path = tmp_path / "a.waveform"
    waveform = manager.get_or_build_waveform("a", write_wav(), str(waveform_path))

    jobs = manager.scheduler.run_all()

    assert jobs[0].status is JobStatus.FAILED
    assert waveform.state is WaveformState.FAILED
    assert waveform.samples is None
    assert not waveform_path.exists()
    assert manager.pending_write_backs() == 0
