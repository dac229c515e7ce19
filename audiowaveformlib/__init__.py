from ._version import __version__
from .models import (
    WaveformState,
    JobPriority,
    JobStatus,
    SamplingJob,
)
from .audio import AudioSource, AUDIO_EXTENSIONS, is_audio_file, open_audio_source
from .config import (
    default_config,
    merge_configs,
    validate_config,
    validate_config_fields,
    load_preset,
    save_preset,
    ConfigError,
    ConfigFieldError,
    ParamSpec,
    WAVEFORM_PARAMS,
)
from .dsp import amplitudes_to_decibels, downsample, normalize_levels
from .errors import (
    WaveformError,
    InvalidInputError,
    UnreadableAssetError,
    DurationExceededError,
    DecodeError,
    PersistenceCorruptError,
    PersistenceWriteError,
    WaveformStateError,
)
from .events import EventBus
from .waveform import Waveform
from .reader import SampleReader
from .persistence import read_waveform, write_waveform
from .scheduler import SamplingScheduler
from .cache import (
    WeakLRUCache,
    WaveformManager,
    default_manager,
    get_or_build_waveform,
    build_waveform,
    add_completion_observer,
)

__all__ = [
    "__version__",
    "WaveformState",
    "JobPriority",
    "JobStatus",
    "SamplingJob",
    "AudioSource",
    "AUDIO_EXTENSIONS",
    "is_audio_file",
    "open_audio_source",
    "default_config",
    "merge_configs",
    "validate_config",
    "validate_config_fields",
    "load_preset",
    "save_preset",
    "ConfigError",
    "ConfigFieldError",
    "ParamSpec",
    "WAVEFORM_PARAMS",
    "amplitudes_to_decibels",
    "downsample",
    "normalize_levels",
    "WaveformError",
    "InvalidInputError",
    "UnreadableAssetError",
    "DurationExceededError",
    "DecodeError",
    "PersistenceCorruptError",
    "PersistenceWriteError",
    "WaveformStateError",
    "EventBus",
    "Waveform",
    "SampleReader",
    "read_waveform",
    "write_waveform",
    "SamplingScheduler",
    "WeakLRUCache",
    "WaveformManager",
    "default_manager",
    "get_or_build_waveform",
    "build_waveform",
    "add_completion_observer",
]
