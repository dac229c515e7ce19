from __future__ import annotations

import json
import os
from dataclasses import dataclass
from typing import Any

PRESET_SCHEMA_VERSION = "1.0"

# Defaults shared with the modules that can be used without a config dict
DEFAULT_SAMPLE_COUNT = 100
DEFAULT_MAX_DURATION_SEC = 15 * 60.0
SILENCE_THRESHOLD_DB = -50.0
CLIPPING_THRESHOLD_DB = -20.0
DEFAULT_CACHE_MAX_ENTRIES = 64
DEFAULT_READ_BLOCK_FRAMES = 4096

# Some senders label AAC content as mp3/m4a.  libsndfile picks the decoder
# from the extension for these, so we retry through a link named like this.
DEFAULT_EXTENSION_OVERRIDES: dict[str, str] = {
    "m4a": "aac",
    "mp3": "m4a",
}


class ConfigError(Exception):
    """Raised when configuration validation fails."""
    pass


@dataclass
class ConfigFieldError:
    """A single validation error for one configuration field.

    Attributes:
        key:     The config key that failed validation.
        value:   The offending value.
        message: Human-readable explanation of what is wrong.
    """
    key: str
    value: Any
    message: str


@dataclass(frozen=True)
class ParamSpec:
    """Declarative description of a single configuration parameter."""
    key: str
    type: type | tuple              # expected Python type(s)
    default: Any
    label: str                       # short label used in error messages
    description: str = ""
    min: float | int | None = None   # inclusive lower bound (unless min_exclusive)
    max: float | int | None = None   # inclusive upper bound
    min_exclusive: bool = False
    item_type: type | None = None    # element type for list/dict values


WAVEFORM_PARAMS: list[ParamSpec] = [
    ParamSpec(
        key="sample_count", type=int, default=DEFAULT_SAMPLE_COUNT, min=1,
        label="Samples per waveform",
        description=(
            "Number of decibel points kept for every audio file, whatever "
            "its length. Bounds the size of the in-memory and on-disk "
            "waveform."
        ),
    ),
    ParamSpec(
        key="max_duration_sec", type=(int, float),
        default=DEFAULT_MAX_DURATION_SEC, min=0.0, min_exclusive=True,
        label="Maximum duration (s)",
        description="Longer files are not sampled at all.",
    ),
    ParamSpec(
        key="silence_threshold_db", type=(int, float),
        default=SILENCE_THRESHOLD_DB, max=0.0,
        label="Silence threshold (dB)",
        description="Anything quieter is clipped to this level and drawn flat.",
    ),
    ParamSpec(
        key="clipping_threshold_db", type=(int, float),
        default=CLIPPING_THRESHOLD_DB, max=0.0,
        label="Clipping threshold (dB)",
        description="Loudest level rendered; louder samples are clipped to it.",
    ),
    ParamSpec(
        key="cache_max_entries", type=int,
        default=DEFAULT_CACHE_MAX_ENTRIES, min=1,
        label="Cache size",
        description="Number of identifiers the in-memory cache remembers.",
    ),
    ParamSpec(
        key="read_block_frames", type=int,
        default=DEFAULT_READ_BLOCK_FRAMES, min=1,
        label="Read block size (frames)",
        description="Frames decoded per read while sampling.",
    ),
    ParamSpec(
        key="audio_extensions", type=list,
        default=[".wav", ".wave", ".aif", ".aiff", ".aifc", ".flac",
                 ".ogg", ".oga", ".opus", ".mp3", ".m4a", ".aac", ".caf"],
        item_type=str,
        label="Audio extensions",
        description=(
            "Extensions accepted when no content type is given. Accepting an "
            "extension does not make it decodable: libsndfile has no AAC "
            "decoder, so .m4a and .aac files only sample when they turn out "
            "to hold another format, and otherwise yield no waveform."
        ),
    ),
    ParamSpec(
        key="extension_overrides", type=dict,
        default=dict(DEFAULT_EXTENSION_OVERRIDES),
        item_type=str,
        label="Extension overrides",
        description=(
            "Maps an extension to the one to retry with when a file cannot "
            "be opened under its own name."
        ),
    ),
]


def default_config() -> dict[str, Any]:
    """Returns the built-in default configuration."""
    return {
        p.key: (p.default.copy() if isinstance(p.default, (list, dict)) else p.default)
        for p in WAVEFORM_PARAMS
    }


def merge_configs(*configs: dict[str, Any]) -> dict[str, Any]:
    """
    Merge multiple config dicts left-to-right.
    Later values override earlier ones; ``extension_overrides`` dicts are
    merged key by key.
    """
    result: dict[str, Any] = {}
    for cfg in configs:
        for k, v in cfg.items():
            if k == "extension_overrides" and isinstance(result.get(k), dict) and isinstance(v, dict):
                result[k] = {**result[k], **v}
            else:
                result[k] = v
    return result


def load_preset(path: str) -> dict[str, Any]:
    """
    Load a JSON preset file. Returns a partial config dict.
    Raises ConfigError if the file cannot be read or parsed.
    """
    if not os.path.isfile(path):
        raise ConfigError(f"Preset file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in preset file {path}: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read preset file {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Preset file must contain a JSON object, got {type(data).__name__}")

    return {k: v for k, v in data.items() if k not in ("schema_version", "_description")}


def save_preset(config: dict[str, Any], path: str, *, description: str | None = None) -> None:
    """
    Save a config dict as a JSON preset file.
    Only values that differ from the defaults are written.
    """
    preset: dict[str, Any] = {"schema_version": PRESET_SCHEMA_VERSION}
    if description:
        preset["_description"] = description

    defaults = default_config()
    for k, v in config.items():
        if k.startswith("_"):
            continue
        if k in defaults and defaults[k] == v:
            continue
        preset[k] = v

    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(preset, f, indent=4, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Validation  (ParamSpec-driven)
# ---------------------------------------------------------------------------

def validate_param_values(
    params: list[ParamSpec],
    values: dict[str, Any],
) -> list[ConfigFieldError]:
    """Validate *values* against a list of :class:`ParamSpec` definitions.

    Returns a (possibly empty) list of :class:`ConfigFieldError` objects.
    Only keys present in *values* are checked; missing keys are not errors
    (they will receive their default).
    """
    errors: list[ConfigFieldError] = []

    for spec in params:
        if spec.key not in values:
            continue

        value = values[spec.key]

        # -- type (bool ⊄ int guard) --
        expected = spec.type
        if expected is not bool and isinstance(value, bool):
            errors.append(ConfigFieldError(
                spec.key, value,
                f"{spec.label} must be {_type_label(expected)}, got boolean.",
            ))
            continue
        if not isinstance(value, expected):
            errors.append(ConfigFieldError(
                spec.key, value,
                f"{spec.label} must be {_type_label(expected)}, "
                f"got {type(value).__name__}.",
            ))
            continue

        # -- numeric range --
        if isinstance(value, (int, float)):
            if spec.min is not None:
                if spec.min_exclusive and value <= spec.min:
                    errors.append(ConfigFieldError(
                        spec.key, value,
                        f"{spec.label} must be greater than {spec.min}.",
                    ))
                    continue
                if not spec.min_exclusive and value < spec.min:
                    errors.append(ConfigFieldError(
                        spec.key, value,
                        f"{spec.label} must be at least {spec.min}.",
                    ))
                    continue
            if spec.max is not None and value > spec.max:
                errors.append(ConfigFieldError(
                    spec.key, value,
                    f"{spec.label} must be at most {spec.max}.",
                ))
                continue

        # -- list items / dict values --
        if spec.item_type is not None:
            items = value.values() if isinstance(value, dict) else value
            for item in items:
                if not isinstance(item, spec.item_type):
                    errors.append(ConfigFieldError(
                        spec.key, value,
                        f"{spec.label} entries must be "
                        f"{spec.item_type.__name__}, "
                        f"got {type(item).__name__}.",
                    ))
                    break

    return errors


def validate_config_fields(config: dict[str, Any]) -> list[ConfigFieldError]:
    """Validate a flat config dict against :data:`WAVEFORM_PARAMS`.

    Also checks that the silence threshold sits below the clipping
    threshold.  Returns structured errors.  Never raises.
    """
    errors = validate_param_values(WAVEFORM_PARAMS, config)
    if errors:
        return errors

    silence = config.get("silence_threshold_db", SILENCE_THRESHOLD_DB)
    clipping = config.get("clipping_threshold_db", CLIPPING_THRESHOLD_DB)
    if silence >= clipping:
        errors.append(ConfigFieldError(
            "silence_threshold_db", silence,
            "Silence threshold (dB) must be below the clipping threshold.",
        ))
    return errors


def validate_config(config: dict[str, Any]) -> None:
    """Validate a flat config dict.

    Raises :class:`ConfigError` listing every invalid field.
    """
    errors = validate_config_fields(config)
    if errors:
        lines = [e.message for e in errors]
        raise ConfigError(
            "Configuration has invalid values:\n  • " + "\n  • ".join(lines)
        )


def _type_label(t) -> str:
    """Human-readable label for an expected type or tuple of types."""
    if isinstance(t, tuple):
        return " or ".join(x.__name__ for x in t)
    return t.__name__
