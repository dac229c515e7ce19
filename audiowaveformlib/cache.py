from __future__ import annotations

import logging
import os
import threading
import weakref
from collections import OrderedDict
from typing import Any
from uuid import uuid4

from .audio import AudioSource, format_duration, is_audio_file, open_audio_source
from .config import DEFAULT_CACHE_MAX_ENTRIES, default_config, merge_configs, validate_config
from .errors import (
    DurationExceededError,
    InvalidInputError,
    PersistenceCorruptError,
    PersistenceWriteError,
    UnreadableAssetError,
)
from .events import EventBus
from .persistence import read_waveform, write_waveform
from .reader import SampleReader
from .scheduler import SamplingScheduler
from .utils import delete_file_if_exists
from .waveform import CompletionObserver, Waveform

log = logging.getLogger(__name__)


class WeakLRUCache:
    """Bounded map from identifier to a *weak* reference to a waveform.

    The cache never keeps a waveform alive.  Dead references are dropped
    when they are looked up, and the least recently used entry is dropped
    once ``max_size`` is exceeded; dropping an entry only forgets where a
    live waveform is, it does not free it.
    """

    def __init__(self, max_size: int = DEFAULT_CACHE_MAX_ENTRIES):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._entries: OrderedDict[str, weakref.ref] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Waveform | None:
        with self._lock:
            ref = self._entries.get(key)
            if ref is None:
                return None
            value = ref()
            if value is None:
                del self._entries[key]
                return None
            self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: Waveform) -> None:
        with self._lock:
            self._entries[key] = weakref.ref(value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def discard(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            ref = self._entries.get(key)
            return ref is not None and ref() is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class _WriteBackObserver:
    """Keeps a pending waveform alive and saves it once sampled."""

    def __init__(self, manager: WaveformManager, waveform: Waveform,
                 identifier: str, waveform_path: str):
        self.manager = manager
        self.waveform = waveform
        self.identifier = identifier
        self.waveform_path = waveform_path

    def __call__(self, waveform: Waveform) -> None:
        if waveform.is_sampling_complete:
            try:
                write_waveform(waveform, self.waveform_path)
            except PersistenceWriteError as e:
                # The in-memory waveform stays usable; it is re-sampled next run.
                log.error("Could not cache waveform %s: %s", self.identifier, e)
        self.manager._discard_write_back(self.identifier, self)


class WaveformManager:
    """Builds waveforms, de-duplicating work per identifier.

    Lookups consult, in order, the in-memory weak cache, the persisted
    waveform file, and finally schedule sampling of the audio file.  The
    whole decision runs under the scheduler's lock so at most one job is
    ever scheduled per identifier; decoding itself happens on the
    scheduler's worker after the lock has been released.
    """

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        scheduler: SamplingScheduler | None = None,
        event_bus: EventBus | None = None,
    ):
        self.config = merge_configs(default_config(), config or {})
        validate_config(self.config)
        self.event_bus = event_bus
        self.scheduler = scheduler or SamplingScheduler(event_bus=event_bus)
        self._lock = self.scheduler.lock
        self._cache = WeakLRUCache(self.config["cache_max_entries"])
        self._write_backs: dict[str, _WriteBackObserver] = {}

    # -- public entry points -------------------------------------------------

    def get_or_build_waveform(
        self,
        identifier: str,
        audio_path: str | None,
        waveform_path: str | None,
        high_priority: bool = False,
        content_type: str | None = None,
    ) -> Waveform | None:
        """Return the waveform for *identifier*, building it if needed.

        Returns None (and schedules nothing) when the input is invalid, the
        file is not audio, cannot be opened or is too long.
        """
        with self._lock:
            try:
                self._validate_request(identifier, audio_path, waveform_path, content_type)
            except InvalidInputError as e:
                log.warning("Not building waveform: %s", e)
                return None

            cached = self._cache.get(identifier)
            if cached is not None:
                return cached

            waveform = self._build(identifier, audio_path, waveform_path, high_priority)
            if waveform is not None:
                self._cache.set(identifier, waveform)
            return waveform

    def build_waveform(self, audio_path: str, waveform_path: str) -> Waveform | None:
        """Build a waveform outside the cache, under a throwaway identifier."""
        identifier = str(uuid4())
        with self._lock:
            try:
                self._validate_request(identifier, audio_path, waveform_path, None)
            except InvalidInputError as e:
                log.warning("Not building waveform: %s", e)
                return None
            return self._build(identifier, audio_path, waveform_path, False)

    def add_completion_observer(self, waveform: Waveform, observer: CompletionObserver) -> None:
        waveform.add_completion_observer(observer)

    def cancel_sampling(self, identifier: str) -> bool:
        """Cancel the in-flight sampling of a cached waveform."""
        with self._lock:
            waveform = self._cache.get(identifier)
            return waveform is not None and waveform.cancel_sampling()

    def pending_write_backs(self) -> int:
        with self._lock:
            return len(self._write_backs)

    # -- internals ------------------------------------------------------------

    def _validate_request(self, identifier, audio_path, waveform_path, content_type) -> None:
        if not identifier:
            raise InvalidInputError("Empty identifier.")
        if not waveform_path:
            raise InvalidInputError("Missing waveform path.")
        if not audio_path:
            raise InvalidInputError("Missing audio path.")
        if not is_audio_file(audio_path, content_type, self.config["audio_extensions"]):
            raise InvalidInputError(f"Not audio: {audio_path}")

    # Must be called with self._lock held.
    def _build(
        self,
        identifier: str,
        audio_path: str,
        waveform_path: str,
        high_priority: bool,
    ) -> Waveform | None:
        if os.path.exists(waveform_path):
            # We have a cached waveform on disk, read it into memory.
            try:
                return read_waveform(
                    waveform_path,
                    identifier=identifier,
                    silence_threshold=self.config["silence_threshold_db"],
                    clipping_threshold=self.config["clipping_threshold_db"],
                )
            except (PersistenceCorruptError, OSError) as e:
                log.warning("Discarding unreadable waveform %s: %s", waveform_path, e)
                delete_file_if_exists(waveform_path)

        try:
            source = self._open_source(audio_path)
        except (UnreadableAssetError, DurationExceededError) as e:
            log.warning("Not sampling %s: %s", audio_path, e)
            return None

        waveform = Waveform(
            identifier=identifier,
            silence_threshold=self.config["silence_threshold_db"],
            clipping_threshold=self.config["clipping_threshold_db"],
        )

        # Retains the waveform until sampling finishes so the result is saved.
        observer = _WriteBackObserver(self, waveform, identifier, waveform_path)
        self._write_backs[identifier] = observer
        waveform.add_completion_observer(observer)

        reader = SampleReader.from_config(source, self.config)
        try:
            waveform.begin_sampling(reader, self.scheduler, high_priority=high_priority)
        except RuntimeError as e:
            log.warning("Not sampling %s: %s", audio_path, e)
            del self._write_backs[identifier]
            source.release()
            return None
        return waveform

    def _open_source(self, audio_path: str) -> AudioSource:
        source = open_audio_source(audio_path, self.config["extension_overrides"])
        limit = self.config["max_duration_sec"]
        if source.duration_sec > limit:
            source.release()
            raise DurationExceededError(
                f"{format_duration(source.duration_sec)} exceeds the {format_duration(limit)} limit"
            )
        return source

    def _discard_write_back(self, identifier: str, observer: _WriteBackObserver) -> None:
        with self._lock:
            if self._write_backs.get(identifier) is observer:
                del self._write_backs[identifier]


# ---------------------------------------------------------------------------
# Process-wide manager
# ---------------------------------------------------------------------------

_default_manager: WaveformManager | None = None
_default_manager_lock = threading.Lock()


def default_manager() -> WaveformManager:
    """The shared manager used by the module-level helpers."""
    global _default_manager
    with _default_manager_lock:
        if _default_manager is None:
            _default_manager = WaveformManager()
        return _default_manager


def get_or_build_waveform(
    identifier: str,
    audio_path: str,
    waveform_path: str,
    high_priority: bool = False,
    content_type: str | None = None,
) -> Waveform | None:
    return default_manager().get_or_build_waveform(
        identifier, audio_path, waveform_path, high_priority, content_type,
    )


def build_waveform(audio_path: str, waveform_path: str) -> Waveform | None:
    return default_manager().build_waveform(audio_path, waveform_path)


def add_completion_observer(waveform: Waveform, observer: CompletionObserver) -> None:
    waveform.add_completion_observer(observer)
