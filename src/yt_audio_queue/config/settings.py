"""Queue settings and the providers that serve them."""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)

VALID_FORMATS = ("mp3", "m4a", "wav", "opus")

# yt-dlp --audio-quality values: "0" is best VBR, the rest are kbps
VALID_QUALITIES = ("0", "128", "192", "320")

MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 5
MIN_RETRIES = 1
MAX_RETRIES = 5

DEFAULT_OUTPUT_DIR = Path.home() / "Music" / "yt-audio-queue"


@dataclass(frozen=True)
class Settings:
    """Queue settings read on every admission decision.

    Attributes:
        concurrency_limit: Maximum number of jobs holding a worker slot.
        audio_format: Target audio format passed to yt-dlp.
        audio_quality: yt-dlp audio quality ("0" = best).
        output_directory: Directory for converted files.
        embed_thumbnail: Whether to embed the thumbnail as cover art.
        auto_retry: Whether transient worker errors are retried automatically.
        max_retries: Automatic retry attempts per job.
        worker_args: Extra arguments appended to every yt-dlp invocation.
    """

    concurrency_limit: int = 2
    audio_format: str = "mp3"
    audio_quality: str = "0"
    output_directory: Path = DEFAULT_OUTPUT_DIR
    embed_thumbnail: bool = True
    auto_retry: bool = True
    max_retries: int = 3
    worker_args: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        """Validate settings values."""
        if not MIN_CONCURRENCY <= self.concurrency_limit <= MAX_CONCURRENCY:
            raise ValueError(
                f"concurrency_limit must be between {MIN_CONCURRENCY} and "
                f"{MAX_CONCURRENCY}, got {self.concurrency_limit}"
            )
        if self.audio_format not in VALID_FORMATS:
            raise ValueError(
                f"audio_format must be one of {', '.join(VALID_FORMATS)}, "
                f"got {self.audio_format!r}"
            )
        if self.audio_quality not in VALID_QUALITIES:
            raise ValueError(
                f"audio_quality must be one of {', '.join(VALID_QUALITIES)}, "
                f"got {self.audio_quality!r}"
            )
        if not MIN_RETRIES <= self.max_retries <= MAX_RETRIES:
            raise ValueError(
                f"max_retries must be between {MIN_RETRIES} and {MAX_RETRIES}, "
                f"got {self.max_retries}"
            )
        if not isinstance(self.output_directory, Path):
            object.__setattr__(self, "output_directory", Path(self.output_directory))
        if not isinstance(self.worker_args, tuple):
            object.__setattr__(self, "worker_args", tuple(self.worker_args))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-compatible values."""
        data = asdict(self)
        data["output_directory"] = str(self.output_directory)
        data["worker_args"] = list(self.worker_args)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        """Build settings from stored values, ignoring keys that are not settings."""
        known = {f.name for f in fields(cls)}
        values = {key: value for key, value in data.items() if key in known}
        if "output_directory" in values:
            values["output_directory"] = Path(values["output_directory"]).expanduser()
        return cls(**values)


class SettingsProvider(Protocol):
    """Synchronous source of the current settings."""

    def get(self) -> Settings: ...


class StaticSettings:
    """Settings held in memory, replaceable at runtime."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()

    def get(self) -> Settings:
        return self._settings

    def set(self, settings: Settings) -> None:
        self._settings = settings


def coerce_setting(key: str, raw: str) -> Any:
    """Convert a command-line string into the type of a settings field.

    Args:
        key: Settings field name.
        raw: Raw string value.

    Returns:
        Value typed for the field.

    Raises:
        KeyError: If key is not a settings field.
        ValueError: If raw cannot be converted.
    """
    defaults = Settings()
    if key not in {f.name for f in fields(Settings)}:
        raise KeyError(key)

    current = getattr(defaults, key)
    if isinstance(current, bool):
        lowered = raw.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ValueError(f"{key} expects true or false, got {raw!r}")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, Path):
        return Path(raw).expanduser()
    if isinstance(current, tuple):
        return tuple(raw.split())
    return raw


class JsonSettingsStore:
    """Settings persisted as a JSON file with a short read-through cache.

    The cache keeps `get()` cheap on the admission path while still
    picking up edits made by another process within `cache_ttl` seconds.
    """

    def __init__(self, path: Path, cache_ttl: float = 2.0) -> None:
        self.path = path
        self.cache_ttl = cache_ttl
        self._cached: Settings | None = None
        self._loaded_at = 0.0
        self._lock = threading.Lock()

    def get(self) -> Settings:
        with self._lock:
            now = time.monotonic()
            if self._cached is not None and now - self._loaded_at < self.cache_ttl:
                return self._cached
            self._cached = self._load()
            self._loaded_at = now
            return self._cached

    def update(self, **changes: Any) -> Settings:
        """Validate and persist changed settings.

        Raises:
            KeyError: If a key is not a settings field.
            ValueError: If a value fails validation.
        """
        known = {f.name for f in fields(Settings)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise KeyError(f"Unknown setting(s): {', '.join(unknown)}")

        with self._lock:
            updated = replace(self._load(), **changes)
            self._write(updated)
            self._cached = updated
            self._loaded_at = time.monotonic()
        logger.info("Settings updated: %s", ", ".join(sorted(changes)))
        return updated

    def reset(self) -> Settings:
        """Restore defaults."""
        with self._lock:
            defaults = Settings()
            self._write(defaults)
            self._cached = defaults
            self._loaded_at = time.monotonic()
        return defaults

    def _load(self) -> Settings:
        if not self.path.exists():
            return Settings()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not read settings from %s: %s", self.path, e)
            return Settings()
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed settings file %s", self.path)
            return Settings()
        try:
            return Settings.from_dict(data)
        except (TypeError, ValueError) as e:
            logger.warning("Invalid settings in %s: %s", self.path, e)
            return Settings()

    def _write(self, settings: Settings) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".json.tmp")
        temp_path.write_text(
            json.dumps(settings.to_dict(), indent=2, sort_keys=True), encoding="utf-8"
        )
        temp_path.replace(self.path)
