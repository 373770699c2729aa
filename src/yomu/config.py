from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping

DEFAULT_ENGINE_URL = "http://127.0.0.1:50021"
DEFAULT_SPEAKER_ID = 14
DEFAULT_SPEED = 1.0
MIN_SPEED = 0.6
MAX_SPEED = 1.2
DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; yomu/0.1)"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(slots=True)
class ReaderConfig:
    engine_url: str = DEFAULT_ENGINE_URL
    speaker: int = DEFAULT_SPEAKER_ID
    speed: float = DEFAULT_SPEED
    min_speed: float = MIN_SPEED
    max_speed: float = MAX_SPEED
    max_chunk_chars: int = 500
    engine_timeout: float = 60.0
    request_timeout: float = 10.0
    user_agent: str = DEFAULT_USER_AGENT
    store_dir: Path | None = None
    freshness_hours: float = 24.0
    strict_sources: bool = False
    list_base_url: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ReaderConfig":
        env = os.environ if environ is None else environ
        config = cls()
        engine_url = env.get("YOMU_ENGINE_URL")
        if engine_url:
            config = replace(config, engine_url=engine_url)
        speaker = env.get("YOMU_SPEAKER")
        if speaker:
            try:
                config = replace(config, speaker=int(speaker))
            except ValueError:
                pass
        store_dir = env.get("YOMU_STORE_DIR")
        if store_dir:
            config = replace(config, store_dir=Path(store_dir).expanduser())
        strict = env.get("YOMU_STRICT_SOURCES")
        if strict:
            config = replace(config, strict_sources=strict.strip().lower() in _TRUTHY)
        list_base_url = env.get("YOMU_LIST_BASE_URL")
        if list_base_url:
            config = replace(config, list_base_url=list_base_url.rstrip("/"))
        return config


@dataclass(slots=True)
class PlaybackTiming:
    """Delays (seconds) the playback engine waits between sentences."""

    advance_delay: float = 0.8
    repeat_one_countdown: int = 2
    repeat_all_countdown: int = 5
    tick: float = 1.0


__all__ = [
    "ReaderConfig",
    "PlaybackTiming",
    "DEFAULT_ENGINE_URL",
    "DEFAULT_SPEAKER_ID",
    "DEFAULT_SPEED",
    "MIN_SPEED",
    "MAX_SPEED",
]
