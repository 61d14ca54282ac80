"""Server configuration defaults and environment overrides."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from filesystem_server.cache import DEFAULT_TTL, WATCH_STATUS_TTL
from filesystem_server.watchers import DEFAULT_EVENT_CAPACITY

ENV_PREFIX = "FILESYSTEM_MCP_"


@dataclass(slots=True)
class ServerConfig:
    server_name: str = "FileSystem-Tools"
    default_ttl: float = DEFAULT_TTL
    watch_status_ttl: float = WATCH_STATUS_TTL
    cache_max_entries: Optional[int] = None
    watch_event_capacity: int = DEFAULT_EVENT_CAPACITY
    preview_bytes: int = 1024
    preview_chars: int = 500
    search_root: Path = field(default_factory=Path.cwd)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """Build a config, letting FILESYSTEM_MCP_* variables override defaults."""
        env = os.environ if environ is None else environ
        config = cls()

        def value(name: str) -> Optional[str]:
            raw = env.get(ENV_PREFIX + name)
            return raw.strip() if raw and raw.strip() else None

        if value("DEFAULT_TTL"):
            config.default_ttl = float(value("DEFAULT_TTL"))
        if value("WATCH_STATUS_TTL"):
            config.watch_status_ttl = float(value("WATCH_STATUS_TTL"))
        if value("CACHE_MAX_ENTRIES"):
            config.cache_max_entries = int(value("CACHE_MAX_ENTRIES"))
        if value("SEARCH_ROOT"):
            config.search_root = Path(value("SEARCH_ROOT")).expanduser()
        if value("LOG_LEVEL"):
            config.log_level = value("LOG_LEVEL").upper()
        return config
