from __future__ import annotations

from dataclasses import dataclass

from .constants import (
    CHANNEL_NAME_MAX_LEN,
    DEFAULT_ACCEPT_BACKOFF_MS,
    DEFAULT_BACKLOG,
    DEFAULT_BUFFER_SIZE,
    DEFAULT_HOST,
    DEFAULT_MAX_CLIENTS,
    DEFAULT_POLL_TIMEOUT_MS,
    DEFAULT_PORT,
    DEFAULT_REGISTRY_BUCKETS,
    NAME_MAX_CHARS,
    WELCOME_BANNER,
)


@dataclass(frozen=True)
class ServerRuntimeConfig:
    config_path: str | None = None
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    backlog: int = DEFAULT_BACKLOG
    poll_timeout_ms: int = DEFAULT_POLL_TIMEOUT_MS
    buffer_size: int = DEFAULT_BUFFER_SIZE
    max_clients: int = DEFAULT_MAX_CLIENTS
    accept_backoff_ms: int = DEFAULT_ACCEPT_BACKOFF_MS
    registry_buckets: int = DEFAULT_REGISTRY_BUCKETS
    name_max_chars: int = NAME_MAX_CHARS
    max_channel_name_len: int = CHANNEL_NAME_MAX_LEN
    reclaim_empty_channels: bool = False
    welcome_banner: str = WELCOME_BANNER
    log_level: str = "INFO"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    log_datefmt: str | None = None
