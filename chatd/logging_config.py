from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from .config import ServerRuntimeConfig
from .util import expand_path

DEFAULT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Accepted in config files and on the command line, besides plain numbers.
_LEVEL_NAMES: dict[str, int] = {
    "CRITICAL": logging.CRITICAL,
    "FATAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
    "NOTSET": logging.NOTSET,
}


def parse_level(value: Any, default: int) -> int:
    if isinstance(value, int):
        return value

    text = "" if value is None else str(value).strip().upper()
    if text in _LEVEL_NAMES:
        return _LEVEL_NAMES[text]
    if text.isdigit():
        return int(text)
    return default


def _blank_to_none(value: Any) -> str | None:
    if value is None or not str(value).strip():
        return None
    return str(value)


def resolve_log_file(cfg: ServerRuntimeConfig, override: str | None = None) -> Path | None:
    """The log file to write, or None when file logging is off.

    An override given on the command line wins; an empty override falls
    back to the config value.
    """
    chosen = _blank_to_none(override) or _blank_to_none(cfg.log_file)
    if chosen is None:
        return None
    return Path(expand_path(chosen))


def _private_file_handler(path: Path) -> logging.FileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    try:
        os.chmod(path, 0o600)
    except OSError:
        # Best effort on filesystems without modes.
        pass
    return handler


def configure_logging(
    cfg: ServerRuntimeConfig,
    *,
    override_level: str | None = None,
    override_file: str | None = None,
) -> None:
    """Point the root logger at the console and/or a log file.

    Calling it again swaps the previous root handlers for new ones.
    """
    handlers: list[logging.Handler] = []
    if cfg.log_console:
        handlers.append(logging.StreamHandler())

    log_path = resolve_log_file(cfg, override_file)
    if log_path is not None:
        handlers.append(_private_file_handler(log_path))

    formatter = logging.Formatter(
        fmt=_blank_to_none(cfg.log_format) or DEFAULT_FORMAT,
        datefmt=_blank_to_none(cfg.log_datefmt),
    )

    root = logging.getLogger()
    for old in root.handlers[:]:
        root.removeHandler(old)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    root.setLevel(parse_level(override_level or cfg.log_level, logging.INFO))
    logging.captureWarnings(True)
