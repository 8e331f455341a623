from __future__ import annotations

import argparse
import logging
import os
import sys
import tomllib
from dataclasses import asdict, replace
from pathlib import Path

import tomlkit

from .config import ServerRuntimeConfig
from .logging_config import configure_logging
from .multiplexer import MultiplexerError
from .paths import default_config_path, ensure_private_dir
from .service import ChatService
from .transport import TransportError
from .util import expand_path

_LOGGING_KEYS = {
    "level": "log_level",
    "console": "log_console",
    "file": "log_file",
    "format": "log_format",
    "datefmt": "log_datefmt",
}

_INT_KEYS = (
    "port",
    "backlog",
    "poll_timeout_ms",
    "buffer_size",
    "max_clients",
    "accept_backoff_ms",
    "registry_buckets",
    "name_max_chars",
    "max_channel_name_len",
)


def load_toml(path: str) -> dict:
    with open(path, "rb") as f:
        return tomllib.load(f)


def apply_config_data(cfg: ServerRuntimeConfig, data: dict) -> ServerRuntimeConfig:
    """Overlay a parsed TOML document onto ``cfg``.

    ``[server]`` keys are flattened onto the top level and ``[logging]``
    keys are mapped onto the ``log_*`` fields. Unknown keys are ignored.
    """
    if not isinstance(data, dict):
        return cfg

    server = data.get("server")
    if isinstance(server, dict):
        data = {**data, **server}

    log_table = data.get("logging")
    if isinstance(log_table, dict):
        mapped = {_LOGGING_KEYS[k]: v for k, v in log_table.items() if k in _LOGGING_KEYS}
        data = {**data, **mapped}

    allowed = set(asdict(cfg).keys())
    # This identifies where the config came from; do not let the file override it.
    allowed.discard("config_path")
    updates = {k: v for k, v in data.items() if k in allowed}

    for key in _INT_KEYS:
        if key in updates:
            try:
                updates[key] = int(updates[key])
            except (TypeError, ValueError) as e:
                raise ValueError(f"config key {key!r} must be an integer") from e

    if "reclaim_empty_channels" in updates:
        updates["reclaim_empty_channels"] = bool(updates["reclaim_empty_channels"])
    if "log_console" in updates:
        updates["log_console"] = bool(updates["log_console"])
    for key in ("log_file", "log_datefmt"):
        if key in updates and updates[key] == "":
            updates[key] = None
    if "welcome_banner" in updates and not updates["welcome_banner"]:
        updates.pop("welcome_banner")

    return replace(cfg, **updates) if updates else cfg


def render_default_config(cfg: ServerRuntimeConfig | None = None) -> str:
    cfg = cfg or ServerRuntimeConfig()

    doc = tomlkit.document()
    doc.add(tomlkit.comment("chatd configuration (TOML)"))
    doc.add(tomlkit.comment(""))
    doc.add(tomlkit.comment("This file was created on first run."))
    doc.add(tomlkit.comment("Edit it, then start chatd again."))
    doc.add(tomlkit.nl())

    server = tomlkit.table()
    server.add(tomlkit.comment("Address and port to listen on."))
    server.add("host", cfg.host)
    server.add("port", cfg.port)
    server.add("backlog", cfg.backlog)
    server.add(tomlkit.nl())
    server.add(tomlkit.comment("Poll timeout in milliseconds."))
    server.add("poll_timeout_ms", cfg.poll_timeout_ms)
    server.add(tomlkit.nl())
    server.add(tomlkit.comment("Longest accepted line in bytes, newline included."))
    server.add(tomlkit.comment("Longer input is split at this size."))
    server.add("buffer_size", cfg.buffer_size)
    server.add(tomlkit.nl())
    server.add(tomlkit.comment("Connections beyond this are refused with a notice."))
    server.add("max_clients", cfg.max_clients)
    server.add(tomlkit.comment("Pause before accepting again after running out of descriptors."))
    server.add("accept_backoff_ms", cfg.accept_backoff_ms)
    server.add(tomlkit.nl())
    server.add(tomlkit.comment("Hash buckets for the name and channel registries."))
    server.add("registry_buckets", cfg.registry_buckets)
    server.add(tomlkit.nl())
    server.add("name_max_chars", cfg.name_max_chars)
    server.add("max_channel_name_len", cfg.max_channel_name_len)
    server.add(tomlkit.nl())
    server.add(tomlkit.comment("Drop a channel once its last member leaves."))
    server.add(tomlkit.comment("When false, empty channels are kept until restart."))
    server.add("reclaim_empty_channels", cfg.reclaim_empty_channels)
    server.add(tomlkit.nl())
    server.add(tomlkit.comment("Sent to every client right after it connects."))
    server.add("welcome_banner", tomlkit.string(cfg.welcome_banner, multiline=True))
    doc.add("server", server)

    logging_tbl = tomlkit.table()
    logging_tbl.add(tomlkit.comment("Log level (DEBUG, INFO, WARNING, ERROR)."))
    logging_tbl.add("level", cfg.log_level)
    logging_tbl.add(tomlkit.comment("Log to stderr."))
    logging_tbl.add("console", cfg.log_console)
    logging_tbl.add(tomlkit.comment("Optional file path for logs (leave empty to disable)."))
    logging_tbl.add("file", cfg.log_file or "")
    logging_tbl.add("format", cfg.log_format)
    logging_tbl.add("datefmt", cfg.log_datefmt or "")
    doc.add("logging", logging_tbl)

    return tomlkit.dumps(doc)


def write_default_config(config_path: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        ensure_private_dir(Path(cfg_dir))

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(render_default_config())


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="chatd", description="Run a multi-user TCP chat server")

    p.add_argument(
        "--config",
        default=str(default_config_path()),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument("--host", default=None, help="Address to listen on")
    p.add_argument("--port", type=int, default=None, help="TCP port to listen on")
    p.add_argument(
        "--poll-timeout",
        type=int,
        default=None,
        help="Poll timeout in milliseconds",
    )
    p.add_argument(
        "--max-clients", type=int, default=None, help="Maximum simultaneous clients"
    )
    p.add_argument(
        "--buffer-size",
        type=int,
        default=None,
        help="Maximum line length in bytes, newline included",
    )
    p.add_argument(
        "--reclaim-empty-channels",
        action="store_true",
        help="Forget channels once their last member leaves",
    )

    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    config_path = expand_path(str(args.config))

    if not os.path.exists(config_path):
        write_default_config(config_path)
        print(
            "Created default chatd config. Review it before starting:\n"
            f"- Config: {config_path}\n"
            "\nThen re-run chatd.",
            file=sys.stderr,
        )
        raise SystemExit(0)

    cfg = ServerRuntimeConfig(config_path=config_path)
    try:
        cfg = apply_config_data(cfg, load_toml(config_path))
    except (OSError, tomllib.TOMLDecodeError, ValueError) as e:
        print(f"chatd: cannot load {config_path}: {e}", file=sys.stderr)
        raise SystemExit(2) from e

    if args.host is not None:
        cfg = replace(cfg, host=str(args.host))
    if args.port is not None:
        cfg = replace(cfg, port=int(args.port))
    if args.poll_timeout is not None:
        cfg = replace(cfg, poll_timeout_ms=int(args.poll_timeout))
    if args.max_clients is not None:
        cfg = replace(cfg, max_clients=int(args.max_clients))
    if args.buffer_size is not None:
        cfg = replace(cfg, buffer_size=int(args.buffer_size))
    if args.reclaim_empty_channels:
        cfg = replace(cfg, reclaim_empty_channels=True)

    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)

    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)
    log = logging.getLogger("chatd")

    svc = ChatService(cfg)
    try:
        svc.start()
        svc.run_forever()
    except (TransportError, MultiplexerError) as e:
        log.critical("Fatal: %s", e)
        svc.close()
        raise SystemExit(1) from e


if __name__ == "__main__":
    main()
