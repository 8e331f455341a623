"""Statistics tracking and reporting for the chat server."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .service import ChatService


class StatsManager:
    """
    Lifetime counters for the server.

    Tracks:
    - Connections accepted, refused and closed
    - Bytes and lines in/out
    - Renames (accepted and rejected) and channel joins
    - Chat lines forwarded and dropped
    - Failed sends
    """

    def __init__(self, server: ChatService) -> None:
        self.server = server

        self.started_wall_time: float | None = None
        self.started_monotonic: float | None = None

        self._counters: dict[str, int] = {
            "accepts": 0,
            "accept_failures": 0,
            "rejected_full": 0,
            "disconnects": 0,
            "exits": 0,
            "lines_in": 0,
            "bytes_in": 0,
            "bytes_out": 0,
            "renames": 0,
            "renames_rejected": 0,
            "joins": 0,
            "msgs_forwarded": 0,
            "msgs_dropped": 0,
            "sends_failed": 0,
        }

    def set_start_time(self) -> None:
        self.started_wall_time = time.time()
        self.started_monotonic = time.monotonic()

    def inc(self, key: str, delta: int = 1) -> None:
        self._counters[key] = int(self._counters.get(key, 0)) + int(delta)

    def get(self, key: str) -> int:
        return int(self._counters.get(key, 0))

    def format_stats(self) -> str:
        """Format current statistics as a human-readable string."""
        from . import __version__

        started_mono = self.started_monotonic
        uptime_s = (time.monotonic() - started_mono) if started_mono is not None else 0.0

        session_stats = self.server.session_manager.get_stats()
        channel_stats = self.server.session_manager.channels.get_stats()

        lines = [
            f"chatd {__version__} uptime={_fmt_duration(uptime_s)}",
            "clients={clients} names={names} slots={slots} channels={channels_total} "
            "(empty={channels_empty}) memberships={memberships}".format(
                **session_stats, **channel_stats
            ),
        ]
        top = channel_stats.get("top_channels") or []
        if top:
            lines.append(
                "top channels: " + ", ".join(f"{name}({n})" for name, n in top)
            )
        lines.append(
            " ".join(f"{k}={v}" for k, v in sorted(self._counters.items()))
        )
        return "\n".join(lines)


def _fmt_duration(seconds: float) -> str:
    s = int(max(0.0, seconds))
    days, s = divmod(s, 86400)
    hours, s = divmod(s, 3600)
    minutes, s = divmod(s, 60)
    if days:
        return f"{days}d{hours:02d}h{minutes:02d}m{s:02d}s"
    return f"{hours:02d}h{minutes:02d}m{s:02d}s"
