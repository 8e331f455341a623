"""Outgoing payload queueing and delivery."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .constants import CHAT_SEPARATOR, LINE_TERMINATOR

if TYPE_CHECKING:
    from .service import ChatService

# Handlers append (handle, payload) pairs; the service flushes them once the
# inbound line has been fully processed.
Outgoing = list[tuple[Any, bytes]]


def frame_chat(sender_name: str, payload: bytes) -> bytes:
    """Build the relayed line; ``payload`` goes out byte for byte."""
    prefix = f"{sender_name}{CHAT_SEPARATOR}".encode("utf-8")
    return prefix + payload + LINE_TERMINATOR.encode("ascii")


class MessageHelper:
    """
    Helper methods for queueing and sending payloads.

    Handles:
    - Message queueing (outgoing lists)
    - Notices to a single client
    - Best-effort delivery through the transport
    """

    def __init__(self, server: ChatService) -> None:
        self.server = server
        self.log = logging.getLogger("chatd.messages")

    def queue_payload(self, outgoing: Outgoing, handle: Any, payload: bytes) -> None:
        outgoing.append((handle, payload))

    def queue_text(self, outgoing: Outgoing, handle: Any, text: str) -> None:
        self.queue_payload(outgoing, handle, text.encode("utf-8"))

    def emit_notice(self, outgoing: Outgoing | None, handle: Any, text: str) -> None:
        """Queue ``text`` if an outgoing list is given, otherwise send it now."""
        if outgoing is None:
            self.send_now(handle, text.encode("utf-8"))
            return
        self.queue_text(outgoing, handle, text)

    def send_now(self, handle: Any, payload: bytes) -> bool:
        ok = self.server.transport.send(handle, payload)
        if ok:
            self.server.stats_manager.inc("bytes_out", len(payload))
        else:
            self.server.stats_manager.inc("sends_failed")
        return ok

    def flush(self, outgoing: Outgoing) -> int:
        """Send everything queued in ``outgoing``. Returns the number delivered."""
        delivered = 0
        for handle, payload in outgoing:
            if _is_closed(handle):
                self.log.debug("Skipping %d byte(s) queued for a closed handle", len(payload))
                continue
            if self.send_now(handle, payload):
                delivered += 1
        outgoing.clear()
        return delivered


def _is_closed(handle: Any) -> bool:
    fileno = getattr(handle, "fileno", None)
    if fileno is None:
        return False
    try:
        return fileno() < 0
    except OSError:
        return True
