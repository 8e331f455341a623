from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .constants import COMMAND_MARKER
from .messages import frame_chat

if TYPE_CHECKING:
    from .client import Client
    from .messages import Outgoing
    from .service import ChatService

_MARKER = COMMAND_MARKER.encode("ascii")


class MessageRouter:
    """
    Classifies inbound lines and routes them.

    - Lines starting with the command marker go to the CommandHandler.
    - Anything else is chat, relayed to the other members of the sender's
      channel in member-list order.
    """

    def __init__(self, server: ChatService) -> None:
        self.server = server
        self.log = logging.getLogger("chatd.router")

    def route_line(
        self,
        client: Client,
        raw: bytes,
        outgoing: Outgoing,
        *,
        continued: bool = False,
    ) -> None:
        """Handle one framed line. ``continued`` pieces of a cut line are always chat."""
        if client.closed:
            return

        stats = self.server.stats_manager
        stats.inc("lines_in")

        if raw.endswith(b"\r"):
            raw = raw[:-1]

        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "RX name=%r fd=%s bytes=%s", client.name, client.fd, len(raw)
            )

        if not continued and raw.startswith(_MARKER):
            text = raw.decode("utf-8", "replace")
            if not self.server.command_handler.handle_command(client, text, outgoing):
                self.log.debug("Ignoring unknown command from %r: %r", client.name, text)
            return

        self._handle_chat(client, raw, outgoing)

    def _handle_chat(self, client: Client, raw: bytes, outgoing: Outgoing) -> None:
        stats = self.server.stats_manager

        if not raw:
            return

        channel = client.channel
        if channel is None:
            stats.inc("msgs_dropped")
            self.log.debug("Dropping chat from %r: not in a channel", client.name)
            return

        payload = frame_chat(client.name, raw)
        helper = self.server.message_helper
        recipients = 0
        for member in self.server.session_manager.channel_members(channel):
            if member is client:
                continue
            helper.queue_payload(outgoing, member.handle, payload)
            recipients += 1

        stats.inc("msgs_forwarded")
        if self.log.isEnabledFor(logging.DEBUG):
            self.log.debug(
                "Relay name=%r channel=%r recipients=%s",
                client.name,
                channel.name,
                recipients,
            )
