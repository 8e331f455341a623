"""Backslash command handling."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .constants import CMD_EXIT, CMD_JOIN, CMD_SETUSERNAME, COMMAND_MARKER

if TYPE_CHECKING:
    from .client import Client
    from .messages import Outgoing
    from .service import ChatService


class CommandHandler:
    """Handles the ``\\keyword [argument]`` commands clients may send."""

    def __init__(self, server: ChatService) -> None:
        self.server = server
        self.log = logging.getLogger("chatd.commands")

    def handle_command(self, client: Client, text: str, outgoing: Outgoing) -> bool:
        """Run a command line.

        Returns True if the keyword was recognized. Unknown keywords, and
        known ones missing their argument, change nothing.
        """
        if not text.startswith(COMMAND_MARKER):
            return False

        parts = text[len(COMMAND_MARKER) :].split()
        if not parts:
            return False

        cmd = parts[0].lower()
        arg = parts[1] if len(parts) >= 2 else None
        sessions = self.server.session_manager

        if cmd == CMD_SETUSERNAME:
            if arg is None:
                self.log.debug("%s without a name from %r", cmd, client.name)
                return True
            sessions.on_rename(client, arg, outgoing)
            return True

        if cmd == CMD_EXIT:
            sessions.on_exit(client)
            return True

        if cmd == CMD_JOIN:
            if arg is None:
                self.log.debug("%s without a channel from %r", cmd, client.name)
                return True
            sessions.on_join(client, arg)
            return True

        return False
