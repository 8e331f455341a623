from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from .channels import Channel, ChannelRegistry
from .client import Client
from .constants import (
    DEFAULT_NAME_PREFIX,
    NOTICE_NAME_TAKEN,
    NOTICE_SERVER_FULL,
)
from .linked import LinkedList
from .registry import HashRegistry
from .util import normalize_channel, normalize_name

if TYPE_CHECKING:
    from .messages import Outgoing
    from .service import ChatService


class SessionManager:
    """
    Manages the client lifecycle for the chat server.

    This class owns the interlinked indices and keeps them consistent:
    - the client arena (cid -> Client) and the fd index
    - the client directory (global list in connection order)
    - the identity registry (display name -> Client)
    - the channel registry and each channel's member list
    - each client's multiplexer slot index

    All methods run on the service's single loop thread.
    """

    def __init__(self, server: ChatService) -> None:
        self.server = server
        self.log = logging.getLogger("chatd.session")

        cfg = server.config
        self.clients: dict[int, Client] = {}
        self._index_by_fd: dict[int, int] = {}  # fd -> cid
        self.directory = LinkedList()
        self.identities: HashRegistry[Client] = HashRegistry(cfg.registry_buckets)
        self.channels = ChannelRegistry(
            bucket_count=cfg.registry_buckets,
            reclaim_empty=cfg.reclaim_empty_channels,
        )
        self._next_cid = 1

    def _default_name(self, fd: int) -> str:
        base = f"{DEFAULT_NAME_PREFIX}{fd}"
        if base not in self.identities:
            return base
        # Someone renamed themselves to another descriptor's default name.
        n = 2
        while f"{base}-{n}" in self.identities:
            n += 1
        return f"{base}-{n}"

    def on_accept(self, handle: Any, outgoing: Outgoing) -> Client | None:
        """
        Register a freshly accepted connection everywhere.

        Returns None (and closes the connection) when the server is full.
        """
        helper = self.server.message_helper
        stats = self.server.stats_manager

        if len(self.clients) >= int(self.server.config.max_clients):
            stats.inc("rejected_full")
            self.log.warning(
                "Refusing connection fd=%s: server full (max_clients=%s)",
                handle.fileno(),
                self.server.config.max_clients,
            )
            helper.emit_notice(None, handle, NOTICE_SERVER_FULL)
            self.server.transport.close(handle)
            return None

        fd = handle.fileno()
        cid = self._next_cid
        self._next_cid += 1

        client = Client(cid=cid, name=self._default_name(fd), handle=handle, fd=fd)
        self.clients[cid] = client
        self._index_by_fd[fd] = cid
        self.directory.append(cid)
        client.slot = self.server.multiplexer.add_slot(handle)
        self.identities.insert(client.name, client)

        helper.emit_notice(outgoing, handle, self.server.config.welcome_banner)
        stats.inc("accepts")

        self.log.info(
            "Client connected name=%r fd=%s slot=%s clients=%s",
            client.name,
            fd,
            client.slot,
            len(self.clients),
        )
        return client

    def on_disconnect(self, client: Client, *, reason: str = "eof") -> bool:
        """
        Tear a client down across every index.

        Returns False if the client was already gone.
        """
        if client.closed or self.clients.get(client.cid) is not client:
            return False
        client.closed = True

        if self.identities.find(client.name) is client:
            self.identities.remove(client.name)

        self.server.transport.close(client.handle)

        moved = self.server.multiplexer.remove_slot(client.slot)
        if moved is not None:
            other = self.get_by_fd(moved.fd)
            if other is not None:
                other.slot = moved.index
        client.slot = -1

        self.directory.remove(client.cid)

        channel = client.channel
        if channel is not None:
            self.channels.leave(channel, client)

        self.clients.pop(client.cid, None)
        if self._index_by_fd.get(client.fd) == client.cid:
            self._index_by_fd.pop(client.fd, None)

        self.server.stats_manager.inc("exits" if reason == "exit" else "disconnects")
        self.log.info(
            "Client disconnected name=%r reason=%s channel=%r clients=%s",
            client.name,
            reason,
            channel.name if channel is not None else None,
            len(self.clients),
        )
        return True

    def on_exit(self, client: Client) -> bool:
        return self.on_disconnect(client, reason="exit")

    def on_rename(self, client: Client, new_name: str, outgoing: Outgoing) -> bool:
        """
        Change a client's display name.

        A name already in use (the client's own included) is refused with a
        notice to that client and nothing changes.
        """
        name = normalize_name(new_name, max_chars=self.server.config.name_max_chars)
        if name is None:
            self.log.debug("Ignoring invalid name from %r: %r", client.name, new_name)
            return False

        if name in self.identities:
            self.server.stats_manager.inc("renames_rejected")
            self.server.message_helper.emit_notice(
                outgoing, client.handle, NOTICE_NAME_TAKEN
            )
            self.log.info("Rename refused name=%r wanted=%r", client.name, name)
            return False

        old_name = client.name
        self.identities.remove(old_name)
        self.identities.insert(name, client)
        client.name = name

        self.server.stats_manager.inc("renames")
        self.log.info("Client renamed old=%r new=%r", old_name, name)
        return True

    def on_join(self, client: Client, channel_name: str) -> Channel | None:
        name = normalize_channel(
            channel_name, max_len=self.server.config.max_channel_name_len
        )
        if name is None:
            self.log.debug(
                "Ignoring invalid channel from %r: %r", client.name, channel_name
            )
            return None

        previous = client.channel
        channel = self.channels.get_or_create(name)
        if self.channels.join(channel, client):
            self.server.stats_manager.inc("joins")
            self.log.info(
                "Client joined name=%r channel=%r previous=%r members=%s",
                client.name,
                channel.name,
                previous.name if previous is not None else None,
                len(channel),
            )
        return channel

    def get_client(self, cid: int) -> Client | None:
        return self.clients.get(cid)

    def get_by_fd(self, fd: int) -> Client | None:
        cid = self._index_by_fd.get(fd)
        return self.clients.get(cid) if cid is not None else None

    def get_by_name(self, name: str) -> Client | None:
        return self.identities.find(name)

    def iter_clients(self) -> Iterator[Client]:
        """Connected clients in directory (connection) order."""
        for cid in self.directory:
            yield self.clients[cid]

    def channel_members(self, channel: Channel) -> list[Client]:
        return [self.clients[cid] for cid in channel.members]

    def clear_all(self) -> list[Client]:
        """Disconnect every client. Returns the clients that were torn down."""
        torn_down = []
        for client in list(self.iter_clients()):
            if self.on_disconnect(client, reason="shutdown"):
                torn_down.append(client)
        self.channels.clear_all()
        return torn_down

    def get_stats(self) -> dict[str, Any]:
        mux = self.server.multiplexer
        return {
            "clients": len(self.clients),
            "names": len(self.identities),
            "slots": mux.active_count if mux is not None else 0,
            "longest_chain": self.identities.longest_chain(),
        }
