"""Channel registry and membership lists.

Each channel keeps its members in a ``LinkedList`` of client ids, so the
broadcast order is join order and leaving is O(1). A client is in at most
one channel; ``join`` moves it out of the previous one first.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from .constants import DEFAULT_REGISTRY_BUCKETS
from .linked import LinkedList
from .registry import HashRegistry

if TYPE_CHECKING:
    from .client import Client


class Channel:
    def __init__(self, name: str) -> None:
        self._name = name
        self.members = LinkedList()

    @property
    def name(self) -> str:
        return self._name

    def __len__(self) -> int:
        return len(self.members)

    def __repr__(self) -> str:
        return f"Channel({self._name!r}, members={len(self.members)})"


class ChannelRegistry:
    """Owns every channel by name."""

    def __init__(
        self,
        *,
        bucket_count: int = DEFAULT_REGISTRY_BUCKETS,
        reclaim_empty: bool = False,
    ) -> None:
        self.log = logging.getLogger("chatd.channels")
        self._channels: HashRegistry[Channel] = HashRegistry(bucket_count)
        self.reclaim_empty = bool(reclaim_empty)

    def get(self, name: str) -> Channel | None:
        return self._channels.find(name)

    def get_or_create(self, name: str) -> Channel:
        ch = self._channels.find(name)
        if ch is None:
            ch = Channel(name)
            self._channels.insert(name, ch)
            self.log.debug("Channel created name=%r", name)
        return ch

    def join(self, channel: Channel, client: Client) -> bool:
        """Append ``client`` to ``channel``.

        Returns False when the client was already a member of it.
        """
        current = client.channel
        if current is channel:
            return False
        if current is not None:
            self.leave(current, client)

        channel.members.append(client.cid)
        client.channel = channel
        return True

    def leave(self, channel: Channel, client: Client) -> bool:
        removed = channel.members.remove(client.cid)
        if client.channel is channel:
            client.channel = None

        if removed and self.reclaim_empty and not channel.members:
            self._channels.remove(channel.name)
            self.log.debug("Channel reclaimed name=%r", channel.name)
        return removed

    def clear_all(self) -> None:
        for _, ch in self._channels.items():
            ch.members.clear()
        self._channels.clear()

    def get_stats(self) -> dict[str, Any]:
        channels = [ch for _, ch in self._channels.items()]
        memberships = sum(len(ch) for ch in channels)
        top = sorted(
            ((ch.name, len(ch)) for ch in channels),
            key=lambda x: (-x[1], x[0]),
        )[:5]
        return {
            "channels_total": len(channels),
            "channels_empty": sum(1 for ch in channels if not ch.members),
            "memberships": memberships,
            "top_channels": top,
        }

    def __contains__(self, name: object) -> bool:
        return name in self._channels

    def __len__(self) -> int:
        return len(self._channels)

    def __iter__(self) -> Iterator[Channel]:
        for _, ch in self._channels.items():
            yield ch
