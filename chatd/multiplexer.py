"""Readiness multiplexer over ``select.poll``.

The multiplexer owns a dense slot table: slot 0 is the listening socket,
slots 1..N are the connected clients with no gaps. Removing a slot moves
the last occupied slot into the hole, so every removal reports which
handle moved and where it landed. Callers that cache slot indices must
store that value.
"""

from __future__ import annotations

import logging
import select
from dataclasses import dataclass
from typing import Any, NamedTuple

from .constants import LISTENER_SLOT

READ_EVENTS = select.POLLIN | select.POLLPRI
HANGUP_EVENTS = select.POLLHUP | select.POLLERR
INVALID_EVENTS = select.POLLNVAL


class MultiplexerError(RuntimeError):
    """The poll primitive itself failed; the loop cannot continue."""


@dataclass
class Slot:
    fd: int
    handle: Any


class Moved(NamedTuple):
    fd: int
    handle: Any
    index: int


class ReadyEvent(NamedTuple):
    slot: int
    fd: int
    handle: Any
    events: int


class Multiplexer:
    def __init__(self, listener: Any) -> None:
        self.log = logging.getLogger("chatd.multiplexer")
        self._poller = select.poll()
        self._slots: list[Slot] = []
        self._index_by_fd: dict[int, int] = {}
        self._listener_enabled = True
        self._append(listener)

    def _append(self, handle: Any) -> int:
        fd = handle.fileno()
        if fd < 0:
            raise ValueError("cannot watch a closed handle")
        if fd in self._index_by_fd:
            raise ValueError(f"fd {fd} is already watched")

        index = len(self._slots)
        self._slots.append(Slot(fd=fd, handle=handle))
        self._index_by_fd[fd] = index
        self._poller.register(fd, READ_EVENTS)
        return index

    @property
    def active_count(self) -> int:
        """Number of occupied client slots (the listener is not counted)."""
        return len(self._slots) - 1

    def __len__(self) -> int:
        return len(self._slots)

    @property
    def listener_enabled(self) -> bool:
        return self._listener_enabled

    def set_listener_enabled(self, enabled: bool) -> None:
        """Start or stop reporting readiness on the listener slot.

        The slot itself stays in place, so slot indices do not change.
        """
        if enabled == self._listener_enabled:
            return
        fd = self._slots[LISTENER_SLOT].fd
        self._poller.modify(fd, READ_EVENTS if enabled else 0)
        self._listener_enabled = enabled
        self.log.debug("Listener %s fd=%s", "resumed" if enabled else "paused", fd)

    def add_slot(self, handle: Any) -> int:
        return self._append(handle)

    def remove_slot(self, index: int) -> Moved | None:
        """Free ``index`` by moving the last occupied slot into it.

        Returns the moved handle and its new index, or None when ``index``
        was already the last slot. Works on a handle that has been closed,
        since the slot remembers its fd.
        """
        if index == LISTENER_SLOT:
            raise ValueError("the listener slot cannot be removed")
        if not 0 < index < len(self._slots):
            raise IndexError(f"slot {index} is not occupied")

        victim = self._slots[index]
        self._poller.unregister(victim.fd)
        del self._index_by_fd[victim.fd]

        last = self._slots.pop()
        if last is victim:
            return None

        self._slots[index] = last
        self._index_by_fd[last.fd] = index
        return Moved(fd=last.fd, handle=last.handle, index=index)

    def handle_at(self, index: int) -> Any:
        return self._slots[index].handle

    def index_of(self, fd: int) -> int | None:
        return self._index_by_fd.get(fd)

    def handles(self) -> list[Any]:
        return [s.handle for s in self._slots]

    def wait(self, timeout_ms: int | None) -> list[ReadyEvent]:
        """Block until some slot is ready or ``timeout_ms`` elapses.

        The returned events are a snapshot: handling one of them may remove
        or move slots, so consumers should resolve each event by fd rather
        than by slot index.
        """
        try:
            ready = self._poller.poll(timeout_ms)
        except OSError as e:
            raise MultiplexerError(f"poll failed: {e}") from e

        events: list[ReadyEvent] = []
        for fd, revents in ready:
            index = self._index_by_fd.get(fd)
            if index is None:
                continue
            events.append(
                ReadyEvent(
                    slot=index,
                    fd=fd,
                    handle=self._slots[index].handle,
                    events=revents,
                )
            )
        return events
