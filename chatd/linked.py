"""Index-stable doubly-linked lists.

Nodes are addressed by stable keys (client ids) instead of object
references, so a client can sit in several lists at once (the global
directory and one channel) without carrying list pointers itself.

``insert_tail`` and ``unlink`` operate on an ``Ends`` pair plus the key ->
``Link`` mapping and return the new ends; ``LinkedList`` wraps them for
callers that just want a container.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterator
from dataclasses import dataclass


@dataclass
class Link:
    prev: Hashable | None = None
    next: Hashable | None = None


@dataclass(frozen=True)
class Ends:
    head: Hashable | None = None
    tail: Hashable | None = None


def insert_tail(ends: Ends, links: dict[Hashable, Link], key: Hashable) -> Ends:
    """Link ``key`` after the current tail and return the new ends."""
    if key in links:
        raise ValueError(f"{key!r} is already linked")

    links[key] = Link(prev=ends.tail, next=None)
    if ends.tail is None:
        return Ends(head=key, tail=key)

    links[ends.tail].next = key
    return Ends(head=ends.head, tail=key)


def unlink(ends: Ends, links: dict[Hashable, Link], key: Hashable) -> Ends:
    """Splice ``key`` out and return the new ends.

    Raises KeyError if ``key`` is not linked.
    """
    node = links.pop(key)
    head, tail = ends.head, ends.tail

    if node.prev is None:
        head = node.next
    else:
        links[node.prev].next = node.next

    if node.next is None:
        tail = node.prev
    else:
        links[node.next].prev = node.prev

    return Ends(head=head, tail=tail)


class LinkedList:
    """Ordered collection of keys with O(1) append and removal."""

    def __init__(self) -> None:
        self._ends = Ends()
        self._links: dict[Hashable, Link] = {}

    @property
    def head(self) -> Hashable | None:
        return self._ends.head

    @property
    def tail(self) -> Hashable | None:
        return self._ends.tail

    def append(self, key: Hashable) -> None:
        self._ends = insert_tail(self._ends, self._links, key)

    def remove(self, key: Hashable) -> bool:
        """Unlink ``key``. Returns False if it was not a member."""
        if key not in self._links:
            return False
        self._ends = unlink(self._ends, self._links, key)
        return True

    def next_of(self, key: Hashable) -> Hashable | None:
        return self._links[key].next

    def prev_of(self, key: Hashable) -> Hashable | None:
        return self._links[key].prev

    def clear(self) -> None:
        self._ends = Ends()
        self._links.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._links

    def __len__(self) -> int:
        return len(self._links)

    def __iter__(self) -> Iterator[Hashable]:
        key = self._ends.head
        while key is not None:
            # Read the successor first so the caller may remove ``key``.
            nxt = self._links[key].next
            yield key
            key = nxt

    def __reversed__(self) -> Iterator[Hashable]:
        key = self._ends.tail
        while key is not None:
            prv = self._links[key].prev
            yield key
            key = prv
