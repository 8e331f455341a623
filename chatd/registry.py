"""Name-keyed hash table with separate chaining.

Backs both the identity registry (display name -> client) and the channel
registry (channel name -> channel).
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Generic, TypeVar

from .constants import DEFAULT_REGISTRY_BUCKETS

V = TypeVar("V")

_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193


def fnv1a_32(text: str) -> int:
    h = _FNV32_OFFSET
    for b in text.encode("utf-8", "surrogatepass"):
        h ^= b
        h = (h * _FNV32_PRIME) & 0xFFFFFFFF
    return h


@dataclass
class _Entry(Generic[V]):
    name: str
    value: V


class HashRegistry(Generic[V]):
    """Maps names to values; at most one entry per name."""

    def __init__(self, bucket_count: int = DEFAULT_REGISTRY_BUCKETS) -> None:
        if int(bucket_count) < 1:
            raise ValueError("bucket_count must be at least 1")
        self._buckets: list[list[_Entry[V]]] = [[] for _ in range(int(bucket_count))]
        self._size = 0

    @property
    def bucket_count(self) -> int:
        return len(self._buckets)

    def bucket_index(self, name: str) -> int:
        return fnv1a_32(name) % len(self._buckets)

    def insert(self, name: str, value: V) -> None:
        """Append ``name`` to its chain.

        Callers check for an existing entry first; a duplicate raises
        KeyError rather than silently shadowing the older entry.
        """
        chain = self._buckets[self.bucket_index(name)]
        for entry in chain:
            if entry.name == name:
                raise KeyError(f"name already registered: {name!r}")
        chain.append(_Entry(name, value))
        self._size += 1

    def remove(self, name: str) -> V | None:
        chain = self._buckets[self.bucket_index(name)]
        for i, entry in enumerate(chain):
            if entry.name == name:
                del chain[i]
                self._size -= 1
                return entry.value
        return None

    def find(self, name: str) -> V | None:
        for entry in self._buckets[self.bucket_index(name)]:
            if entry.name == name:
                return entry.value
        return None

    def items(self) -> Iterator[tuple[str, V]]:
        for chain in self._buckets:
            for entry in chain:
                yield entry.name, entry.value

    def longest_chain(self) -> int:
        return max((len(c) for c in self._buckets), default=0)

    def clear(self) -> None:
        for chain in self._buckets:
            chain.clear()
        self._size = 0

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.find(name) is not None

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[str]:
        for name, _ in self.items():
            yield name
