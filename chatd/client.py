from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, NamedTuple

from .constants import LINE_TERMINATOR

if TYPE_CHECKING:
    from .channels import Channel


class Line(NamedTuple):
    """One framed input line.

    ``continued`` is set on every piece after the first of a line that was
    cut at the length cap; such pieces are never commands.
    """

    data: bytes
    continued: bool = False


@dataclass(eq=False)
class Client:
    """A connected participant.

    ``slot`` mirrors the multiplexer slot holding ``handle``; only the
    session manager writes it, always from the value the multiplexer
    returned. Directory and channel positions live in those lists, keyed
    by ``cid``.
    """

    cid: int
    name: str
    handle: Any
    fd: int
    slot: int = -1
    channel: Channel | None = None
    closed: bool = False
    _inbuf: bytearray = field(default_factory=bytearray, repr=False)
    _in_cut_line: bool = field(default=False, repr=False)

    def feed(self, data: bytes, max_line: int) -> list[Line]:
        """Buffer ``data`` and return every complete line it finishes.

        Lines are returned without their terminator. A line that would not
        fit in ``max_line`` bytes (terminator included) is cut at the cap;
        the pieces after the first come back with ``continued`` set.
        """
        self._inbuf.extend(data)
        lines: list[Line] = []
        cap = max(1, int(max_line) - 1)
        nl = LINE_TERMINATOR.encode("ascii")

        while True:
            idx = self._inbuf.find(nl)
            if idx == -1 or idx > cap:
                if len(self._inbuf) > cap:
                    lines.append(Line(bytes(self._inbuf[:cap]), self._in_cut_line))
                    del self._inbuf[:cap]
                    self._in_cut_line = True
                    continue
                break
            lines.append(Line(bytes(self._inbuf[:idx]), self._in_cut_line))
            del self._inbuf[: idx + 1]
            self._in_cut_line = False

        return lines

    @property
    def pending_bytes(self) -> int:
        return len(self._inbuf)
