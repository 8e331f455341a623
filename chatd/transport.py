"""TCP transport used by the chat service.

Everything here is non-blocking. Reads report EOF and connection errors
the same way (``b""``) because both mean the peer is gone; sends never
raise.
"""

from __future__ import annotations

import logging
import socket

# accept() failures that mean "try again now".
_ACCEPT_RETRY = (InterruptedError, ConnectionAbortedError)


class TransportError(RuntimeError):
    """The listening socket could not be created, bound or put in listen mode."""


class AcceptError(TransportError):
    """accept() failed with a non-transient error, typically EMFILE or ENOBUFS."""


class TcpTransport:
    def __init__(self) -> None:
        self.log = logging.getLogger("chatd.transport")

    def listen(self, host: str, port: int, backlog: int) -> socket.socket:
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            raise TransportError(f"socket creation failed: {e}") from e

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, int(port)))
            sock.listen(int(backlog))
            sock.setblocking(False)
        except OSError as e:
            sock.close()
            raise TransportError(f"cannot listen on {host}:{port}: {e}") from e

        self.log.info("Listening on %s:%s", *sock.getsockname()[:2])
        return sock

    def accept(self, listener: socket.socket) -> socket.socket | None:
        while True:
            try:
                conn, addr = listener.accept()
            except _ACCEPT_RETRY:
                continue
            except BlockingIOError:
                return None
            except OSError as e:
                raise AcceptError(f"accept failed: {e}") from e
            conn.setblocking(False)
            self.log.debug("Accepted fd=%s peer=%s", conn.fileno(), addr)
            return conn

    def read(self, handle: socket.socket, size: int) -> bytes | None:
        """Return received bytes, ``b""`` if the peer is gone, None if nothing is ready."""
        try:
            return handle.recv(int(size))
        except (BlockingIOError, InterruptedError):
            return None
        except OSError as e:
            self.log.debug("Read failed fd=%s err=%s", _fd(handle), e)
            return b""

    def send(self, handle: socket.socket, data: bytes) -> bool:
        """Best-effort send. Returns False if not everything went out."""
        try:
            sent = handle.send(data)
        except (BlockingIOError, InterruptedError):
            self.log.debug("Send would block fd=%s bytes=%s", _fd(handle), len(data))
            return False
        except OSError as e:
            self.log.debug(
                "Send failed fd=%s bytes=%s err=%s", _fd(handle), len(data), e
            )
            return False

        if sent < len(data):
            self.log.debug(
                "Short send fd=%s sent=%s bytes=%s", _fd(handle), sent, len(data)
            )
            return False
        return True

    def close(self, handle: socket.socket) -> None:
        try:
            handle.close()
        except OSError as e:
            self.log.debug("Close failed err=%s", e)


def _fd(handle) -> int:
    try:
        return handle.fileno()
    except OSError:
        return -1
