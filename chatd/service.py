from __future__ import annotations

import logging
import signal
import threading
import time
from typing import Any

from .client import Client
from .commands import CommandHandler
from .config import ServerRuntimeConfig
from .messages import MessageHelper, Outgoing
from .multiplexer import (
    HANGUP_EVENTS,
    INVALID_EVENTS,
    READ_EVENTS,
    Multiplexer,
)
from .router import MessageRouter
from .session import SessionManager
from .stats import StatsManager
from .transport import AcceptError, TcpTransport


class ChatService:
    """The chat server: owns every registry and drives the poll loop.

    All state is touched from the thread that calls ``poll_once`` /
    ``run_forever``; the only place that thread blocks is the poll call.
    """

    def __init__(
        self,
        config: ServerRuntimeConfig,
        *,
        transport: TcpTransport | None = None,
    ) -> None:
        self.config = config
        self.log = logging.getLogger("chatd.service")

        self._shutdown = threading.Event()

        self.transport = transport or TcpTransport()

        # Counters used by every other component
        self.stats_manager = StatsManager(self)

        # Outgoing payload queueing and delivery
        self.message_helper = MessageHelper(self)

        # Client lifecycle across all indices
        self.session_manager = SessionManager(self)

        # Backslash commands
        self.command_handler = CommandHandler(self)

        # Line classification and chat relay
        self.router = MessageRouter(self)

        self.listener: Any = None
        self.multiplexer: Multiplexer | None = None
        self._accept_paused_until: float | None = None

    @property
    def address(self) -> tuple[str, int] | None:
        if self.listener is None:
            return None
        host, port = self.listener.getsockname()[:2]
        return host, port

    def start(self) -> None:
        """Open the listening socket. Raises TransportError on failure."""
        if self.multiplexer is not None:
            return

        self.listener = self.transport.listen(
            self.config.host, self.config.port, self.config.backlog
        )
        self.multiplexer = Multiplexer(self.listener)
        self.stats_manager.set_start_time()
        self._shutdown.clear()

        self.log.info(
            "Server running host=%s port=%s",
            *(self.address or (self.config.host, self.config.port)),
        )
        self.log.info(
            "Policy max_clients=%s buffer_size=%s poll_timeout_ms=%s reclaim_empty_channels=%s",
            self.config.max_clients,
            self.config.buffer_size,
            self.config.poll_timeout_ms,
            self.config.reclaim_empty_channels,
        )

    def poll_once(self, timeout_ms: int | None = None) -> int:
        """Wait for readiness once and handle every ready endpoint.

        Returns the number of ready endpoints. Raises MultiplexerError if the
        poll call itself fails.
        """
        if self.multiplexer is None:
            raise RuntimeError("service not started")

        if timeout_ms is None:
            timeout_ms = int(self.config.poll_timeout_ms)
        timeout_ms = self._resume_accepting(timeout_ms)

        events = self.multiplexer.wait(timeout_ms)
        if not events:
            if self.log.isEnabledFor(logging.DEBUG):
                self.log.debug("Idle\n%s", self.stats_manager.format_stats())
            return 0

        listener_fd = self.listener.fileno()
        for ev in events:
            if ev.fd == listener_fd:
                self._on_listener_ready()
                continue

            # Earlier events in this batch may have closed this client, or
            # closed it and handed its fd to a new connection.
            client = self.session_manager.get_by_fd(ev.fd)
            if client is None or client.handle is not ev.handle:
                continue

            if ev.events & INVALID_EVENTS:
                self._on_close(client, "invalid")
                continue

            if ev.events & HANGUP_EVENTS and not ev.events & READ_EVENTS:
                self._on_close(client, "hangup")
                continue

            self._on_readable(client)

        return len(events)

    def run_forever(self) -> None:
        if self.multiplexer is None:
            self.start()

        previous: dict[int, Any] = {}
        if threading.current_thread() is threading.main_thread():
            for signum in (signal.SIGINT, signal.SIGTERM):
                previous[signum] = signal.signal(signum, signal.default_int_handler)

        try:
            while not self._shutdown.is_set():
                self.poll_once()
        except KeyboardInterrupt:
            self.log.info("Interrupted, shutting down")
        finally:
            for signum, handler in previous.items():
                if handler is not None:
                    signal.signal(signum, handler)
            self.close()

    def stop(self) -> None:
        """Ask ``run_forever`` to return after the current poll round."""
        self._shutdown.set()

    def close(self) -> None:
        """Disconnect every client and close the listener."""
        if self.multiplexer is None:
            return

        clients = self.session_manager.clear_all()
        self.transport.close(self.listener)
        self.multiplexer = None
        self._accept_paused_until = None

        self.log.info("Server stopped, closed %d client(s)", len(clients))
        self.log.info("Final stats\n%s", self.stats_manager.format_stats())

    def _on_listener_ready(self) -> None:
        try:
            handle = self.transport.accept(self.listener)
        except AcceptError as e:
            self._pause_accepting(e)
            return
        if handle is None:
            return

        outgoing: Outgoing = []
        self.session_manager.on_accept(handle, outgoing)
        self.message_helper.flush(outgoing)

    def _pause_accepting(self, err: AcceptError) -> None:
        backoff_ms = max(0, int(self.config.accept_backoff_ms))
        self.stats_manager.inc("accept_failures")
        self.log.warning("%s; not accepting for %sms", err, backoff_ms)
        self.multiplexer.set_listener_enabled(False)
        self._accept_paused_until = time.monotonic() + backoff_ms / 1000.0

    def _resume_accepting(self, timeout_ms: int) -> int:
        """Re-enable the listener once the backoff is over.

        Returns ``timeout_ms``, shortened so the poll wakes up when the
        backoff ends.
        """
        until = self._accept_paused_until
        if until is None:
            return timeout_ms

        remaining_ms = int((until - time.monotonic()) * 1000)
        if remaining_ms <= 0:
            self._accept_paused_until = None
            self.multiplexer.set_listener_enabled(True)
            self.log.info("Accepting connections again")
            return timeout_ms
        if timeout_ms < 0:
            return remaining_ms
        return min(timeout_ms, remaining_ms)

    def _on_readable(self, client: Client) -> None:
        data = self.transport.read(client.handle, self.config.buffer_size)
        if data is None:
            return
        if not data:
            self._on_close(client, "eof")
            return

        self.stats_manager.inc("bytes_in", len(data))

        outgoing: Outgoing = []
        for line in client.feed(data, self.config.buffer_size):
            if client.closed:
                break
            self.router.route_line(
                client, line.data, outgoing, continued=line.continued
            )
            self.message_helper.flush(outgoing)

    def _on_close(self, client: Client, reason: str) -> None:
        self.session_manager.on_disconnect(client, reason=reason)
