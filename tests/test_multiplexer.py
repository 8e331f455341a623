import select
import socket

import pytest

from chatd.multiplexer import Multiplexer, MultiplexerError


@pytest.fixture
def sockets():
    opened = []

    def _pair():
        a, b = socket.socketpair()
        opened.extend([a, b])
        return a, b

    yield _pair

    for s in opened:
        s.close()


def _assert_dense(mux: Multiplexer, listener) -> None:
    handles = mux.handles()
    assert handles[0] is listener
    assert len(handles) == mux.active_count + 1
    for i, h in enumerate(handles):
        assert mux.index_of(h.fileno()) == i


def test_listener_occupies_slot_zero(sockets) -> None:
    listener, _ = sockets()
    mux = Multiplexer(listener)
    assert mux.handle_at(0) is listener
    assert mux.active_count == 0
    with pytest.raises(ValueError):
        mux.remove_slot(0)


def test_add_slot_appends_densely(sockets) -> None:
    listener, _ = sockets()
    mux = Multiplexer(listener)
    ends = [sockets()[0] for _ in range(3)]

    assert [mux.add_slot(h) for h in ends] == [1, 2, 3]
    assert mux.active_count == 3
    _assert_dense(mux, listener)


def test_add_slot_rejects_duplicate_fd(sockets) -> None:
    listener, _ = sockets()
    mux = Multiplexer(listener)
    h, _ = sockets()
    mux.add_slot(h)
    with pytest.raises(ValueError):
        mux.add_slot(h)


def test_remove_slot_moves_last_into_hole(sockets) -> None:
    listener, _ = sockets()
    mux = Multiplexer(listener)
    a, b, c = (sockets()[0] for _ in range(3))
    for h in (a, b, c):
        mux.add_slot(h)

    moved = mux.remove_slot(1)

    assert moved is not None
    assert moved.handle is c
    assert moved.fd == c.fileno()
    assert moved.index == 1
    assert mux.handle_at(1) is c
    assert mux.handle_at(2) is b
    assert mux.active_count == 2
    _assert_dense(mux, listener)


def test_remove_last_slot_moves_nothing(sockets) -> None:
    listener, _ = sockets()
    mux = Multiplexer(listener)
    a, b = sockets()[0], sockets()[0]
    mux.add_slot(a)
    mux.add_slot(b)

    assert mux.remove_slot(2) is None
    assert mux.active_count == 1
    _assert_dense(mux, listener)


def test_remove_slot_out_of_range(sockets) -> None:
    listener, _ = sockets()
    mux = Multiplexer(listener)
    with pytest.raises(IndexError):
        mux.remove_slot(1)


def test_remove_slot_after_handle_closed(sockets) -> None:
    listener, _ = sockets()
    mux = Multiplexer(listener)
    a, _ = sockets()
    b, _ = sockets()
    mux.add_slot(a)
    mux.add_slot(b)

    a.close()
    moved = mux.remove_slot(1)

    assert moved is not None and moved.handle is b
    assert mux.active_count == 1


def test_wait_reports_readable_slots(sockets) -> None:
    listener, _ = sockets()
    mux = Multiplexer(listener)
    a, a_peer = sockets()
    b, _ = sockets()
    mux.add_slot(a)
    mux.add_slot(b)

    assert mux.wait(0) == []

    a_peer.sendall(b"ping\n")
    events = mux.wait(1000)

    assert len(events) == 1
    ev = events[0]
    assert ev.slot == 1
    assert ev.handle is a
    assert ev.fd == a.fileno()
    assert ev.events & select.POLLIN


def test_wait_reports_hangup_as_ready(sockets) -> None:
    listener, _ = sockets()
    mux = Multiplexer(listener)
    a, a_peer = sockets()
    mux.add_slot(a)

    a_peer.close()
    events = mux.wait(1000)

    assert [ev.handle for ev in events] == [a]
    assert a.recv(16) == b""


class _BrokenPoller:
    def register(self, fd, events):
        pass

    def unregister(self, fd):
        pass

    def poll(self, timeout):
        raise OSError(9, "Bad file descriptor")


def test_wait_failure_is_raised_as_multiplexer_error(sockets) -> None:
    listener, _ = sockets()
    mux = Multiplexer(listener)
    mux._poller = _BrokenPoller()

    with pytest.raises(MultiplexerError):
        mux.wait(0)
