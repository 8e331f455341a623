from chatd.constants import NOTICE_NAME_TAKEN


def test_join_and_broadcast_scenario(harness) -> None:
    c1, c2, c3 = (harness.connect() for _ in range(3))

    harness.say(c1, "\\join lobby")
    harness.say(c2, "\\join lobby")
    harness.say(c1, "hello")

    assert harness.chat_received(c2) == [f"{c1.name}> hello\n"]
    assert harness.chat_received(c3) == []
    assert harness.chat_received(c1) == []


def test_rename_collision_scenario(harness) -> None:
    c1, c2 = harness.connect(), harness.connect()
    c2_name = c2.name

    harness.say(c1, "\\setusername alice")
    harness.say(c2, "\\setusername alice")

    assert c1.name == "alice"
    assert c2.name == c2_name
    assert harness.chat_received(c2) == [NOTICE_NAME_TAKEN]
    assert harness.chat_received(c1) == []


def test_abrupt_disconnect_scenario(harness) -> None:
    c1, c2, c3 = (harness.connect() for _ in range(3))
    for c in (c1, c2, c3):
        harness.say(c, "\\join lobby")
    before = harness.mux.active_count

    harness.sessions.on_disconnect(c2)
    harness.say(c1, "from one")
    harness.say(c3, "from three")

    assert harness.mux.active_count == before - 1
    assert harness.chat_received(c2) == []
    assert harness.chat_received(c3) == [f"{c1.name}> from one\n"]
    assert harness.chat_received(c1) == [f"{c3.name}> from three\n"]


def test_broadcast_follows_member_order(harness) -> None:
    sender = harness.connect()
    others = [harness.connect() for _ in range(4)]
    for c in [others[2], sender, others[0], others[3], others[1]]:
        harness.say(c, "\\join lobby")

    order = []
    original_send = harness.transport.send

    def spy(handle, data):
        order.append(handle)
        return original_send(handle, data)

    harness.transport.send = spy
    harness.say(sender, "hi all")

    assert order == [others[2].handle, others[0].handle, others[3].handle, others[1].handle]


def test_channel_isolation(harness) -> None:
    a1, a2, b1, loner = (harness.connect() for _ in range(4))
    harness.say(a1, "\\join alpha")
    harness.say(a2, "\\join alpha")
    harness.say(b1, "\\join beta")

    harness.say(a1, "for alpha")
    harness.say(b1, "for beta")

    assert harness.chat_received(a2) == [f"{a1.name}> for alpha\n"]
    assert harness.chat_received(b1) == []
    assert harness.chat_received(loner) == []
    assert harness.chat_received(a1) == []


def test_chat_without_channel_is_dropped(harness) -> None:
    c1, c2 = harness.connect(), harness.connect()
    harness.say(c2, "\\join lobby")

    harness.say(c1, "anyone?")

    assert harness.chat_received(c1) == []
    assert harness.chat_received(c2) == []
    assert harness.svc.stats_manager.get("msgs_dropped") == 1


def test_unknown_command_is_ignored(harness) -> None:
    c1, c2 = harness.connect(), harness.connect()
    harness.say(c1, "\\join lobby")
    harness.say(c2, "\\join lobby")

    harness.say(c1, "\\dance wildly")
    harness.say(c1, "\\")

    assert harness.chat_received(c1) == []
    assert harness.chat_received(c2) == []
    assert c1.channel is c2.channel


def test_commands_missing_argument_are_ignored(harness) -> None:
    c = harness.connect()
    name = c.name
    harness.say(c, "\\setusername")
    harness.say(c, "\\join")
    assert c.name == name
    assert c.channel is None
    assert harness.chat_received(c) == []


def test_keyword_is_case_insensitive_and_extra_tokens_ignored(harness) -> None:
    c = harness.connect()
    harness.say(c, "\\SetUserName alice and more")
    assert c.name == "alice"


def test_exit_command_tears_down(harness) -> None:
    c1, c2 = harness.connect(), harness.connect()
    harness.say(c1, "\\join lobby")
    harness.say(c2, "\\join lobby")

    harness.say(c1, "\\exit")

    assert harness.sessions.get_client(c1.cid) is None
    assert c1.closed
    assert c1.handle in harness.transport.closed
    assert harness.mux.active_count == 1

    harness.say(c2, "still here?")
    assert harness.chat_received(c1) == []


def test_lines_after_exit_in_same_read_are_not_processed(harness) -> None:
    c1, c2 = harness.connect(), harness.connect()
    harness.say(c1, "\\join lobby")
    harness.say(c2, "\\join lobby")

    harness.say(c1, "\\exit\nghost message")

    assert harness.chat_received(c2) == []


def test_join_moves_between_channels(harness) -> None:
    c1, c2, c3 = (harness.connect() for _ in range(3))
    harness.say(c1, "\\join lobby")
    harness.say(c2, "\\join lobby")
    harness.say(c3, "\\join dev")

    harness.say(c1, "\\join dev")
    harness.say(c2, "lobby only")
    harness.say(c1, "dev now")

    assert harness.chat_received(c1) == []
    assert harness.chat_received(c3) == [f"{c1.name}> dev now\n"]
    lobby = harness.sessions.channels.get("lobby")
    assert list(lobby.members) == [c2.cid]


def test_renamed_sender_is_used_in_framing(harness) -> None:
    c1, c2 = harness.connect(), harness.connect()
    harness.say(c1, "\\join lobby")
    harness.say(c2, "\\join lobby")
    harness.say(c1, "\\setusername alice")
    harness.say(c1, "hi")
    assert harness.chat_received(c2) == ["alice> hi\n"]


def test_crlf_and_empty_lines(harness) -> None:
    c1, c2 = harness.connect(), harness.connect()
    harness.say(c1, "\\join lobby\r")
    harness.say(c2, "\\join lobby")

    harness.say(c1, "")
    harness.say(c1, "windows\r")

    assert harness.chat_received(c2) == [f"{c1.name}> windows\n"]


def test_invalid_utf8_is_relayed_unchanged(harness) -> None:
    c1, c2 = harness.connect(), harness.connect()
    harness.say(c1, "\\join lobby")
    harness.say(c2, "\\join lobby")

    outgoing = []
    harness.svc.router.route_line(c1, b"caf\xe9\r", outgoing)

    assert outgoing == [(c2.handle, c1.name.encode() + b"> caf\xe9\n")]


def test_marker_inside_a_cut_line_is_chat(harness) -> None:
    c1, c2 = harness.connect(), harness.connect()
    harness.say(c1, "\\join lobby")
    harness.say(c2, "\\join lobby")
    name = c1.name
    cap = harness.config.buffer_size - 1

    harness.say(c1, "a" * cap + "\\exit")
    harness.say(c1, "b" * cap + "\\setusername mallory")

    assert not c1.closed
    assert c1.name == name
    assert harness.sessions.get_client(c1.cid) is c1
    assert harness.chat_received(c2) == [
        f"{name}> {'a' * cap}\n",
        f"{name}> \\exit\n",
        f"{name}> {'b' * cap}\n",
        f"{name}> \\setusername mallory\n",
    ]


def test_line_after_a_cut_line_can_be_a_command(harness) -> None:
    c = harness.connect()
    cap = harness.config.buffer_size - 1

    harness.say(c, "x" * (cap + 5) + "\n\\setusername alice")

    assert c.name == "alice"
