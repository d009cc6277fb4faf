import asyncio

import pytest

from ensemble.lib.auth import Credentials, NativeAuthStrategy, NoAuthStrategy
from ensemble.lib.errors import (AuthError, CommandError, NotConnectedError,
                                 NotFoundError, RequestTimeoutError,
                                 TransportError)
from ensemble.lib.transport import ConnectionState, TransportSession

from fakes import LONG_LIVED_TOKEN, eventually

S = ConnectionState


def record_states(transport):
    states = []
    transport.add_state_listener(states.append)
    return states


async def test_connect_without_auth(fake_server, live_transport):
    states = record_states(live_transport)
    ready = []
    live_transport.add_ready_listener(lambda: ready.append(True))

    await live_transport.connect(fake_server.url)

    assert states == [S.CONNECTING, S.CONNECTED]
    assert ready == [True]
    assert live_transport.is_connected
    assert live_transport.server_info["schema_version"] == 28
    assert live_transport.server_url == fake_server.url


async def test_connect_with_native_login(fake_server, http):
    fake_server.requires_auth = True
    transport = TransportSession(NativeAuthStrategy(http), http, request_timeout=2,
                                 reconnect_attempts=0)
    states = record_states(transport)
    try:
        await transport.connect(fake_server.url, username="me", password="secret")
        assert states == [S.CONNECTING, S.AUTHENTICATING, S.AUTHENTICATED, S.CONNECTED]
        assert fake_server.commands[0] == ("auth", {"token": LONG_LIVED_TOKEN})
        assert transport.credentials.get("long_lived_token") == LONG_LIVED_TOKEN
        assert await transport.send("players/all") == fake_server.players
    finally:
        await transport.close()


async def test_connect_with_stored_credentials_skips_login(fake_server, http):
    fake_server.requires_auth = True
    transport = TransportSession(NativeAuthStrategy(http), http, request_timeout=2,
                                 reconnect_attempts=0)
    creds = Credentials("music_assistant", {"long_lived_token": LONG_LIVED_TOKEN})
    try:
        await transport.connect(fake_server.url, credentials=creds)
        assert transport.state == S.CONNECTED
        assert fake_server.api_calls == []
    finally:
        await transport.close()


async def test_rejected_token_ends_in_error(fake_server, http):
    fake_server.requires_auth = True
    transport = TransportSession(NativeAuthStrategy(http), http, request_timeout=2,
                                 reconnect_attempts=0)
    creds = Credentials("music_assistant", {"access_token": "revoked"})
    try:
        with pytest.raises(AuthError) as info:
            await transport.connect(fake_server.url, credentials=creds)
        assert info.value.error_code == "invalid_token"
        assert transport.state == S.ERROR
        with pytest.raises(NotConnectedError):
            await transport.send("players/all")
    finally:
        await transport.close()


async def test_auth_required_without_credentials(fake_server, live_transport):
    fake_server.requires_auth = True
    with pytest.raises(AuthError):
        await live_transport.connect(fake_server.url)
    assert live_transport.state == S.ERROR


async def test_credentials_for_other_strategy_are_refused(fake_server, live_transport):
    with pytest.raises(ValueError):
        await live_transport.connect(fake_server.url,
                                     credentials=Credentials("gateway", {"username": "me"}))


async def test_unreachable_server(http):
    transport = TransportSession(NoAuthStrategy(http), http, request_timeout=2)
    with pytest.raises(TransportError):
        await transport.connect("http://127.0.0.1:1")
    assert transport.state == S.ERROR
    await transport.close()


async def test_send_outside_session(live_transport):
    with pytest.raises(NotConnectedError):
        await live_transport.send("players/all")


async def test_server_errors_are_mapped(fake_server, live_transport):
    await live_transport.connect(fake_server.url)

    with pytest.raises(NotFoundError) as info:
        await live_transport.send("players/get", {"player_id": "nope"})
    assert info.value.error_code == "player_not_found"

    fake_server.errors["players/cmd/play"] = ("invalid_state", "Nothing to play")
    with pytest.raises(CommandError) as info:
        await live_transport.send("players/cmd/play", {"player_id": "kitchen"})
    assert info.value.details == "Nothing to play"


async def test_request_timeout(fake_server, http):
    transport = TransportSession(NoAuthStrategy(http), http, request_timeout=0.2,
                                 reconnect_attempts=0)
    fake_server.silent.add("players/cmd/seek")
    try:
        await transport.connect(fake_server.url)
        with pytest.raises(RequestTimeoutError):
            await transport.send("players/cmd/seek", {"player_id": "kitchen", "position": 5})
        # The session stays usable after a timeout
        assert await transport.send("players/get", {"player_id": "kitchen"})
    finally:
        await transport.close()


async def test_concurrent_requests_are_matched_by_id(fake_server, live_transport):
    await live_transport.connect(fake_server.url)
    all_players, kitchen = await asyncio.gather(
        live_transport.send("players/all"),
        live_transport.send("players/get", {"player_id": "kitchen"}),
    )
    assert len(all_players) == 3
    assert kitchen["player_id"] == "kitchen"


async def test_server_events_reach_listeners(fake_server, live_transport):
    events = []
    live_transport.add_event_listener(lambda *args: events.append(args))
    await live_transport.connect(fake_server.url)

    await fake_server.push("player_updated", "kitchen", {"player_id": "kitchen"})
    await eventually(lambda: events)
    assert events == [("player_updated", "kitchen", {"player_id": "kitchen"})]


async def test_failing_listener_does_not_break_dispatch(fake_server, live_transport):
    seen = []

    def broken(*args):
        raise RuntimeError("listener bug")

    live_transport.add_event_listener(broken)
    live_transport.add_event_listener(lambda *args: seen.append(args[0]))
    await live_transport.connect(fake_server.url)
    await fake_server.push("player_added", "den")
    await eventually(lambda: seen)
    assert seen == ["player_added"]


async def test_connection_loss_without_reconnect(fake_server, live_transport):
    states = record_states(live_transport)
    await live_transport.connect(fake_server.url)

    await fake_server.drop_connections()
    await eventually(lambda: live_transport.state == S.DISCONNECTED)
    assert states[-1] == S.DISCONNECTED
    with pytest.raises(NotConnectedError):
        await live_transport.send("players/all")


async def test_pending_request_fails_on_connection_loss(fake_server, live_transport):
    fake_server.silent.add("players/all")
    await live_transport.connect(fake_server.url)

    pending = asyncio.ensure_future(live_transport.send("players/all"))
    await eventually(lambda: ("players/all", {}) in fake_server.commands)
    await fake_server.drop_connections()
    with pytest.raises(TransportError):
        await pending


async def test_reconnects_after_connection_loss(fake_server, http):
    transport = TransportSession(NoAuthStrategy(http), http, request_timeout=2,
                                 reconnect_attempts=3, reconnect_initial_delay=0.01)
    states = record_states(transport)
    ready = []
    transport.add_ready_listener(lambda: ready.append(True))
    try:
        await transport.connect(fake_server.url)
        await fake_server.drop_connections()
        await eventually(lambda: len(ready) == 2)
        assert states == [S.CONNECTING, S.CONNECTED, S.ERROR, S.CONNECTING, S.CONNECTED]
        assert transport.state == S.CONNECTED
        assert fake_server.connections == 2
        assert await transport.send("players/all")
    finally:
        await transport.close()


async def test_disconnect(fake_server, live_transport):
    await live_transport.connect(fake_server.url)
    await live_transport.disconnect()
    assert live_transport.state == S.DISCONNECTED
    assert live_transport.server_info is None
    with pytest.raises(NotConnectedError):
        await live_transport.send("players/all")


async def test_connect_twice_is_a_no_op(fake_server, live_transport):
    await live_transport.connect(fake_server.url)
    await live_transport.connect(fake_server.url)
    assert fake_server.connections == 1


FORWARD = [S.CONNECTING, S.AUTHENTICATING, S.AUTHENTICATED, S.CONNECTED]


def only_forward(states):
    """True when every transition moves forward or lands in error/disconnected."""
    for before, after in zip(states, states[1:]):
        if after in (S.ERROR, S.DISCONNECTED) or before in (S.ERROR, S.DISCONNECTED):
            continue
        if FORWARD.index(after) <= FORWARD.index(before):
            return False
    return True


async def test_failed_reconnect_attempts_restart_from_error(fake_server, http):
    transport = TransportSession(NoAuthStrategy(http), http, request_timeout=0.5,
                                 reconnect_attempts=2, reconnect_initial_delay=0.01)
    states = record_states(transport)
    try:
        await transport.connect(fake_server.url)
        fake_server.silent_handshake = True
        await fake_server.drop_connections()
        await eventually(lambda: transport.state == S.DISCONNECTED, timeout=5)
        assert states == [S.CONNECTING, S.CONNECTED,
                          S.ERROR, S.CONNECTING, S.ERROR, S.CONNECTING, S.ERROR,
                          S.DISCONNECTED]
        assert only_forward(states)
    finally:
        await transport.close()


async def test_revoked_token_on_reconnect_ends_in_error(fake_server, http):
    fake_server.requires_auth = True
    transport = TransportSession(NativeAuthStrategy(http), http, request_timeout=2,
                                 reconnect_attempts=3, reconnect_initial_delay=0.01)
    states = record_states(transport)
    try:
        await transport.connect(fake_server.url, username="me", password="secret")
        fake_server.valid_tokens = set()
        await fake_server.drop_connections()
        await eventually(lambda: len(states) >= 8)
        await asyncio.sleep(0.05)
        assert transport.state == S.ERROR

        assert S.DISCONNECTED not in states
        assert states[-3:] == [S.CONNECTING, S.AUTHENTICATING, S.ERROR]
        assert only_forward(states)
        assert fake_server.connections == 2
    finally:
        await transport.close()


async def test_connect_during_reconnect_cancels_it(fake_server, http):
    transport = TransportSession(NoAuthStrategy(http), http, request_timeout=0.5,
                                 reconnect_attempts=3, reconnect_initial_delay=5)
    try:
        await transport.connect(fake_server.url)
        fake_server.silent_handshake = True
        await fake_server.drop_connections()
        await eventually(lambda: transport.state == S.ERROR and fake_server.connections == 2,
                         timeout=5)

        fake_server.silent_handshake = False
        await transport.connect(fake_server.url)
        assert transport.state == S.CONNECTED
        assert fake_server.connections == 3
    finally:
        await transport.close()
