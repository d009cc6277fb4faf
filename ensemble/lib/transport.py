# Ensemble Core
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Persistent WebSocket session to the media server.

Wire protocol: JSON text frames.  Requests are
``{"message_id", "command", "args"}``; responses echo ``message_id`` and carry
either ``result`` or ``error_code``/``details``.  Frames with an ``event`` key
are server pushes and go to event listeners.  The first frame after the
handshake is the server-info object; ``requires_auth`` in it triggers the
auth step.

States:
    disconnected → connecting → [authenticating → authenticated] → connected
    error / disconnected reachable from anywhere

A dropped session goes to error and each reconnect attempt restarts from
there; a refused re-auth stays in error, exhausted retries end disconnected.

Usage:
    transport = TransportSession(create_auth_strategy("music_assistant"))
    transport.add_ready_listener(on_ready)
    await transport.connect("192.168.1.20", username="me", password="secret")
    players = await transport.send("players/all")
    await transport.close()
"""

import asyncio
import inspect
import itertools
import json
import logging
from enum import Enum
from typing import Any, Callable

import aiohttp

from .auth import AuthStrategy, Credentials
from .config import DEFAULT_RECONNECT_ATTEMPTS, DEFAULT_REQUEST_TIMEOUT, cfg
from .errors import (AuthError, CommandError, NotConnectedError,
                     ProtocolError, RequestTimeoutError, TransportError,
                     error_from_payload)
from .retry import is_network_error, retry
from .urls import normalize_server_url, websocket_url

logger = logging.getLogger("ensemble.transport")

HEARTBEAT = 30  # seconds between WebSocket pings


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    CONNECTED = "connected"
    ERROR = "error"


# States in which commands may be sent
_USABLE = (ConnectionState.AUTHENTICATED, ConnectionState.CONNECTED)


class TransportSession:
    """Owns the WebSocket, the auth handshake and raw command/event dispatch."""

    def __init__(self, strategy: AuthStrategy,
                 session: aiohttp.ClientSession | None = None, *,
                 request_timeout: float | None = None,
                 reconnect_attempts: int | None = None,
                 reconnect_initial_delay: float = 2,
                 reconnect_max_delay: float = 16):
        self.strategy = strategy
        self.request_timeout = float(
            request_timeout if request_timeout is not None
            else cfg("server", "request_timeout", default=DEFAULT_REQUEST_TIMEOUT))
        self.reconnect_attempts = int(
            reconnect_attempts if reconnect_attempts is not None
            else cfg("server", "reconnect_attempts", default=DEFAULT_RECONNECT_ATTEMPTS))
        self.reconnect_initial_delay = reconnect_initial_delay
        self.reconnect_max_delay = reconnect_max_delay

        self.server_url: str | None = None
        self.server_info: dict | None = None
        self.credentials: Credentials | None = None

        # Internal state
        self._session = session
        self._owns_session = session is None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._pending: dict[str, asyncio.Future] = {}
        self._ids = itertools.count(1)
        self._state = ConnectionState.DISCONNECTED
        self._closing = False
        self._background: set[asyncio.Task] = set()

        self._state_listeners: list[Callable] = []
        self._ready_listeners: list[Callable] = []
        self._event_listeners: list[Callable] = []

    # ── Properties ──

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state in _USABLE

    # ── Listeners ──

    def add_state_listener(self, callback: Callable[[ConnectionState], Any]):
        """Called with the new state on every transition."""
        self._state_listeners.append(callback)

    def add_ready_listener(self, callback: Callable[[], Any]):
        """Called each time the session becomes fully usable."""
        self._ready_listeners.append(callback)

    def add_event_listener(self, callback: Callable[[str, Any, Any], Any]):
        """Called with (event, object_id, data) for every server push."""
        self._event_listeners.append(callback)

    def remove_listener(self, callback: Callable):
        for listeners in (self._state_listeners, self._ready_listeners, self._event_listeners):
            if callback in listeners:
                listeners.remove(callback)

    def _fire(self, listeners: list[Callable], *args):
        """Invoke callbacks; coroutine results run as background tasks."""
        for callback in list(listeners):
            try:
                result = callback(*args)
            except Exception:
                logger.exception("Listener %r failed", callback)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._background.add(task)
                task.add_done_callback(self._listener_done)

    def _listener_done(self, task: asyncio.Task):
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Listener task failed: %s", task.exception())

    def _set_state(self, state: ConnectionState):
        if state == self._state:
            return
        logger.info("Connection state: %s -> %s", self._state.value, state.value)
        self._state = state
        self._fire(self._state_listeners, state)

    # ── Connection lifecycle ──

    async def connect(self, server_url: str, *, credentials: Credentials | None = None,
                      username: str | None = None, password: str | None = None):
        """Open and authenticate the session.

        Failures leave the session in ``error`` and are raised; the core
        does not retry an initial connect.
        """
        url = normalize_server_url(server_url)
        if self.is_connected and url == self.server_url:
            logger.debug("Already connected to %s", url)
            return
        if (self._reconnect_task is not None
                or self._state not in (ConnectionState.DISCONNECTED, ConnectionState.ERROR)):
            await self.disconnect()
        if credentials is not None and credentials.strategy != self.strategy.name:
            raise ValueError(
                f"Credentials for {credentials.strategy} cannot be used with {self.strategy.name}")

        self.server_url = url
        self.credentials = credentials
        self._closing = False
        try:
            await self._open(username, password)
        except Exception as e:
            logger.error("Connect to %s failed: %s", url, e)
            await self._close_socket()
            self._set_state(ConnectionState.ERROR)
            raise

    async def _open(self, username: str | None = None, password: str | None = None):
        self._set_state(ConnectionState.CONNECTING)
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True

        headers = self.strategy.build_transport_headers(self.credentials) if self.credentials else {}
        url = websocket_url(self.server_url)
        try:
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(url, headers=headers, heartbeat=HEARTBEAT),
                self.request_timeout)
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(f"Timed out connecting to {url}") from e
        except aiohttp.WSServerHandshakeError as e:
            if e.status in (401, 403):
                raise AuthError(f"Handshake refused by {url} (HTTP {e.status})",
                                error_code=e.status) from e
            raise TransportError(f"Handshake with {url} failed: {e}") from e
        except (aiohttp.ClientError, OSError) as e:
            raise TransportError(f"Cannot connect to {url}: {e}") from e

        self.server_info = await self._receive_server_info()
        logger.info("Connected to %s (server %s, schema %s)", url,
                    self.server_info.get("server_version"),
                    self.server_info.get("schema_version"))
        self._reader_task = asyncio.create_task(self._reader_loop(self._ws))

        if self.server_info.get("requires_auth"):
            self._set_state(ConnectionState.AUTHENTICATING)
            await self._authenticate(username, password)
            self._set_state(ConnectionState.AUTHENTICATED)

        self._set_state(ConnectionState.CONNECTED)
        self._fire(self._ready_listeners)

    async def _receive_server_info(self) -> dict:
        try:
            msg = await asyncio.wait_for(self._ws.receive(), self.request_timeout)
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError("Timed out waiting for server info") from e
        if msg.type != aiohttp.WSMsgType.TEXT:
            raise TransportError(f"Connection closed during handshake ({msg.type.name})")
        try:
            info = json.loads(msg.data)
        except ValueError as e:
            raise ProtocolError("Server info is not JSON") from e
        if not isinstance(info, dict):
            raise ProtocolError("Server info is not a JSON object")
        return info

    async def _authenticate(self, username: str | None, password: str | None):
        creds = self.credentials
        if creds is None:
            if not username:
                raise AuthError("Server requires authentication but no credentials were supplied")
            creds = await self.strategy.login(self.server_url, username, password)
            if creds is None:
                raise AuthError(f"Login as {username} was rejected")

        token = self.strategy.get_token(creds)
        if not token:
            raise AuthError(f"{self.strategy.name} credentials carry no session token")
        try:
            await self._request("auth", {"token": token})
        except (AuthError, CommandError) as e:
            raise AuthError(f"Server rejected authentication: {e}",
                            error_code=e.error_code, details=e.details) from e
        self.credentials = creds
        logger.info("Session authenticated (%s)", self.strategy.name)

    async def disconnect(self):
        """Close the session on purpose. Pending commands fail."""
        self._closing = True
        reconnect, self._reconnect_task = self._reconnect_task, None
        if reconnect and reconnect is not asyncio.current_task():
            reconnect.cancel()
            try:
                await reconnect
            except (asyncio.CancelledError, Exception):
                pass
        await self._close_socket()
        self.server_info = None
        self._set_state(ConnectionState.DISCONNECTED)

    async def close(self):
        """Disconnect and release the HTTP session if this object created it."""
        await self.disconnect()
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    async def _close_socket(self):
        reader, self._reader_task = self._reader_task, None
        if reader and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except (asyncio.CancelledError, Exception):
                pass
        ws, self._ws = self._ws, None
        if ws is not None and not ws.closed:
            await ws.close()
        self._fail_pending(TransportError("Connection closed"))

    def _fail_pending(self, error: Exception):
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)

    # ── Reconnect ──

    async def _connection_lost(self, error: BaseException | None):
        was_usable = self.is_connected
        logger.warning("Connection to %s lost: %s", self.server_url, error or "closed by server")
        self._reader_task = None
        await self._close_socket()

        if not was_usable or self.reconnect_attempts <= 0:
            self._set_state(ConnectionState.DISCONNECTED)
            return
        # Every attempt restarts from error, like a fresh connect()
        self._set_state(ConnectionState.ERROR)
        self._reconnect_task = asyncio.create_task(self._reconnect())

    async def _reconnect(self):
        async def attempt():
            try:
                await self._open()
            except Exception:
                await self._close_socket()
                self._set_state(ConnectionState.ERROR)
                raise

        try:
            await retry(attempt,
                        max_attempts=self.reconnect_attempts,
                        initial_delay=self.reconnect_initial_delay,
                        max_delay=self.reconnect_max_delay,
                        should_retry=is_network_error)
        except AuthError as e:
            logger.error("Reconnect to %s refused: %s", self.server_url, e)
            self._set_state(ConnectionState.ERROR)
        except Exception as e:
            logger.error("Giving up reconnecting to %s: %s", self.server_url, e)
            self._set_state(ConnectionState.DISCONNECTED)
        else:
            logger.info("Reconnected to %s", self.server_url)
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

    # ── Commands ──

    async def send(self, command: str, args: dict | None = None) -> Any:
        """Send one command and return its ``result``.

        Raises NotConnectedError outside authenticated/connected; nothing is
        queued.  No retries here; wrap in ``retry()`` at the call site.
        """
        if not self.is_connected:
            raise NotConnectedError(f"Cannot send {command}: session is {self._state.value}")
        return await self._request(command, args)

    async def _request(self, command: str, args: dict | None = None) -> Any:
        ws = self._ws
        if ws is None or ws.closed:
            raise NotConnectedError(f"Cannot send {command}: no open connection")

        message_id = str(next(self._ids))
        future = asyncio.get_running_loop().create_future()
        self._pending[message_id] = future
        try:
            await ws.send_json({"message_id": message_id, "command": command,
                                "args": args or {}})
            response = await asyncio.wait_for(future, self.request_timeout)
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(
                f"{command}: no response within {self.request_timeout:g}s") from e
        except (aiohttp.ClientError, OSError) as e:
            raise TransportError(f"{command}: {e}") from e
        finally:
            self._pending.pop(message_id, None)

        if "error_code" in response:
            raise error_from_payload(response, command)
        if "result" not in response:
            raise ProtocolError(f"{command}: response has neither result nor error_code")
        return response["result"]

    # ── Reader ──

    async def _reader_loop(self, ws: aiohttp.ClientWebSocketResponse):
        error: BaseException | None = None
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._handle_text(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    error = ws.exception()
                    break
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("WebSocket reader encountered an error")
            error = e

        if ws is self._ws and not self._closing:
            await self._connection_lost(error)

    def _handle_text(self, raw: str):
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring non-JSON frame")
            return
        if not isinstance(data, dict):
            logger.warning("Ignoring non-object frame")
            return

        message_id = data.get("message_id")
        if message_id is not None:
            future = self._pending.get(str(message_id))
            if future is not None and not future.done():
                future.set_result(data)
            else:
                logger.debug("Response for unknown message %s", message_id)
            return

        event = data.get("event")
        if event:
            logger.debug("Server event %s (%s)", event, data.get("object_id"))
            self._fire(self._event_listeners, event, data.get("object_id"), data.get("data"))
            return

        logger.debug("Unhandled frame with keys %s", sorted(data))
