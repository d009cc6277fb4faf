# Ensemble Core
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
SessionContext — builds and wires the session core for one shell.

    transport ──ready──▶ registry ──selection──▶ state sync
        └──────────────events───────────────────────▲

The shell creates one context, calls ``init()`` and hands ``ctx.registry``
and ``ctx.sync`` to its views.  App lifecycle hooks map to
``on_background()`` / ``on_foreground()``.

Usage:
    async with SessionContext(strategy_name="music_assistant") as ctx:
        await ctx.init("192.168.1.20", username="me", password="secret")
        ctx.registry.add_listener(redraw)
        await ctx.sync.play_pause_selected()
"""

import logging
import os

import aiohttp

from .lib.auth import AuthStrategy, Credentials, create_auth_strategy
from .lib.config import cfg
from .lib.errors import AuthError, EnsembleError
from .lib.retry import NETWORK
from .lib.settings import SettingsStore
from .lib.transport import TransportSession
from .lib.urls import normalize_server_url
from .players.registry import PlayerRegistry
from .players.state_sync import PlaybackStateSync

logger = logging.getLogger("ensemble.session")


class SessionContext:
    """Owns the HTTP session, auth strategy, transport, registry and state sync."""

    def __init__(self, *, strategy_name: str | None = None,
                 strategy: AuthStrategy | None = None,
                 settings: SettingsStore | None = None,
                 http_session: aiohttp.ClientSession | None = None,
                 request_timeout: float | None = None,
                 reconnect_attempts: int | None = None,
                 cache_seconds: float | None = None,
                 poll_interval: float | None = None,
                 settle_delay: float | None = None):
        self.settings = settings or SettingsStore()
        self._strategy_name = strategy_name
        self._strategy = strategy
        self._http = http_session
        self._owns_http = http_session is None
        self._transport_options = {"request_timeout": request_timeout,
                                   "reconnect_attempts": reconnect_attempts}
        self._cache_seconds = cache_seconds
        self._sync_options = {"poll_interval": poll_interval, "settle_delay": settle_delay}

        self.strategy: AuthStrategy | None = None
        self.transport: TransportSession | None = None
        self.registry: PlayerRegistry | None = None
        self.sync: PlaybackStateSync | None = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.teardown()

    # ── Wiring ──

    def _build(self):
        if self.transport is not None:
            return
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
            self._owns_http = True

        stored = self.settings.load()
        if self._strategy is not None:
            self.strategy = self._strategy
        else:
            self.strategy = create_auth_strategy(
                self._strategy_name or stored.get("auth_strategy"), self._http)

        self.transport = TransportSession(self.strategy, self._http, **self._transport_options)
        self.registry = PlayerRegistry(self.transport,
                                       local_player_id=stored.get("builtin_player_id"),
                                       cache_seconds=self._cache_seconds)
        self.sync = PlaybackStateSync(self.transport, self.registry, **self._sync_options)

    # ── Lifecycle ──

    async def init(self, server_url: str | None = None,
                   username: str | None = None, password: str | None = None):
        """Connect to the server and persist what worked.

        The URL comes from the argument, then settings, then
        ``server.url`` in config.json.  Stored credentials are reused unless
        a username is passed; ENSEMBLE_USERNAME / ENSEMBLE_PASSWORD fill in
        when nothing else is available.
        """
        self._build()
        url = server_url or self.settings.server_url or cfg("server", "url")
        if not url:
            raise ValueError("No server URL: pass one or set server.url in config.json")
        url = normalize_server_url(url)

        credentials = None if username else await self._restore_credentials(url)
        if credentials is None:
            username = username or os.getenv("ENSEMBLE_USERNAME")
            password = password or os.getenv("ENSEMBLE_PASSWORD")
            if username:
                credentials = await self.strategy.login(url, username, password)
                if credentials is None:
                    raise AuthError(f"Login as {username} was rejected")

        await self.transport.connect(url, credentials=credentials,
                                     username=username, password=password)
        await self.sync.start()
        self._persist()
        logger.info("Session ready on %s (%s)", url, self.strategy.name)

    async def _restore_credentials(self, url: str) -> Credentials | None:
        serialized = self.settings.load_credentials(self.strategy.name)
        if not serialized:
            return None
        credentials = self.strategy.deserialize(serialized)
        stored_url = credentials.get("server_url")
        if stored_url and normalize_server_url(stored_url) != url:
            logger.info("Stored credentials belong to %s, not %s", stored_url, url)
            return None
        if not await self.strategy.validate_credentials(url, credentials):
            logger.info("Stored %s credentials are no longer valid", self.strategy.name)
            self.settings.clear_credentials()
            return None
        logger.info("Restored stored %s credentials", self.strategy.name)
        return credentials

    def _persist(self):
        self.settings.save_server_url(self.transport.server_url)
        if self.transport.credentials is not None:
            self.settings.save_credentials(
                self.strategy.name, self.strategy.serialize(self.transport.credentials))

    async def teardown(self):
        """Stop polling, disconnect and release the HTTP session."""
        if self.sync is not None:
            await self.sync.stop()
        if self.transport is not None:
            await self.transport.close()
        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()
        self.strategy = self.transport = self.registry = self.sync = None
        logger.info("Session torn down")

    async def on_background(self):
        if self.sync is not None:
            await self.sync.stop()
            logger.info("Backgrounded, polling stopped")

    async def on_foreground(self) -> bool:
        """Reconnect if needed and resume polling. Returns True when usable."""
        if self.transport is None:
            return False
        if not self.transport.is_connected:
            url = self.transport.server_url or self.settings.server_url
            if not url:
                logger.info("No remembered server, staying disconnected")
                return False
            credentials = self.transport.credentials
            try:
                await NETWORK.execute(
                    lambda: self.transport.connect(url, credentials=credentials))
            except EnsembleError as e:
                logger.error("Reconnect on foreground failed: %s", e)
                return False
        await self.sync.start()
        return True

    # ── Shell helpers ──

    def streaming_headers(self) -> dict[str, str]:
        """Headers the audio player must send when fetching streams."""
        if self.transport is None or self.transport.credentials is None:
            return {}
        return self.strategy.build_streaming_headers(self.transport.credentials)

    def set_builtin_player_id(self, player_id: str | None):
        self.settings.save_builtin_player_id(player_id)
        if self.registry is not None:
            self.registry.local_player_id = player_id
