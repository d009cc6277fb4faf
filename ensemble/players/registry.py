# Ensemble Core
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
PlayerRegistry — the locally filtered view of the server's players.

The server owns the player list; this class fetches it, hides ghosts,
keeps the selection valid and tells observers when anything changed.
The selection is stored as a player id and resolved against the current
list on every read, so a stale Player object is never handed out.

Selection policy, applied after a refresh unless the current selection is
still present and available:
  1. this device's player, if present and available
  2. the first available player that is playing
  3. the first available player
  4. the first player at all
An empty list clears the selection.
"""

import logging
import time
from typing import Callable, Iterable

from ..lib.config import DEFAULT_CACHE_SECONDS, cfg
from ..lib.errors import EnsembleError, ProtocolError
from ..lib.transport import ConnectionState, TransportSession
from .ghosts import is_legacy_ghost
from .models import Player

logger = logging.getLogger("ensemble.players")


def filter_players(players: Iterable[Player], local_player_id: str | None) -> list[Player]:
    """Drop legacy ghosts and unavailable players, keeping this device's own
    player even while it is marked unavailable."""
    kept = []
    for player in players:
        if is_legacy_ghost(player):
            continue
        if not player.available and player.player_id != local_player_id:
            continue
        kept.append(player)
    return kept


def choose_player(players: list[Player], local_player_id: str | None) -> Player | None:
    """Deterministic auto-selection (see module docstring)."""
    if not players:
        return None
    if local_player_id:
        for p in players:
            if p.player_id == local_player_id and p.available:
                return p
    for p in players:
        if p.is_playing and p.available:
            return p
    for p in players:
        if p.available:
            return p
    return players[0]


class PlayerRegistry:
    """Authoritative, filtered player list plus the current selection."""

    def __init__(self, transport: TransportSession, *,
                 local_player_id: str | None = None,
                 cache_seconds: float | None = None,
                 clock: Callable[[], float] = time.monotonic):
        self.transport = transport
        self.local_player_id = local_player_id
        self.cache_seconds = float(
            cache_seconds if cache_seconds is not None
            else cfg("players", "cache_seconds", default=DEFAULT_CACHE_SECONDS))
        self._clock = clock

        self._players: list[Player] = []
        self._selected_id: str | None = None
        self._last_fetched: float | None = None
        self._listeners: list[Callable[[], None]] = []
        self._selection_listeners: list[Callable[[str | None], None]] = []

        transport.add_ready_listener(self._on_ready)
        transport.add_state_listener(self._on_state)

    # ── Read side ──

    @property
    def players(self) -> list[Player]:
        return list(self._players)

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    @property
    def selected_player(self) -> Player | None:
        return self.get(self._selected_id) if self._selected_id else None

    @property
    def last_fetched(self) -> float | None:
        return self._last_fetched

    def get(self, player_id: str | None) -> Player | None:
        for player in self._players:
            if player.player_id == player_id:
                return player
        return None

    # ── Observers ──

    def add_listener(self, callback: Callable[[], None]):
        """No-payload change notification; re-read the registry when called."""
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[], None]):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def add_selection_listener(self, callback: Callable[[str | None], None]):
        """Called with the newly selected id (None when cleared)."""
        self._selection_listeners.append(callback)

    def notify(self):
        for callback in list(self._listeners):
            try:
                callback()
            except Exception:
                logger.exception("Registry listener %r failed", callback)

    def _set_selection(self, player_id: str | None, *, restart: bool = False):
        if player_id == self._selected_id and not restart:
            return
        self._selected_id = player_id
        if player_id:
            logger.info("Selected player %s", player_id)
        else:
            logger.info("Player selection cleared")
        for callback in list(self._selection_listeners):
            try:
                callback(player_id)
            except Exception:
                logger.exception("Selection listener %r failed", callback)

    # ── Transport hooks ──

    async def _on_ready(self):
        await self.refresh(force_refresh=True)

    def _on_state(self, state: ConnectionState):
        if state == ConnectionState.DISCONNECTED:
            self.clear()

    # ── Fetching ──

    async def _fetch_players(self) -> list[Player]:
        result = await self.transport.send("players/all")
        if not isinstance(result, list):
            raise ProtocolError(f"players/all returned {type(result).__name__}, expected list")
        players = []
        for item in result:
            try:
                players.append(Player.from_dict(item))
            except ProtocolError as e:
                logger.warning("Skipping malformed player entry: %s", e)
        return players

    async def fetch_all(self) -> list[Player]:
        """Every player the server knows, unfiltered. [] on failure."""
        try:
            return await self._fetch_players()
        except Exception as e:
            logger.error("Get players failed: %s", e)
            return []

    async def refresh(self, force_refresh: bool = False) -> bool:
        """Fetch, filter and reselect. Returns False when served from cache or failed.

        A failed fetch keeps the previous list and timestamp.  An empty list is
        never served from cache.
        """
        if (not force_refresh and self._players and self._last_fetched is not None
                and self._clock() - self._last_fetched < self.cache_seconds):
            logger.debug("Player list fresh (%.0fs cache), skipping fetch", self.cache_seconds)
            return False

        try:
            fetched = await self._fetch_players()
        except Exception as e:
            logger.error("Load players failed, keeping %d cached: %s", len(self._players), e)
            return False

        players = filter_players(fetched, self.local_player_id)
        logger.info("players/all returned %d players, %d after filtering",
                    len(fetched), len(players))
        self._players = players
        self._last_fetched = self._clock()
        self._reconcile_selection()
        self.notify()
        return True

    async def refresh_players(self):
        """Forced refresh; notifies again if the selected player's state moved."""
        selected = self.selected_player
        previous_state = selected.state if selected else None
        await self.refresh(force_refresh=True)
        selected = self.selected_player
        if (selected.state if selected else None) != previous_state:
            self.notify()

    def _reconcile_selection(self):
        current = self.selected_player
        if current is not None and current.available:
            return
        choice = choose_player(self._players, self.local_player_id)
        self._set_selection(choice.player_id if choice else None)

    # ── Write side ──

    def select_player(self, player: Player | str):
        """Explicit selection. Always honoured and always restarts polling."""
        player_id = player.player_id if isinstance(player, Player) else player
        if not player_id:
            raise ValueError("select_player needs a player or player id")
        self._set_selection(player_id, restart=True)
        self.notify()

    def clear_selection(self):
        self._set_selection(None)
        self.notify()

    def apply_snapshot(self, player: Player) -> bool:
        """Replace the cached entry with the same id. Unknown ids are ignored."""
        for index, existing in enumerate(self._players):
            if existing.player_id == player.player_id:
                players = list(self._players)
                players[index] = player
                self._players = players
                return True
        return False

    def clear(self):
        """Forget everything (final disconnect)."""
        self._players = []
        self._last_fetched = None
        self._set_selection(None)
        self.notify()

    # ── Ghost cleanup ──

    async def remove_players(self, player_ids: Iterable[str]) -> tuple[int, int]:
        """Unregister players server-side. Returns (removed, failed).

        This device's own player is never removed.
        """
        removed = failed = 0
        for player_id in player_ids:
            if player_id == self.local_player_id:
                logger.warning("Refusing to remove this device's player %s", player_id)
                continue
            try:
                logger.info("Removing player %s", player_id)
                await self.transport.send("players/remove", {"player_id": player_id})
                removed += 1
            except EnsembleError as e:
                logger.warning("Failed to remove %s: %s", player_id, e)
                failed += 1
        await self.refresh(force_refresh=True)
        return removed, failed
