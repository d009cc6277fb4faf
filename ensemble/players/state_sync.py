# Ensemble Core
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
PlaybackStateSync — keeps the selected player's live state fresh and
exposes playback commands.

Two producers feed one queue:
  - the poll task (one per selection, ``players/get`` every poll_interval)
  - server pushes (``player_updated`` events) and ``apply_snapshot()``
A single consumer task drains the queue, so updates land in arrival order
and the last one wins.  Selecting another player cancels the running poll
task before a new one starts; the cancelled task never enqueues again.

Commands log and re-raise failures so the UI can report them.  Poll ticks
only log: the next tick is the retry.
"""

import asyncio
import logging
from typing import Any, Callable

from ..lib.config import DEFAULT_POLL_INTERVAL, DEFAULT_SETTLE_DELAY, cfg
from ..lib.errors import NotFoundError, ProtocolError
from ..lib.transport import TransportSession
from .models import Player, RepeatMode, Track, next_repeat_mode
from .registry import PlayerRegistry

logger = logging.getLogger("ensemble.players.sync")

# Server events carrying a full player snapshot
PLAYER_UPDATE_EVENTS = {"player_updated"}
# Server events that change the player list itself
PLAYER_LIST_EVENTS = {"player_added", "player_removed"}


class PlaybackStateSync:
    """Polls the selected player and forwards playback commands."""

    def __init__(self, transport: TransportSession, registry: PlayerRegistry, *,
                 poll_interval: float | None = None,
                 settle_delay: float | None = None):
        self.transport = transport
        self.registry = registry
        self.poll_interval = float(
            poll_interval if poll_interval is not None
            else cfg("players", "poll_interval", default=DEFAULT_POLL_INTERVAL))
        self.settle_delay = float(
            settle_delay if settle_delay is not None
            else cfg("players", "settle_delay", default=DEFAULT_SETTLE_DELAY))

        self.current_track: Track | None = None

        self._active = False
        self._poll_task: asyncio.Task | None = None
        self._consumer_task: asyncio.Task | None = None
        self._events: asyncio.Queue = asyncio.Queue()
        self._listeners: list[Callable[[], None]] = []

        registry.add_selection_listener(self._on_selection_changed)
        transport.add_event_listener(self._on_server_event)

    # ── Read side ──

    @property
    def selected_player(self) -> Player | None:
        return self.registry.selected_player

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def add_listener(self, callback: Callable[[], None]):
        """No-payload notification after each applied update for the selected player."""
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[], None]):
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self):
        for callback in list(self._listeners):
            try:
                callback()
            except Exception:
                logger.exception("State listener %r failed", callback)

    # ── Lifecycle ──

    @property
    def is_running(self) -> bool:
        return self._active

    async def start(self):
        """Start the consumer and poll the current selection, if any."""
        if self._active:
            return
        self._active = True
        self._consumer_task = asyncio.create_task(self._consume())
        self._restart_polling(self.registry.selected_id)

    async def stop(self):
        """Cancel polling and the consumer. Queued snapshots are dropped."""
        self._active = False
        for task in (self._poll_task, self._consumer_task):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except (asyncio.CancelledError, Exception):
                pass
        self._poll_task = None
        self._consumer_task = None
        while not self._events.empty():
            self._events.get_nowait()
            self._events.task_done()

    # ── Polling ──

    def _on_selection_changed(self, player_id: str | None):
        player = self.registry.get(player_id) if player_id else None
        self.current_track = player.current_media if player else None
        self._restart_polling(player_id)

    def _cancel_poll(self):
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    def _restart_polling(self, player_id: str | None):
        self._cancel_poll()
        if player_id and self._active:
            logger.debug("Polling %s every %.1fs", player_id, self.poll_interval)
            self._poll_task = asyncio.create_task(self._poll_loop(player_id))

    async def _poll_loop(self, player_id: str):
        while True:
            await self._poll_once(player_id)
            await asyncio.sleep(self.poll_interval)

    async def _poll_once(self, player_id: str):
        try:
            player = await self._fetch_player(player_id)
        except Exception as e:
            logger.warning("Error updating player state (will retry): %s", e)
            return
        self._enqueue(player, "poll")

    async def _fetch_player(self, player_id: str) -> Player:
        result = await self.transport.send("players/get", {"player_id": player_id})
        if result is None:
            raise NotFoundError(f"Player {player_id} not found")
        return Player.from_dict(result)

    async def refresh_state(self):
        """Out-of-band fetch for the selected player, applied before returning."""
        player_id = self.registry.selected_id
        if not player_id:
            return
        try:
            player = await self._fetch_player(player_id)
        except Exception as e:
            logger.warning("Error updating player state: %s", e)
            return
        self._enqueue(player, "refresh")
        if self._consumer_running:
            await self._events.join()

    # ── Update queue ──

    @property
    def _consumer_running(self) -> bool:
        return self._consumer_task is not None and not self._consumer_task.done()

    def apply_snapshot(self, player: Player):
        """Fold in an externally observed snapshot (e.g. a server push)."""
        self._enqueue(player, "push")

    def _enqueue(self, player: Player, source: str):
        if self._consumer_running:
            self._events.put_nowait((player, source))
        else:
            self._apply(player, source)

    async def _consume(self):
        while True:
            player, source = await self._events.get()
            try:
                self._apply(player, source)
            except Exception:
                logger.exception("Failed to apply %s snapshot for %s", source, player.player_id)
            finally:
                self._events.task_done()

    def _apply(self, player: Player, source: str):
        self.registry.apply_snapshot(player)
        if player.player_id != self.registry.selected_id:
            logger.debug("Ignoring %s snapshot for unselected player %s", source, player.player_id)
            return
        self.current_track = player.current_media
        self._notify()

    async def _on_server_event(self, event: str, object_id: Any, data: Any):
        if event in PLAYER_UPDATE_EVENTS:
            try:
                player = Player.from_dict(data)
            except ProtocolError as e:
                logger.warning("Ignoring %s event for %s: %s", event, object_id, e)
                return
            self.apply_snapshot(player)
        elif event in PLAYER_LIST_EVENTS:
            await self.registry.refresh(force_refresh=True)

    # ── Commands ──

    @staticmethod
    def _require(value: str | None, what: str):
        if not value:
            raise ValueError(f"{what} is required")

    async def _command(self, label: str, command: str, args: dict) -> Any:
        try:
            return await self.transport.send(command, args)
        except Exception as e:
            logger.error("%s failed: %s", label, e)
            raise

    async def play(self, player_id: str):
        self._require(player_id, "player_id")
        await self._command("Resume player", "players/cmd/play", {"player_id": player_id})

    async def pause(self, player_id: str):
        self._require(player_id, "player_id")
        await self._command("Pause player", "players/cmd/pause", {"player_id": player_id})

    async def stop_player(self, player_id: str):
        self._require(player_id, "player_id")
        await self._command("Stop player", "players/cmd/stop", {"player_id": player_id})

    async def next_track(self, player_id: str):
        self._require(player_id, "player_id")
        await self._command("Next track", "players/cmd/next", {"player_id": player_id})

    async def previous_track(self, player_id: str):
        self._require(player_id, "player_id")
        await self._command("Previous track", "players/cmd/previous", {"player_id": player_id})

    async def power_on(self, player_id: str):
        await self._set_power(player_id, True)

    async def power_off(self, player_id: str):
        await self._set_power(player_id, False)

    async def _set_power(self, player_id: str, powered: bool):
        self._require(player_id, "player_id")
        await self._command("Power " + ("on" if powered else "off"), "players/cmd/power",
                            {"player_id": player_id, "powered": powered})
        # Power can change availability and therefore visibility
        await self.registry.refresh(force_refresh=True)

    async def toggle_power(self, player_id: str):
        self._require(player_id, "player_id")
        player = self.registry.get(player_id)
        if player is None:
            logger.error("Toggle power failed: player %s not found", player_id)
            raise NotFoundError(f"Player {player_id} not found")
        await self._set_power(player_id, not player.powered)

    async def set_volume(self, player_id: str, volume_level: int):
        self._require(player_id, "player_id")
        if isinstance(volume_level, bool) or not isinstance(volume_level, int) \
                or not 0 <= volume_level <= 100:
            raise ValueError(f"Volume must be an integer 0-100, got {volume_level!r}")
        await self._command("Set volume", "players/cmd/volume_set",
                            {"player_id": player_id, "volume_level": volume_level})

    async def set_mute(self, player_id: str, muted: bool):
        self._require(player_id, "player_id")
        await self._command("Set mute", "players/cmd/volume_mute",
                            {"player_id": player_id, "muted": bool(muted)})
        await self.registry.refresh(force_refresh=True)

    async def seek(self, player_id: str, position: float):
        """Seek to *position* seconds."""
        self._require(player_id, "player_id")
        if position < 0:
            raise ValueError(f"Seek position must be >= 0, got {position!r}")
        await self._command("Seek", "players/cmd/seek",
                            {"player_id": player_id, "position": int(position)})

    async def toggle_shuffle(self, queue_id: str) -> bool:
        """Flip shuffle on the queue. Returns the new setting."""
        self._require(queue_id, "queue_id")
        queue = await self._command("Get queue", "player_queues/get", {"queue_id": queue_id})
        if not isinstance(queue, dict):
            raise NotFoundError(f"Queue {queue_id} not found")
        enabled = not bool(queue.get("shuffle_enabled"))
        await self._command("Toggle shuffle", "player_queues/shuffle",
                            {"queue_id": queue_id, "shuffle_enabled": enabled})
        return enabled

    async def set_repeat_mode(self, queue_id: str, mode: RepeatMode | str):
        self._require(queue_id, "queue_id")
        mode = RepeatMode(mode)
        await self._command("Set repeat mode", "player_queues/repeat",
                            {"queue_id": queue_id, "repeat_mode": mode.value})

    async def cycle_repeat_mode(self, queue_id: str, current: RepeatMode | str | None) -> RepeatMode:
        mode = next_repeat_mode(current)
        await self.set_repeat_mode(queue_id, mode)
        return mode

    # ── Selected-player shortcuts ──

    async def play_pause_selected(self):
        player_id = self.registry.selected_id
        if not player_id:
            return
        player = self.registry.get(player_id)
        if player is not None and player.is_playing:
            await self.pause(player_id)
        else:
            await self.play(player_id)
        await self._settle_and_refresh()

    async def next_selected(self):
        player_id = self.registry.selected_id
        if not player_id:
            return
        await self.next_track(player_id)
        await self._settle_and_refresh()

    async def previous_selected(self):
        player_id = self.registry.selected_id
        if not player_id:
            return
        await self.previous_track(player_id)
        await self._settle_and_refresh()

    async def _settle_and_refresh(self):
        # The state endpoint lags just after a command is acknowledged
        await asyncio.sleep(self.settle_delay)
        await self.refresh_state()
