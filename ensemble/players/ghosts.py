# Ensemble Core
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Ghost players — stale or duplicate registrations the server keeps after app
reinstalls and account changes.

Two kinds are recognised:
  - legacy ghosts: display name contains the retired default name
    "Music Assistant Mobile" (always hidden from the player list)
  - app ghosts: ids created by a mobile app install (``ensemble_``,
    ``massiv_``, ``ma_``) that are unavailable or not this device

The categories drive the cleanup view; the registry only uses
``is_legacy_ghost`` for filtering.
"""

from enum import Enum

from .models import Player

LEGACY_GHOST_NAME = "music assistant mobile"
APP_PLAYER_PREFIXES = ("ensemble_", "massiv_", "ma_")


class PlayerCategory(str, Enum):
    CURRENT = "current"              # this device's own player
    GHOST_APP = "ghost_app"          # unavailable app player
    GHOST_OTHER = "ghost_other"      # unavailable non-app player
    DUPLICATE_APP = "duplicate_app"  # available app player that isn't this device
    NORMAL = "normal"


GHOST_CATEGORIES = {PlayerCategory.GHOST_APP, PlayerCategory.GHOST_OTHER,
                    PlayerCategory.DUPLICATE_APP}


def is_legacy_ghost(player: Player) -> bool:
    return LEGACY_GHOST_NAME in player.name.lower()


def is_app_player(player: Player) -> bool:
    return player.player_id.lower().startswith(APP_PLAYER_PREFIXES)


def categorize_player(player: Player, local_player_id: str | None) -> PlayerCategory:
    if local_player_id and player.player_id == local_player_id:
        return PlayerCategory.CURRENT
    app = is_app_player(player)
    if not player.available:
        return PlayerCategory.GHOST_APP if app else PlayerCategory.GHOST_OTHER
    if app:
        return PlayerCategory.DUPLICATE_APP
    return PlayerCategory.NORMAL


def sort_for_cleanup(players: list[Player], local_player_id: str | None) -> list[Player]:
    """This device first, then by name."""
    return sorted(players, key=lambda p: (p.player_id != local_player_id, p.name))


def count_ghosts(players: list[Player], local_player_id: str | None) -> int:
    return sum(1 for p in players if categorize_player(p, local_player_id) in GHOST_CATEGORIES)
