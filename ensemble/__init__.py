# Ensemble Core
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Ensemble Core — client session for a Music Assistant home media server.

Connects over WebSocket, authenticates, mirrors the server's players and
keeps the selected player's playback state fresh.
"""

from .lib.auth import AuthStrategy, Credentials, create_auth_strategy
from .lib.errors import (AuthError, CommandError, EnsembleError,
                         NotConnectedError, NotFoundError, ProtocolError,
                         RequestTimeoutError, TransportError)
from .lib.log import setup_logging
from .lib.retry import CRITICAL, NETWORK, RetryPolicy, retry
from .lib.transport import ConnectionState, TransportSession
from .players.models import PlaybackState, Player, RepeatMode, Track
from .players.registry import PlayerRegistry
from .players.state_sync import PlaybackStateSync
from .session import SessionContext

__version__ = "0.1.0"

__all__ = [
    "AuthError",
    "AuthStrategy",
    "CRITICAL",
    "CommandError",
    "ConnectionState",
    "Credentials",
    "EnsembleError",
    "NETWORK",
    "NotConnectedError",
    "NotFoundError",
    "PlaybackState",
    "PlaybackStateSync",
    "Player",
    "PlayerRegistry",
    "ProtocolError",
    "RepeatMode",
    "RequestTimeoutError",
    "RetryPolicy",
    "SessionContext",
    "Track",
    "TransportError",
    "TransportSession",
    "create_auth_strategy",
    "retry",
    "setup_logging",
]
