# Ensemble Core
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Pluggable authentication strategies for the session core.

Each strategy knows how to log in, validate stored credentials, build
headers for the WebSocket and for audio streams, and (de)serialize its own
credentials.  Which strategy a server needs is decided by the shell's auth
manager; ``create_auth_strategy`` turns that decision (or the name stored
alongside persisted credentials) into an instance.

Supported names:
  - ``none``             – no login (trusted LAN)
  - ``gateway``          – reverse-proxy basic auth
  - ``music_assistant``  – the server's own login + long-lived token
"""

import logging

import aiohttp

from .base import AuthStrategy, Credentials
from .gateway import GatewayAuthStrategy
from .native import NativeAuthStrategy
from .none import NoAuthStrategy

logger = logging.getLogger("ensemble.auth")

__all__ = [
    "AuthStrategy",
    "Credentials",
    "GatewayAuthStrategy",
    "NativeAuthStrategy",
    "NoAuthStrategy",
    "STRATEGIES",
    "create_auth_strategy",
]

STRATEGIES: dict[str, type[AuthStrategy]] = {
    NoAuthStrategy.name: NoAuthStrategy,
    GatewayAuthStrategy.name: GatewayAuthStrategy,
    NativeAuthStrategy.name: NativeAuthStrategy,
}


def create_auth_strategy(name: str | None,
                         session: aiohttp.ClientSession | None = None) -> AuthStrategy:
    """Instantiate the strategy registered under *name* (None means ``none``)."""
    key = (name or NoAuthStrategy.name).lower()
    try:
        cls = STRATEGIES[key]
    except KeyError:
        raise ValueError(f"Unknown auth strategy: {name!r}") from None
    logger.info("Auth strategy: %s", key)
    return cls(session=session)
