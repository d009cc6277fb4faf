# Ensemble Core
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Gateway auth strategy — a reverse proxy in front of the server asks for
HTTP basic auth.  Credentials are the static username/password pair.
"""

import base64
import logging

from ..urls import api_url, normalize_server_url
from .base import NETWORK_ERRORS, AuthStrategy, Credentials

logger = logging.getLogger("ensemble.auth.gateway")

PROBE_TIMEOUT = 5


class GatewayAuthStrategy(AuthStrategy):
    """Basic auth header on every request, WebSocket and stream alike."""

    name = "gateway"

    async def login(self, server_url, username, password) -> Credentials | None:
        if not username:
            logger.warning("Gateway login needs a username")
            return None
        return Credentials(self.name, {
            "username": username,
            "password": password or "",
            "server_url": normalize_server_url(server_url),
        })

    async def validate_credentials(self, server_url, credentials) -> bool:
        """Probe the API through the proxy; 401/403 means the pair was refused."""
        headers = self.build_transport_headers(credentials)
        try:
            status, _ = await self._post_command(
                api_url(server_url), "server/info", headers=headers, timeout=PROBE_TIMEOUT)
        except NETWORK_ERRORS as e:
            logger.warning("Gateway probe failed: %s", e)
            return False
        if status in (401, 403):
            logger.info("Gateway rejected credentials (HTTP %d)", status)
            return False
        return True

    def build_transport_headers(self, credentials) -> dict[str, str]:
        self._check(credentials)
        pair = f"{credentials.get('username', '')}:{credentials.get('password', '')}"
        encoded = base64.b64encode(pair.encode("utf-8")).decode("ascii")
        return {"Authorization": f"Basic {encoded}"}

    def build_streaming_headers(self, credentials) -> dict[str, str]:
        return self.build_transport_headers(credentials)
