# Ensemble Core
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Music Assistant native authentication (server schema 28+).

Flow:
  1. WebSocket connects and the server_info message says auth is required
  2. POST /api auth/login with username/password → short-lived access token
  3. Best-effort POST /api auth/create_token → long-lived token for reconnects
  4. The transport sends the ``auth`` command with the preferred token

Token preference everywhere: long-lived token first, then access token.
"""

import logging

from ..urls import api_url, normalize_server_url
from .base import NETWORK_ERRORS, AuthStrategy, Credentials

logger = logging.getLogger("ensemble.auth.native")

LOGIN_TIMEOUT = 10
VALIDATE_TIMEOUT = 5
TOKEN_NAME = "Ensemble Mobile App"


class NativeAuthStrategy(AuthStrategy):
    """Username/password login against the server's own auth endpoints."""

    name = "music_assistant"

    async def login(self, server_url, username, password) -> Credentials | None:
        """Return credentials with ``access_token`` (and ``long_lived_token``
        when the server mints one), or None when the login is refused."""
        base_url = normalize_server_url(server_url)
        endpoint = api_url(base_url)
        logger.info("Attempting login to %s", endpoint)

        try:
            status, data = await self._post_command(
                endpoint, "auth/login",
                {"username": username, "password": password},
                timeout=LOGIN_TIMEOUT,
            )
        except NETWORK_ERRORS as e:
            logger.error("Login error: %s", e)
            return None

        if status != 200:
            logger.error("Authentication failed: HTTP %d", status)
            return None
        if not isinstance(data, dict):
            logger.error("Login response is not a JSON object")
            return None
        if "error_code" in data:
            logger.error("Login failed: %s - %s", data.get("error_code"), data.get("details"))
            return None

        result = data.get("result")
        access_token = result.get("access_token") if isinstance(result, dict) else None
        if not access_token:
            logger.error("No access token in login response")
            return None
        logger.info("Got access token")

        long_lived_token = await self._create_long_lived_token(endpoint, access_token)

        payload = {
            "access_token": access_token,
            "username": username,
            "server_url": base_url,
        }
        if long_lived_token:
            payload["long_lived_token"] = long_lived_token
        return Credentials(self.name, payload)

    async def _create_long_lived_token(self, endpoint: str, access_token: str) -> str | None:
        """Mint a durable token. Any failure is non-fatal."""
        try:
            status, data = await self._post_command(
                endpoint, "auth/create_token", {"name": TOKEN_NAME},
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=LOGIN_TIMEOUT,
            )
        except NETWORK_ERRORS as e:
            logger.warning("Long-lived token creation failed: %s (non-fatal)", e)
            return None

        if status == 200 and isinstance(data, dict) and "error_code" not in data:
            result = data.get("result")
            token = result.get("token") if isinstance(result, dict) else None
            if token:
                logger.info("Created long-lived token")
                return token

        logger.warning("Could not create long-lived token (HTTP %d, non-fatal)", status)
        return None

    async def validate_credentials(self, server_url, credentials) -> bool:
        """Probe server/info with the preferred token."""
        token = self.get_token(credentials)
        if not token:
            return False
        try:
            status, data = await self._post_command(
                api_url(server_url), "server/info",
                headers={"Authorization": f"Bearer {token}"},
                timeout=VALIDATE_TIMEOUT,
            )
        except NETWORK_ERRORS as e:
            logger.warning("Token validation failed: %s", e)
            return False
        return status == 200 and isinstance(data, dict) and "error_code" not in data

    def get_token(self, credentials) -> str | None:
        self._check(credentials)
        return credentials.get("long_lived_token") or credentials.get("access_token")

    def build_transport_headers(self, credentials) -> dict[str, str]:
        # Auth normally happens after connect via the ``auth`` command; the
        # header only helps servers that check it on the handshake.
        token = self.get_token(credentials)
        return {"Authorization": f"Bearer {token}"} if token else {}

    def build_streaming_headers(self, credentials) -> dict[str, str]:
        return self.build_transport_headers(credentials)
