# Ensemble Core
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
No-auth strategy — servers on a trusted LAN without any login step.
"""

from ..urls import normalize_server_url
from .base import AuthStrategy, Credentials


class NoAuthStrategy(AuthStrategy):
    """Credentials carry only the server URL; no headers, always valid."""

    name = "none"

    async def login(self, server_url, username=None, password=None) -> Credentials:
        return Credentials(self.name, {"server_url": normalize_server_url(server_url)})

    async def validate_credentials(self, server_url, credentials) -> bool:
        self._check(credentials)
        return True
