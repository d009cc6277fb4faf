# Ensemble Core
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Abstract base class for authentication strategies.

Every strategy produces ``Credentials`` tagged with its own name and is the
only code allowed to interpret them.  Header builders and token lookup have
defaults for strategies that carry no token.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from types import MappingProxyType
from typing import Any, Mapping

import aiohttp

logger = logging.getLogger("ensemble.auth")


class Credentials:
    """Immutable, strategy-tagged bundle of authentication material."""

    __slots__ = ("_strategy", "_data")

    def __init__(self, strategy: str, data: Mapping[str, Any] | None = None):
        if not strategy:
            raise ValueError("Credentials need a strategy name")
        object.__setattr__(self, "_strategy", strategy)
        object.__setattr__(self, "_data", MappingProxyType(dict(data or {})))

    def __setattr__(self, name, value):
        raise AttributeError("Credentials are immutable")

    @property
    def strategy(self) -> str:
        return self._strategy

    @property
    def data(self) -> Mapping[str, Any]:
        return self._data

    def get(self, key: str, default=None):
        return self._data.get(key, default)

    def __eq__(self, other):
        if not isinstance(other, Credentials):
            return NotImplemented
        return self._strategy == other._strategy and dict(self._data) == dict(other._data)

    __hash__ = None

    def __repr__(self):
        # Never print secrets
        return f"Credentials(strategy={self._strategy!r}, keys={sorted(self._data)})"


class AuthStrategy(ABC):
    """Interface every authentication strategy implements."""

    name: str = ""

    def __init__(self, session: aiohttp.ClientSession | None = None):
        self._session = session

    @abstractmethod
    async def login(self, server_url: str, username: str | None,
                    password: str | None) -> Credentials | None: ...

    @abstractmethod
    async def validate_credentials(self, server_url: str, credentials: Credentials) -> bool: ...

    # -- Optional: override in strategies that send headers --

    def build_transport_headers(self, credentials: Credentials) -> dict[str, str]:
        self._check(credentials)
        return {}

    def build_streaming_headers(self, credentials: Credentials) -> dict[str, str]:
        self._check(credentials)
        return {}

    def get_token(self, credentials: Credentials) -> str | None:
        """Token for the post-connect ``auth`` command, if this strategy has one."""
        self._check(credentials)
        return None

    # -- Persistence --

    def serialize(self, credentials: Credentials) -> dict:
        self._check(credentials)
        return dict(credentials.data)

    def deserialize(self, data: Mapping[str, Any]) -> Credentials:
        return Credentials(self.name, data)

    # -- Helpers --

    def _check(self, credentials: Credentials):
        if credentials.strategy != self.name:
            raise ValueError(
                f"{self.name} strategy cannot interpret credentials issued by {credentials.strategy}")

    @asynccontextmanager
    async def _client(self):
        """Yield the shared session, or a temporary one that is closed afterwards."""
        if self._session is not None:
            yield self._session
            return
        session = aiohttp.ClientSession()
        try:
            yield session
        finally:
            await session.close()

    async def _post_command(self, url: str, command: str, args: dict | None = None, *,
                            headers: dict | None = None,
                            timeout: float = 10) -> tuple[int, Any]:
        """POST ``{command, args}`` to the HTTP API. Returns (status, parsed JSON or None)."""
        body: dict[str, Any] = {"command": command}
        if args is not None:
            body["args"] = args
        async with self._client() as session:
            async with session.post(
                url,
                json=body,
                headers={"Content-Type": "application/json", **(headers or {})},
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as resp:
                text = await resp.text()
                try:
                    data = json.loads(text) if text else None
                except json.JSONDecodeError:
                    logger.debug("%s returned non-JSON body (HTTP %d)", command, resp.status)
                    data = None
                return resp.status, data


# Errors a strategy treats as "server not reachable" rather than a bug
NETWORK_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)
