# Ensemble Core
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""Server URL helpers: user input → base URL → HTTP API / WebSocket endpoints."""

from urllib.parse import urlsplit, urlunsplit

DEFAULT_PORT = 8095
API_PATH = "/api"
WS_PATH = "/ws"

_LOCAL_PREFIXES = ("192.", "10.", "172.", "127.")


def normalize_server_url(url: str) -> str:
    """Add a scheme when missing: http for LAN/loopback hosts, https otherwise."""
    url = (url or "").strip().rstrip("/")
    if not url:
        raise ValueError("Server URL is empty")
    if url.startswith(("http://", "https://")):
        return url
    host = url.split("/", 1)[0].split(":", 1)[0]
    if host == "localhost" or host.startswith(_LOCAL_PREFIXES):
        return f"http://{url}"
    return f"https://{url}"


def _netloc(parts) -> str:
    host = parts.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    port = parts.port
    if port is None and parts.scheme == "http":
        port = DEFAULT_PORT
    return f"{host}:{port}" if port else host


def api_url(server_url: str) -> str:
    """``http(s)://host[:port]/api``; plain http defaults to port 8095."""
    parts = urlsplit(normalize_server_url(server_url))
    return urlunsplit((parts.scheme, _netloc(parts), API_PATH, "", ""))


def websocket_url(server_url: str) -> str:
    """``ws(s)://host[:port]/ws`` for the persistent command connection."""
    parts = urlsplit(normalize_server_url(server_url))
    scheme = "wss" if parts.scheme == "https" else "ws"
    return urlunsplit((scheme, _netloc(parts), WS_PATH, "", ""))
