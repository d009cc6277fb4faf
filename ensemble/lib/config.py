# Ensemble Core
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Shared configuration loader for the Ensemble session core.

Loads a single JSON config file.  Search order:
  1. $ENSEMBLE_CONFIG               (explicit override)
  2. /etc/ensemble/config.json      (system-wide install)
  3. config.json                    (CWD — handy for local dev)

Secrets (ENSEMBLE_USERNAME, ENSEMBLE_PASSWORD) stay in environment variables.

Usage:
    from ensemble.lib.config import cfg

    server_url   = cfg("server", "url")
    poll         = cfg("players", "poll_interval", default=2)
    log_section  = cfg("logging")  # returns the whole dict
"""

import json
import logging
import os

logger = logging.getLogger("ensemble.config")

_config: dict | None = None

# Defaults used when a key is absent from the config file
DEFAULT_REQUEST_TIMEOUT = 10
DEFAULT_RECONNECT_ATTEMPTS = 3
DEFAULT_CACHE_SECONDS = 30
DEFAULT_POLL_INTERVAL = 2
DEFAULT_SETTLE_DELAY = 0.5
DEFAULT_SETTINGS_PATH = os.path.join("~", ".ensemble", "settings.json")


def _search_paths() -> list[str]:
    paths = []
    override = os.getenv("ENSEMBLE_CONFIG")
    if override:
        paths.append(override)
    paths.extend(["/etc/ensemble/config.json", "config.json"])
    return paths


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    server = config.get("server")
    if not isinstance(server, dict):
        server = {}
    if not server.get("url"):
        logger.warning("Config %s: missing server.url — a URL must be passed to the session", path)
    players = config.get("players")
    if not isinstance(players, dict):
        players = {}
    for key in ("cache_seconds", "poll_interval", "settle_delay"):
        val = players.get(key)
        if val is not None and (not isinstance(val, (int, float)) or val <= 0):
            logger.warning("Config %s: players.%s should be a positive number, got %r", path, key, val)
    attempts = server.get("reconnect_attempts")
    if attempts is not None and (not isinstance(attempts, int) or attempts < 0):
        logger.warning("Config %s: server.reconnect_attempts should be >= 0, got %r", path, attempts)


def _read(path: str) -> dict | None:
    """Parse one candidate file. None means "try the next path"."""
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        return None
    except json.JSONDecodeError as e:
        logger.error("Invalid JSON in %s: %s", path, e)
        return None
    except OSError as e:
        logger.warning("Cannot read config %s: %s", path, e)
        return None
    if not isinstance(data, dict):
        logger.error("Config %s must hold a JSON object, got %s", path, type(data).__name__)
        return None
    return data


def load_config() -> dict:
    """Return the parsed config, reading it on first use.

    A file that cannot be read as a JSON object is skipped in favour of the
    next candidate; with none left the config is empty.
    """
    global _config
    if _config is None:
        _config = _load_first()
    return _config


def _load_first() -> dict:
    for path in _search_paths():
        data = _read(path)
        if data is None:
            continue
        source = "$ENSEMBLE_CONFIG" if path == os.getenv("ENSEMBLE_CONFIG") else "search path"
        logger.info("Config loaded from %s (%s)", path, source)
        _validate(data, path)
        return data
    logger.warning("No usable config.json found — using empty config")
    return {}


def cfg(section: str, key: str | None = None, *, default=None):
    """Look up a whole section or one key inside it.

    cfg("server")                               → the server dict, or *default*
    cfg("server", "url")                        → server.url, or *default*
    cfg("players", "poll_interval", default=2)

    A key lookup on a section that is not an object yields *default*.
    """
    section_value = load_config().get(section)
    if key is None:
        return default if section_value is None else section_value
    if not isinstance(section_value, dict):
        return default
    return section_value.get(key, default)


def reload_config() -> dict:
    """Drop the cached config and read the files again."""
    global _config
    _config = None
    return load_config()
