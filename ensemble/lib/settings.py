# Ensemble Core
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Atomic storage for the few values the session core persists:

  server_url          last server the user connected to
  auth_strategy       name of the strategy that issued the credentials
  credentials         serialized credentials map (opaque to this module)
  builtin_player_id   id of the player that represents this device

Writes are atomic (temp file + rename) so a crash mid-write never corrupts
the file.  Location: ``settings.path`` in config.json, else
~/.ensemble/settings.json.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone

from .config import DEFAULT_SETTINGS_PATH, cfg

logger = logging.getLogger("ensemble.settings")


class SettingsStore:
    """Small JSON document with merge-on-save semantics."""

    def __init__(self, path: str | None = None):
        path = path or cfg("settings", "path", default=DEFAULT_SETTINGS_PATH)
        self.path = os.path.expanduser(path)

    def load(self) -> dict:
        """Load settings from disk. Returns {} if missing or unreadable."""
        try:
            with open(self.path) as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, OSError) as e:
            logger.warning("Ignoring unreadable settings %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, **values) -> str:
        """Merge *values* into the stored document and write it atomically.

        A value of None removes the key.
        """
        data = self.load()
        for key, value in values.items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value
        data["updated_at"] = datetime.now(timezone.utc).isoformat()

        d = os.path.dirname(self.path) or "."
        os.makedirs(d, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=d, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(tmp, self.path)
        except Exception:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise
        return self.path

    # ── Typed accessors ──

    @property
    def server_url(self) -> str | None:
        return self.load().get("server_url")

    def save_server_url(self, url: str | None):
        self.save(server_url=url)

    @property
    def builtin_player_id(self) -> str | None:
        return self.load().get("builtin_player_id")

    def save_builtin_player_id(self, player_id: str | None):
        self.save(builtin_player_id=player_id)

    @property
    def auth_strategy(self) -> str | None:
        return self.load().get("auth_strategy")

    def save_credentials(self, strategy_name: str, serialized: dict):
        """Persist credentials produced by ``AuthStrategy.serialize``."""
        self.save(auth_strategy=strategy_name, credentials=serialized)
        logger.info("Stored credentials for strategy %s", strategy_name)

    def load_credentials(self, strategy_name: str) -> dict | None:
        """Return the serialized credentials if they were issued by *strategy_name*."""
        data = self.load()
        if data.get("auth_strategy") != strategy_name:
            return None
        creds = data.get("credentials")
        return creds if isinstance(creds, dict) else None

    def clear_credentials(self):
        self.save(auth_strategy=None, credentials=None)
