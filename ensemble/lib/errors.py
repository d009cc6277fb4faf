# Ensemble Core
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Error taxonomy for the session core.

    EnsembleError
    ├── TransportError          connection-level failure
    │   ├── RequestTimeoutError no response within deadline
    │   └── NotConnectedError   command issued without a usable session
    ├── AuthError               login rejected, token invalid/expired
    ├── ProtocolError           malformed or unexpected payload
    ├── NotFoundError           player/queue no longer exists server-side
    └── CommandError            any other server-reported failure
"""


class EnsembleError(Exception):
    """Base class for every error raised by the session core."""

    def __init__(self, message: str = "", *, error_code=None, details=None) -> None:
        super().__init__(message)
        self.error_code = error_code
        self.details = details


class TransportError(EnsembleError):
    """Server unreachable, socket closed or handshake failed."""


class RequestTimeoutError(TransportError):
    """No response within the request deadline. Retryable like any transport error."""


class NotConnectedError(TransportError):
    """Command issued while the session is not authenticated/connected."""


class AuthError(EnsembleError):
    """Login rejected or token invalid."""


class ProtocolError(EnsembleError):
    """Response did not have the expected shape."""


class NotFoundError(EnsembleError):
    """Referenced player or queue does not exist (anymore)."""


class CommandError(EnsembleError):
    """Server answered a command with an error_code not covered above."""


# Server error codes, matched case-insensitively when they are strings
AUTH_ERROR_CODES = {401, 403, "unauthorized", "auth_required", "authentication_required",
                    "invalid_token", "token_expired"}
NOT_FOUND_ERROR_CODES = {404, "not_found", "player_not_found", "queue_not_found",
                         "media_not_found"}


def _normalize_code(code):
    if isinstance(code, str):
        return code.strip().lower()
    return code


def error_from_payload(payload: dict, command: str | None = None) -> EnsembleError:
    """Build the matching exception for a ``{error_code, details}`` response."""
    code = payload.get("error_code")
    details = payload.get("details")
    where = f"{command}: " if command else ""
    message = f"{where}{details or 'server error'} (code {code})"

    normalized = _normalize_code(code)
    if normalized in AUTH_ERROR_CODES:
        return AuthError(message, error_code=code, details=details)
    if normalized in NOT_FOUND_ERROR_CODES:
        return NotFoundError(message, error_code=code, details=details)
    return CommandError(message, error_code=code, details=details)
