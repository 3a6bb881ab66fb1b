# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Error taxonomy.

Core components raise these; only the HTTP layer (keepsake.app) turns them into
responses. Each class carries a stable ``kind`` used for logs and metrics, so a
log line never needs the message (which could echo user input).
"""

from __future__ import annotations


class KeepsakeError(Exception):
    kind = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)


# --- credentials / registration ---


class InvalidCredentials(KeepsakeError):
    kind = "invalid_credentials"


class UserAlreadyExists(KeepsakeError):
    kind = "username_exists"


class InvalidUsername(KeepsakeError):
    kind = "invalid_username"


class InvalidRegistrationKey(KeepsakeError):
    kind = "invalid_key"


class Unauthorized(KeepsakeError):
    kind = "unauthorized"


# --- tokens ---


class TokenError(KeepsakeError):
    kind = "invalid_token"


class MalformedToken(TokenError):
    kind = "malformed_token"


class InvalidSignature(TokenError):
    kind = "invalid_signature"


class InvalidAlgorithm(TokenError):
    kind = "invalid_algorithm"


class MissingClaim(TokenError):
    kind = "missing_claim"


# --- hashing / infrastructure ---


class HashFormatError(KeepsakeError, ValueError):
    kind = "hash_format"


class InfrastructureError(KeepsakeError):
    kind = "infrastructure"


# --- pictures ---


class AccessDenied(KeepsakeError):
    kind = "access_denied"


class PathTraversal(KeepsakeError):
    kind = "invalid_path"


class PictureNotFound(KeepsakeError):
    kind = "not_found"
