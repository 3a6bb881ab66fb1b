# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import Any, Dict

import jwt
from jwt.exceptions import InvalidAlgorithmError, InvalidSignatureError, InvalidTokenError

from keepsake.errors import InvalidAlgorithm, InvalidSignature, MalformedToken, MissingClaim

HMAC_ALGORITHMS = ("HS256", "HS384", "HS512")
SIGNING_ALGORITHM = "HS256"

# Largest integer a JSON number (IEEE double) carries without loss.
MAX_SAFE_INT = 2**53 - 1


@dataclass(frozen=True)
class Principal:
    user_id: int
    username: str


def _canonical_b64url(segment: str) -> bool:
    if "=" in segment:
        return False
    try:
        raw = base64.b64decode(segment + "=" * (-len(segment) % 4), altchars=b"-_", validate=True)
    except (binascii.Error, ValueError):
        return False
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=") == segment


def _user_id(value: Any) -> int:
    if isinstance(value, bool):
        raise MissingClaim("user_id is not a number")
    if isinstance(value, float):
        if not value.is_integer():
            raise MissingClaim("user_id is not an integer")
        value = int(value)
    elif not isinstance(value, int):
        raise MissingClaim("user_id not found in claims")
    if abs(value) > MAX_SAFE_INT:
        raise MissingClaim("user_id out of range")
    return value


def principal_from_claims(claims: Dict[str, Any]) -> Principal:
    if "user_id" not in claims:
        raise MissingClaim("user_id not found in claims")
    user_id = _user_id(claims["user_id"])
    username = claims.get("username")
    if not isinstance(username, str) or not username:
        raise MissingClaim("username not found in claims")
    return Principal(user_id=user_id, username=username)


class TokenService:
    """Issue and validate HS256 bearer tokens carrying a Principal.

    Validation is pure: it performs no I/O and logs nothing, callers decide
    what to record about a failure.
    """

    def __init__(self, secret: bytes):
        if not secret:
            raise ValueError("token secret must not be empty")
        self._secret = secret

    def issue(self, principal: Principal) -> str:
        claims = {"user_id": principal.user_id, "username": principal.username}
        return jwt.encode(claims, self._secret, algorithm=SIGNING_ALGORITHM)

    def validate(self, token: str) -> Principal:
        parts = token.split(".") if isinstance(token, str) else []
        if len(parts) != 3 or not parts[0] or not parts[1]:
            raise MalformedToken("token must have three segments")

        try:
            header = jwt.get_unverified_header(token)
        except InvalidTokenError as e:
            raise MalformedToken("failed to parse token header") from e

        alg = header.get("alg")
        if alg not in HMAC_ALGORITHMS:
            raise InvalidAlgorithm(f"unexpected signing method: {alg}")

        # A non-canonical signature segment can decode to the same bytes as
        # the real one; reject it before the HMAC check.
        if not _canonical_b64url(parts[2]):
            raise InvalidSignature("signature segment is not valid base64url")

        try:
            claims = jwt.decode(token, self._secret, algorithms=list(HMAC_ALGORITHMS))
        except InvalidSignatureError as e:
            raise InvalidSignature("signature verification failed") from e
        except InvalidAlgorithmError as e:
            raise InvalidAlgorithm(str(e)) from e
        except InvalidTokenError as e:
            raise MalformedToken("failed to parse token") from e

        return principal_from_claims(claims)
