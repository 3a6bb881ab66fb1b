# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from typing import Optional

from fastapi import Request

from keepsake.auth.tokens import Principal, TokenService
from keepsake.errors import Unauthorized

BEARER_PREFIX = "Bearer "


class RequestAuthenticator:
    """Turn an ``Authorization`` header into a Principal.

    Never talks to storage: a valid signature is the whole proof of identity.
    """

    def __init__(self, tokens: TokenService):
        self.tokens = tokens

    @staticmethod
    def bearer_token(header: Optional[str]) -> str:
        if not header:
            raise Unauthorized("Authorization header is missing")
        if not header.startswith(BEARER_PREFIX):
            raise Unauthorized("Authorization header must start with Bearer")
        token = header[len(BEARER_PREFIX):]
        if not token:
            raise Unauthorized("Token is missing")
        return token

    def authenticate(self, header: Optional[str]) -> Principal:
        return self.tokens.validate(self.bearer_token(header))


def require_principal(request: Request) -> Principal:
    """FastAPI dependency for protected routes.

    Auth errors propagate to the app's error handler, which answers 401 and
    logs the error kind with the request id.
    """
    authenticator: RequestAuthenticator = request.app.state.authenticator
    principal = authenticator.authenticate(request.headers.get("Authorization"))
    request.state.principal = principal
    return principal


def require_admin(request: Request) -> None:
    """FastAPI dependency for key management: the ``api_key`` header must match."""
    request.app.state.auth_service.authorize_admin(request.headers.get("api_key"))
