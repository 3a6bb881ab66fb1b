# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import logging
from typing import List, Optional

from keepsake.auth.keys import AdminKeyGate, RegistrationKeyRegistry
from keepsake.auth.passwords import PasswordHasher
from keepsake.auth.tokens import Principal, TokenService
from keepsake.errors import (
    HashFormatError,
    InfrastructureError,
    InvalidCredentials,
    InvalidRegistrationKey,
    InvalidUsername,
)
from keepsake.infra.store import SQLiteStore
from keepsake.metrics import Metrics
from keepsake.permissions import RequestAuthenticator

logger = logging.getLogger(__name__)


def normalize_username(username: str) -> str:
    return (username or "").strip().lower()


class AuthService:
    """Registration, login, refresh and key management.

    Every public method either returns a result or raises a KeepsakeError;
    building the HTTP response is left to the caller. Each call bumps the
    ``<op>`` counter with ``successful`` or the error kind.
    """

    def __init__(
        self,
        *,
        store: SQLiteStore,
        hasher: PasswordHasher,
        tokens: TokenService,
        keys: RegistrationKeyRegistry,
        admin: AdminKeyGate,
        metrics: Metrics,
    ):
        self.store = store
        self.hasher = hasher
        self.tokens = tokens
        self.keys = keys
        self.admin = admin
        self.metrics = metrics
        self.authenticator = RequestAuthenticator(tokens)

    # ------------------ register ------------------

    def register(self, username: str, password: str, key: str) -> str:
        try:
            token = self._register(normalize_username(username), password, key)
        except Exception as e:
            self.metrics.observe("register", e)
            raise
        self.metrics.observe("register")
        return token

    def _register(self, username: str, password: str, key: str) -> str:
        # A token must always carry a non-empty username.
        if not username:
            raise InvalidUsername("username must not be blank")

        # Cheap rejection before paying for a hash. Not authoritative: the key
        # is consumed inside the transaction below.
        if not self.keys.contains(key):
            raise InvalidRegistrationKey("invalid key")

        password_hash = self.hasher.hash(password)

        with self.store.transaction() as tx:
            self.keys.consume(key, tx=tx)
            user = self.store.create_user(username, password_hash, tx=tx)

        logger.info("user registered (user_id=%d)", user.id)
        return self.tokens.issue(Principal(user_id=user.id, username=user.username))

    # ------------------ login ------------------

    def login(self, username: str, password: str) -> str:
        try:
            token = self._login(normalize_username(username), password)
        except Exception as e:
            self.metrics.observe("login", e)
            raise
        self.metrics.observe("login")
        return token

    def _login(self, username: str, password: str) -> str:
        user = self.store.get_user(username)
        if user is None:
            raise InvalidCredentials("invalid username or password")

        try:
            valid = self.hasher.verify(user.password, password)
        except HashFormatError as e:
            raise InfrastructureError(f"stored hash for user_id={user.id} is malformed") from e
        if not valid:
            raise InvalidCredentials("invalid username or password")

        if self.hasher.needs_rehash(user.password):
            logger.info("password hash for user_id=%d uses outdated parameters", user.id)

        return self.tokens.issue(Principal(user_id=user.id, username=user.username))

    # ------------------ refresh ------------------

    def refresh(self, authorization: Optional[str]) -> str:
        try:
            principal = self.authenticator.authenticate(authorization)
        except Exception as e:
            self.metrics.observe("refresh", e)
            raise
        self.metrics.observe("refresh")
        return self.tokens.issue(principal)

    # ------------------ keys (admin) ------------------

    def authorize_admin(self, api_key: Optional[str]) -> None:
        try:
            self.admin.require(api_key)
        except Exception as e:
            self.metrics.observe("keys", e)
            raise

    def list_keys(self, api_key: Optional[str]) -> List[str]:
        self.authorize_admin(api_key)
        try:
            keys = list(self.keys.list())
        except Exception as e:
            self.metrics.observe("keys", e)
            raise
        self.metrics.observe("keys")
        return keys

    def add_key(self, key: str) -> None:
        """Store a new registration key. The caller has already run ``authorize_admin``."""
        try:
            self.keys.add(key)
        except Exception as e:
            self.metrics.observe("keys", e)
            raise
        self.metrics.observe("keys")
        logger.info("registration key added")
