# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import base64
import binascii
import hmac
import re
import secrets
from dataclasses import dataclass

from argon2 import Type
from argon2.exceptions import HashingError
from argon2.low_level import ARGON2_VERSION, hash_secret_raw

from keepsake.errors import HashFormatError, InfrastructureError

SALT_LEN = 16

_TYPES = {"argon2id": Type.ID, "argon2i": Type.I, "argon2d": Type.D}
_VERSION_RE = re.compile(r"^v=(\d+)$")
_PARAMS_RE = re.compile(r"^m=(\d+),t=(\d+),p=(\d+)$")


@dataclass(frozen=True)
class Argon2Params:
    time_cost: int = 1
    memory_cost: int = 64 * 1024  # KiB
    parallelism: int = 4
    hash_len: int = 32


@dataclass(frozen=True)
class DecodedHash:
    algorithm: str
    version: int
    memory_cost: int
    time_cost: int
    parallelism: int
    salt: bytes
    digest: bytes


def _b64encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(value: str, what: str) -> bytes:
    if not value or "=" in value:
        raise HashFormatError(f"invalid {what} encoding")
    try:
        return base64.b64decode(value + "=" * (-len(value) % 4), validate=True)
    except (binascii.Error, ValueError) as e:
        raise HashFormatError(f"invalid {what} encoding") from e


def decode_hash(encoded: str) -> DecodedHash:
    """Split ``$argon2id$v=..$m=..,t=..,p=..$salt$digest`` into its fields."""
    parts = (encoded or "").split("$")
    if len(parts) != 6 or parts[0] != "":
        raise HashFormatError("invalid hash format")

    algorithm = parts[1]
    if algorithm not in _TYPES:
        raise HashFormatError(f"unsupported algorithm '{algorithm}'")

    mv = _VERSION_RE.match(parts[2])
    if not mv:
        raise HashFormatError("failed to parse version")
    if int(mv.group(1)) not in (0x10, 0x13):
        raise HashFormatError(f"unsupported version {mv.group(1)}")

    mp = _PARAMS_RE.match(parts[3])
    if not mp:
        raise HashFormatError("failed to parse parameters")

    return DecodedHash(
        algorithm=algorithm,
        version=int(mv.group(1)),
        memory_cost=int(mp.group(1)),
        time_cost=int(mp.group(2)),
        parallelism=int(mp.group(3)),
        salt=_b64decode(parts[4], "salt"),
        digest=_b64decode(parts[5], "digest"),
    )


class PasswordHasher:
    """Argon2id hashing with self-describing encoded output.

    The encoded string carries every parameter needed for verification, so
    cost parameters can change between deployments without invalidating the
    credentials already stored.
    """

    def __init__(self, params: Argon2Params | None = None):
        self.params = params or Argon2Params()

    def hash(self, password: str) -> str:
        try:
            salt = secrets.token_bytes(SALT_LEN)
        except (OSError, NotImplementedError) as e:
            raise InfrastructureError("failed to generate salt") from e

        p = self.params
        digest = hash_secret_raw(
            password.encode("utf-8"),
            salt,
            time_cost=p.time_cost,
            memory_cost=p.memory_cost,
            parallelism=p.parallelism,
            hash_len=p.hash_len,
            type=Type.ID,
            version=ARGON2_VERSION,
        )
        return "$argon2id$v=%d$m=%d,t=%d,p=%d$%s$%s" % (
            ARGON2_VERSION,
            p.memory_cost,
            p.time_cost,
            p.parallelism,
            _b64encode(salt),
            _b64encode(digest),
        )

    def verify(self, encoded: str, password: str) -> bool:
        """Return True when ``password`` matches ``encoded``.

        Raises HashFormatError for a malformed hash. The digest is re-derived
        with the stored parameters and the stored digest length.
        """
        h = decode_hash(encoded)
        try:
            candidate = hash_secret_raw(
                password.encode("utf-8"),
                h.salt,
                time_cost=h.time_cost,
                memory_cost=h.memory_cost,
                parallelism=h.parallelism,
                hash_len=len(h.digest),
                type=_TYPES[h.algorithm],
                version=h.version,
            )
        except (HashingError, OverflowError) as e:
            raise HashFormatError(f"unusable hash parameters: {e}") from e
        return hmac.compare_digest(candidate, h.digest)

    def needs_rehash(self, encoded: str) -> bool:
        h = decode_hash(encoded)
        p = self.params
        return (
            h.algorithm != "argon2id"
            or h.version != ARGON2_VERSION
            or h.memory_cost != p.memory_cost
            or h.time_cost != p.time_cost
            or h.parallelism != p.parallelism
            or len(h.digest) != p.hash_len
        )
