import re

import argon2
import pytest

from keepsake.auth.passwords import Argon2Params, PasswordHasher, decode_hash
from keepsake.errors import HashFormatError

ENCODED_RE = re.compile(r"^\$argon2id\$v=19\$m=1024,t=1,p=1\$[A-Za-z0-9+/]+\$[A-Za-z0-9+/]+$")


def test_hash_then_verify(hasher):
    encoded = hasher.hash("correct horse")
    assert ENCODED_RE.match(encoded)
    assert hasher.verify(encoded, "correct horse")
    assert not hasher.verify(encoded, "correct hors")
    assert not hasher.verify(encoded, "")


def test_salt_is_random(hasher):
    a, b = hasher.hash("pw"), hasher.hash("pw")
    assert a != b
    assert decode_hash(a).salt != decode_hash(b).salt
    assert len(decode_hash(a).salt) == 16


def test_verify_uses_stored_parameters(hasher):
    old = PasswordHasher(Argon2Params(time_cost=2, memory_cost=2048, parallelism=2, hash_len=32))
    encoded = old.hash("pw")
    # The current hasher has different costs but still accepts the old hash.
    assert hasher.verify(encoded, "pw")
    assert hasher.needs_rehash(encoded)
    assert not hasher.needs_rehash(hasher.hash("pw"))


@pytest.mark.parametrize("hash_len", [16, 17, 20, 31, 64])
def test_verify_uses_exact_stored_digest_length(hasher, hash_len):
    other = PasswordHasher(Argon2Params(time_cost=1, memory_cost=1024, parallelism=1, hash_len=hash_len))
    encoded = other.hash("pw")
    assert len(decode_hash(encoded).digest) == hash_len
    assert hasher.verify(encoded, "pw")
    assert not hasher.verify(encoded, "nope")


def test_verifies_hashes_from_argon2_cffi():
    encoded = argon2.PasswordHasher(time_cost=1, memory_cost=1024, parallelism=1).hash("pw")
    assert PasswordHasher().verify(encoded, "pw")
    assert not PasswordHasher().verify(encoded, "pw2")


def test_tampered_parameters_fail_verification(hasher):
    encoded = hasher.hash("pw")
    tampered = encoded.replace("t=1", "t=2")
    assert not hasher.verify(tampered, "pw")


@pytest.mark.parametrize(
    "encoded",
    [
        "",
        "plaintext",
        "$argon2id$v=19$m=1024,t=1,p=1$c2FsdHNhbHRzYWx0",
        "$argon2id$v=19$m=1024,t=1,p=1$c2FsdHNhbHRzYWx0$ZGlnZXN0$extra",
        "argon2id$v=19$m=1024,t=1,p=1$c2FsdHNhbHRzYWx0$ZGlnZXN0ZGlnZXN0",
        "$bcrypt$v=19$m=1024,t=1,p=1$c2FsdHNhbHRzYWx0$ZGlnZXN0ZGlnZXN0",
        "$argon2id$v=99$m=1024,t=1,p=1$c2FsdHNhbHRzYWx0$ZGlnZXN0ZGlnZXN0",
        "$argon2id$19$m=1024,t=1,p=1$c2FsdHNhbHRzYWx0$ZGlnZXN0ZGlnZXN0",
        "$argon2id$v=19$m=x,t=1,p=1$c2FsdHNhbHRzYWx0$ZGlnZXN0ZGlnZXN0",
        "$argon2id$v=19$t=1,m=1024,p=1$c2FsdHNhbHRzYWx0$ZGlnZXN0ZGlnZXN0",
        "$argon2id$v=19$m=1024,t=1,p=1$!!!!$ZGlnZXN0ZGlnZXN0",
        "$argon2id$v=19$m=1024,t=1,p=1$c2FsdHNhbHRzYWx0$",
        "$argon2id$v=19$m=1024,t=1,p=1$c2FsdHNhbHRzYWx0$ZGlnZXN0ZGlnZXN0==",
    ],
)
def test_malformed_hash_is_an_error_not_a_mismatch(hasher, encoded):
    with pytest.raises(HashFormatError):
        hasher.verify(encoded, "pw")


def test_unusable_parameters_are_a_format_error(hasher):
    # Decodes fine, but argon2 refuses zero passes.
    encoded = hasher.hash("pw").replace("t=1", "t=0")
    with pytest.raises(HashFormatError):
        hasher.verify(encoded, "pw")


def test_decode_hash_fields(hasher):
    h = decode_hash(hasher.hash("pw"))
    assert (h.algorithm, h.version) == ("argon2id", 0x13)
    assert (h.memory_cost, h.time_cost, h.parallelism) == (1024, 1, 1)
    assert len(h.digest) == 32
