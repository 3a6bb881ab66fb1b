# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Authentication and access control.

This package provides:
- Password hashing/verification (argon2id, self-describing encoded hashes)
- Bearer tokens signed with HS256 (PyJWT)
- Single-use registration keys and the admin key gate
- The calendar gate for the protected picture
"""
