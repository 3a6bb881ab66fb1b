# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Keepsake: a small personal picture server."""

__version__ = "0.1.0"
