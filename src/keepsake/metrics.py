# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Request counters.

Counters live on a ``CollectorRegistry`` owned by each ``Metrics`` instance
and passed into the services that record them. Nothing is registered on the
process-wide default registry, so two apps (or two tests) never share counts.
"""

from __future__ import annotations

from typing import Dict, Optional

from prometheus_client import CollectorRegistry, Counter, generate_latest

from keepsake.errors import InfrastructureError, KeepsakeError

_COUNTERS = {
    "login": ("auth_login_attempts_total", "Total number of login attempts."),
    "register": ("auth_register_attempts_total", "Total number of registration attempts."),
    "refresh": ("auth_refresh_attempts_total", "Total number of token refresh attempts."),
    "keys": ("auth_key_requests_total", "Total number of registration key management requests."),
    "pictures": ("pictures_get_requests_total", "Total number of get pictures requests."),
    "picture": ("pictures_single_get_requests_total", "Total number of get single picture requests."),
    "pictures_total": ("pictures_total_get_requests_total", "Total number of get total pictures requests."),
    "upload": ("pictures_upload_requests_total", "Total number of upload picture requests."),
}


class Metrics:
    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self._counters: Dict[str, Counter] = {
            op: Counter(name, doc, ["status"], registry=self.registry) for op, (name, doc) in _COUNTERS.items()
        }

    def inc(self, op: str, status: str) -> None:
        self._counters[op].labels(status=status).inc()

    def observe(self, op: str, exc: Optional[BaseException] = None) -> None:
        """Count one outcome of ``op``: successful, a core error kind, or error."""
        if exc is None:
            status = "successful"
        elif isinstance(exc, KeepsakeError) and not isinstance(exc, InfrastructureError):
            status = exc.kind
        else:
            status = "error"
        self.inc(op, status)

    def value(self, op: str, status: str) -> float:
        name = _COUNTERS[op][0]
        return self.registry.get_sample_value(name, {"status": status}) or 0.0

    def render(self) -> bytes:
        return generate_latest(self.registry)
