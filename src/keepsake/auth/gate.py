# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

TimeSource = Callable[[], datetime]

VALENTINE_MONTH = 2
VALENTINE_DAY = 14


class AccessGate:
    """Calendar predicate for the protected picture endpoint.

    Open on February 14 and on the anniversary day of the month. Without an
    ``anniversary_month`` the anniversary day matches in every month.
    """

    def __init__(self, anniversary_day: int, anniversary_month: Optional[int] = None):
        if not 1 <= anniversary_day <= 31:
            raise ValueError(f"anniversary_day out of range: {anniversary_day}")
        if anniversary_month is not None and not 1 <= anniversary_month <= 12:
            raise ValueError(f"anniversary_month out of range: {anniversary_month}")
        self.anniversary_day = anniversary_day
        self.anniversary_month = anniversary_month

    def is_open_on(self, when: datetime) -> bool:
        if when.month == VALENTINE_MONTH and when.day == VALENTINE_DAY:
            return True
        if when.day != self.anniversary_day:
            return False
        return self.anniversary_month is None or when.month == self.anniversary_month

    def is_visible_now(self, clock: TimeSource = datetime.now) -> bool:
        return self.is_open_on(clock())
