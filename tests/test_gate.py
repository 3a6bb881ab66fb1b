from datetime import datetime

import pytest

from keepsake.auth.gate import AccessGate


@pytest.mark.parametrize(
    "when, expected",
    [
        (datetime(2024, 2, 14), True),
        (datetime(2023, 2, 14, 23, 59), True),
        (datetime(2024, 2, 15), False),
        (datetime(2024, 3, 14), False),
        (datetime(2024, 1, 7), True),
        (datetime(2024, 11, 7), True),
        (datetime(2024, 11, 8), False),
        (datetime(2024, 2, 7), True),
    ],
)
def test_every_month_anniversary(when, expected):
    assert AccessGate(7).is_open_on(when) is expected


def test_anniversary_month_narrows_the_rule():
    gate = AccessGate(7, anniversary_month=6)
    assert gate.is_open_on(datetime(2024, 6, 7))
    assert not gate.is_open_on(datetime(2024, 7, 7))
    assert gate.is_open_on(datetime(2024, 2, 14))


def test_anniversary_on_valentines_day():
    gate = AccessGate(14)
    assert gate.is_open_on(datetime(2024, 2, 14))
    assert gate.is_open_on(datetime(2024, 5, 14))
    assert not gate.is_open_on(datetime(2024, 5, 15))


def test_day_31_never_matches_short_months():
    gate = AccessGate(31)
    assert gate.is_open_on(datetime(2024, 1, 31))
    assert not gate.is_open_on(datetime(2024, 4, 30))


def test_uses_the_injected_clock():
    gate = AccessGate(7)
    assert gate.is_visible_now(lambda: datetime(2024, 2, 14))
    assert not gate.is_visible_now(lambda: datetime(2024, 2, 15))


@pytest.mark.parametrize("day, month", [(0, None), (32, None), (1, 0), (1, 13)])
def test_out_of_range_configuration(day, month):
    with pytest.raises(ValueError):
        AccessGate(day, month)
