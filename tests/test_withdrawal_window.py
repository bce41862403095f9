import calendar
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from app.balance import is_in_request_window, next_request_window
from app.config import WithdrawalWindow

UTC = timezone.utc
SAO_PAULO = ZoneInfo("America/Sao_Paulo")
DEFAULT_WINDOW = WithdrawalWindow()


@pytest.mark.parametrize(
    "year, month",
    [(2025, 2), (2024, 2), (2025, 4), (2025, 1), (2025, 12)],
)
def test_window_open_on_days_one_to_five_only(year, month):
    last_day = calendar.monthrange(year, month)[1]
    for day in range(1, last_day + 1):
        expected = day <= 5
        assert is_in_request_window(date(year, month, day), DEFAULT_WINDOW) is expected


def test_year_boundary_closes_then_opens():
    assert is_in_request_window(date(2025, 12, 31), DEFAULT_WINDOW) is False
    assert is_in_request_window(date(2026, 1, 1), DEFAULT_WINDOW) is True


def test_next_window_is_current_month_while_open():
    now = datetime(2025, 3, 3, 15, 0, tzinfo=UTC)
    start, end = next_request_window(now, UTC, DEFAULT_WINDOW)
    assert start == datetime(2025, 3, 1, tzinfo=UTC)
    assert end == datetime(2025, 3, 6, tzinfo=UTC)


def test_next_window_moves_to_next_month_after_last_day():
    now = datetime(2025, 3, 10, 9, 30, tzinfo=UTC)
    start, end = next_request_window(now, UTC, DEFAULT_WINDOW)
    assert start == datetime(2025, 4, 1, tzinfo=UTC)
    assert end == datetime(2025, 4, 6, tzinfo=UTC)


def test_next_window_rolls_over_the_year():
    now = datetime(2025, 12, 31, 23, 0, tzinfo=UTC)
    start, _ = next_request_window(now, UTC, DEFAULT_WINDOW)
    assert start == datetime(2026, 1, 1, tzinfo=UTC)


def test_window_uses_local_calendar_day_of_configured_timezone():
    # 02:00 UTC on the 6th is still the 5th in Sao Paulo (UTC-3).
    now = datetime(2025, 6, 6, 2, 0, tzinfo=UTC)
    assert is_in_request_window(now.astimezone(SAO_PAULO).date(), DEFAULT_WINDOW) is True
    start, end = next_request_window(now, SAO_PAULO, DEFAULT_WINDOW)
    assert start == datetime(2025, 6, 1, tzinfo=SAO_PAULO)
    assert start.astimezone(UTC) == datetime(2025, 6, 1, 3, 0, tzinfo=UTC)
    assert end == datetime(2025, 6, 6, tzinfo=SAO_PAULO)


def test_custom_window_days():
    window = WithdrawalWindow(start_day=10, end_day=15)
    assert is_in_request_window(date(2025, 5, 9), window) is False
    assert is_in_request_window(date(2025, 5, 10), window) is True
    assert is_in_request_window(date(2025, 5, 15), window) is True
    start, end = next_request_window(datetime(2025, 5, 2, tzinfo=UTC), UTC, window)
    assert start == datetime(2025, 5, 10, tzinfo=UTC)
    assert end == datetime(2025, 5, 16, tzinfo=UTC)


@pytest.mark.parametrize("start_day, end_day", [(0, 5), (6, 5), (1, 31)])
def test_invalid_window_rejected(start_day, end_day):
    with pytest.raises(ValueError):
        WithdrawalWindow(start_day=start_day, end_day=end_day)
