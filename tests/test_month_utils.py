from datetime import date

from churnwise.utils.month_utils import (
    format_date,
    is_within_window,
    months_after,
    months_before,
    months_between,
)


# --- months_before / months_after ---

def test_months_before_same_day():
    assert months_before(date(2025, 6, 15), 24) == date(2023, 6, 15)


def test_months_after_crosses_year():
    assert months_after(date(2024, 11, 10), 3) == date(2025, 2, 10)


def test_months_after_clamps_to_month_end():
    assert months_after(date(2025, 1, 31), 1) == date(2025, 2, 28)


def test_months_after_clamps_leap_year():
    assert months_after(date(2023, 1, 31), 13) == date(2024, 2, 29)


def test_months_before_clamps_to_month_end():
    assert months_before(date(2025, 3, 31), 1) == date(2025, 2, 28)


# --- months_between ---

def test_months_between_whole_months():
    assert months_between(date(2023, 6, 15), date(2025, 6, 15)) == 24


def test_months_between_partial_month_floors():
    assert months_between(date(2025, 1, 20), date(2025, 3, 19)) == 1


def test_months_between_negative():
    assert months_between(date(2025, 6, 15), date(2025, 1, 15)) == -5


# --- is_within_window ---

def test_within_window_counts_until_age_out():
    opened = date(2023, 6, 16)
    assert is_within_window(opened, date(2025, 6, 15), 24)


def test_within_window_stops_counting_on_age_out_date():
    opened = date(2023, 6, 15)
    assert not is_within_window(opened, date(2025, 6, 15), 24)


def test_within_window_ignores_future_cards():
    assert not is_within_window(date(2025, 7, 1), date(2025, 6, 15), 24)


def test_within_window_open_today():
    assert is_within_window(date(2025, 6, 15), date(2025, 6, 15), 24)


def test_within_window_month_end_clamping():
    # Opened Mar 31; one month later clamps to Apr 30, where it ages out
    assert is_within_window(date(2025, 3, 31), date(2025, 4, 29), 1)
    assert not is_within_window(date(2025, 3, 31), date(2025, 4, 30), 1)


def test_format_date():
    assert format_date(date(2025, 3, 5)) == "Mar 5, 2025"
