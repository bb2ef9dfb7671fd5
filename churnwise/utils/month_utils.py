from datetime import date

from dateutil.relativedelta import relativedelta


def months_before(anchor: date, months: int) -> date:
    """Return the date `months` calendar months before `anchor`.

    dateutil clamps the day to the end of the target month, so
    2025-03-31 minus one month is 2025-02-28.
    """
    return anchor - relativedelta(months=months)


def months_after(anchor: date, months: int) -> date:
    return anchor + relativedelta(months=months)


def months_between(start: date, end: date) -> int:
    """Whole calendar months elapsed from `start` to `end`.

    Negative when `end` is before `start`.
    """
    delta = relativedelta(end, start)
    return delta.years * 12 + delta.months


def is_within_window(opened: date, now: date, window_months: int) -> bool:
    """True while a card opened on `opened` still counts in a trailing window.

    A card counts from its open date until the day it ages out
    (`opened + window_months`), on which it stops counting. Future-dated
    cards never count.
    """
    return opened <= now < months_after(opened, window_months)


def format_date(value: date) -> str:
    return f"{value.strftime('%b')} {value.day}, {value.year}"
