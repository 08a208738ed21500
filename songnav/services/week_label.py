"""
Church Song Navigator - Week Labels

A week label names a calendar week the way the congregation talks about it,
e.g. ``2025年三月三周`` ("third week of March 2025").  It is the natural key
of a weekly song collection.

Weeks start on Sunday: the week number of a date is
``ceil((day_of_month + weekday_of_the_1st) / 7)`` where the weekday index
counts Sunday as 0.
"""

import math
from datetime import date, timedelta
from typing import Optional

CHINESE_MONTHS = [
    "一月", "二月", "三月", "四月", "五月", "六月",
    "七月", "八月", "九月", "十月", "十一月", "十二月",
]

CHINESE_WEEKS = ["一周", "二周", "三周", "四周", "五周", "六周"]


def _sunday_first_weekday(d: date) -> int:
    """0 = Sunday … 6 = Saturday."""
    return (d.weekday() + 1) % 7


def week_of_month(d: date) -> int:
    """1-based week of the month containing *d*, weeks starting on Sunday."""
    first_index = _sunday_first_weekday(d.replace(day=1))
    return math.ceil((d.day + first_index) / 7)


def week_label(offset_weeks: int = 0, today: Optional[date] = None) -> str:
    """
    Label of the week ``offset_weeks`` weeks from *today* (local date by default).

    >>> week_label(0, today=date(2025, 3, 10))
    '2025年三月三周'
    """
    base = today or date.today()
    target = base + timedelta(days=7 * offset_weeks)

    month = CHINESE_MONTHS[target.month - 1]
    number = week_of_month(target)
    week = CHINESE_WEEKS[number - 1] if number <= len(CHINESE_WEEKS) else f"{number}周"

    return f"{target.year}年{month}{week}"


def short_week_label(label: str) -> str:
    """Drop the year prefix: ``2025年三月三周`` -> ``三月三周``; '' if there is none."""
    if not label or "年" not in label:
        return ""
    return label.split("年", 1)[1]
