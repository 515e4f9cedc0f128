"""
Monthly and annual aggregation windows.

A window is a half-open interval ``[start, end)`` of one calendar month or one
calendar year. Its label is the start date written ``Y-M-D`` without zero
padding (``2015-7-1``), the key used to tag mosaics and histogram rows.

Author: Diego Bengochea
"""

from dataclasses import dataclass
from datetime import date
from typing import List

import pandas as pd

MONTHLY = 'monthly'
ANNUAL = 'annual'

# Histogram granularity factor per window type
GRANULARITY_FACTOR = {MONTHLY: 1, ANNUAL: 12}


@dataclass(frozen=True, order=True)
class Window:
    start: date
    end: date
    granularity: str

    @property
    def label(self) -> str:
        return format_label(self.start)

    @property
    def n_days(self) -> int:
        return (self.end - self.start).days

    @property
    def factor(self) -> int:
        return GRANULARITY_FACTOR[self.granularity]


def format_label(day: date) -> str:
    """
    Examples:
        >>> format_label(date(2019, 7, 1))
        '2019-7-1'
    """
    return f"{day.year}-{day.month}-{day.day}"


def _advance(start: date, months: int) -> date:
    return (pd.Timestamp(start) + pd.DateOffset(months=months)).date()


def monthly_windows(start: date, count: int) -> List[Window]:
    """
    ``count`` consecutive one-month windows starting at ``start``.

    Examples:
        >>> windows = monthly_windows(date(2015, 7, 1), 66)
        >>> windows[-1].label
        '2020-12-1'
    """
    return [
        Window(_advance(start, i), _advance(start, i + 1), MONTHLY)
        for i in range(count)
    ]


def annual_windows(start: date, count: int) -> List[Window]:
    """``count`` consecutive one-year windows starting at ``start``."""
    return [
        Window(_advance(start, 12 * i), _advance(start, 12 * (i + 1)), ANNUAL)
        for i in range(count)
    ]
