"""Assessment period labels.

Surveys are bucketed into half-year windows labelled ``"YYYY - 1st Half"`` or
``"YYYY - 2nd Half"``. The 1st half of year Y runs July 1 to December 31 of Y;
the 2nd half runs January 1 to June 30 of Y + 1. A survey submitted in March 2025
therefore belongs to ``"2024 - 2nd Half"``.
"""

from __future__ import annotations

import re
from datetime import date

PERIOD_PATTERN = re.compile(r"^(\d{4}) - (1st|2nd) Half$")


def assessment_period_for(day: date) -> str:
    if day.month <= 6:
        return f"{day.year - 1} - 2nd Half"
    return f"{day.year} - 1st Half"


def parse_assessment_period(label: str) -> tuple[int, int] | None:
    match = PERIOD_PATTERN.match(label.strip())
    if not match:
        return None
    return int(match.group(1)), 1 if match.group(2) == "1st" else 2


def period_sort_key(label: str) -> tuple[int, int, int, str]:
    parsed = parse_assessment_period(label)
    if parsed is None:
        return (1, 0, 0, label)
    year, half = parsed
    return (0, year, half, label)
