"""
Quarry Time Range Conditions.

Named time windows (``today``, ``last week``, ``month``...) and interval
helpers rendered as ``BETWEEN TIME`` / ``> TIME`` conditions. The
builder formats every bound according to the column's declared type
(int timestamp, ``date`` or ``datetime``).

Usage:
    query.where_time("created_at", "today")
    query.where_time("created_at", ">=", "2024-01-01")
    query.where_month("created_at", "2024-03")
    query.where_between_time_field("start_at", "end_at")
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime, time as dt_time, timedelta
from typing import Any, Callable, Dict, Optional, Tuple, Union

__all__ = [
    "TimeFieldQuery",
    "TIME_RULES",
    "to_datetime",
    "to_timestamp",
    "shift",
    "time_rule_range",
]

TimeRange = Tuple[datetime, datetime]

_DIGITS_RE = re.compile(r"^-?\d+(\.\d+)?$")
_YEAR_RE = re.compile(r"^\d{4}$")
_MONTH_RE = re.compile(r"^\d{4}-\d{1,2}$")

_ONE_SECOND = timedelta(seconds=1)


def _start_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), dt_time.min)


def shift(value: datetime, interval: str, step: int) -> datetime:
    """Move ``value`` by ``step`` calendar units (day, week, month, year...)."""
    interval = interval.lower().rstrip("s")
    if interval in ("month", "year"):
        months = step * (12 if interval == "year" else 1)
        index = value.year * 12 + value.month - 1 + months
        year, month = divmod(index, 12)
        month += 1
        day = min(value.day, calendar.monthrange(year, month)[1])
        return value.replace(year=year, month=month, day=day)
    units = {"day": "days", "week": "weeks", "hour": "hours", "minute": "minutes", "second": "seconds"}
    if interval not in units:
        raise ValueError(f"Unsupported time interval: {interval!r}")
    return value + timedelta(**{units[interval]: step})


def to_datetime(value: Any, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Coerce a time bound to a ``datetime``.

    Accepts datetimes, dates, int/float timestamps, ISO strings
    (``YYYY``, ``YYYY-MM``, ``YYYY-MM-DD[ HH:MM:SS]``), other numeric
    strings as timestamps and the words ``now``, ``today``,
    ``yesterday``, ``tomorrow``.
    """
    now = now or datetime.now()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, dt_time.min)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value)
    if not isinstance(value, str):
        return None

    text = value.strip()
    words = {
        "now": now,
        "today": _start_of_day(now),
        "yesterday": _start_of_day(now) - timedelta(days=1),
        "tomorrow": _start_of_day(now) + timedelta(days=1),
    }
    if text.lower() in words:
        return words[text.lower()]
    if _YEAR_RE.match(text):
        text += "-01-01"
    elif _MONTH_RE.match(text):
        year, month = text.split("-")
        text = f"{year}-{int(month):02d}-01"
    elif _DIGITS_RE.match(text):
        return datetime.fromtimestamp(float(text))
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def to_timestamp(value: Any) -> Optional[float]:
    parsed = to_datetime(value)
    return parsed.timestamp() if parsed is not None else None


# ── Named windows ────────────────────────────────────────────────────

def _today(now: datetime) -> TimeRange:
    start = _start_of_day(now)
    return start, start + timedelta(days=1) - _ONE_SECOND


def _yesterday(now: datetime) -> TimeRange:
    start = _start_of_day(now) - timedelta(days=1)
    return start, start + timedelta(days=1) - _ONE_SECOND


def _week(now: datetime, offset: int = 0) -> TimeRange:
    start = _start_of_day(now) - timedelta(days=now.weekday()) + timedelta(weeks=offset)
    return start, start + timedelta(weeks=1) - _ONE_SECOND


def _month(now: datetime, offset: int = 0) -> TimeRange:
    start = shift(_start_of_day(now).replace(day=1), "month", offset)
    return start, shift(start, "month", 1) - _ONE_SECOND


def _year(now: datetime, offset: int = 0) -> TimeRange:
    start = datetime(now.year + offset, 1, 1)
    return start, datetime(now.year + offset + 1, 1, 1) - _ONE_SECOND


TIME_RULES: Dict[str, Callable[[datetime], TimeRange]] = {
    "today": _today,
    "yesterday": _yesterday,
    "week": _week,
    "last week": lambda now: _week(now, -1),
    "month": _month,
    "last month": lambda now: _month(now, -1),
    "year": _year,
    "last year": lambda now: _year(now, -1),
}


def time_rule_range(rule: Union[str, Callable, Tuple[Any, Any]], now: Optional[datetime] = None) -> Optional[Tuple[Any, Any]]:
    """Resolve a rule name (or a custom rule) to its ``(start, end)`` bounds."""
    now = now or datetime.now()
    if isinstance(rule, str):
        rule = TIME_RULES.get(rule.lower())
        if rule is None:
            return None
    if callable(rule):
        return rule(now)
    start, end = rule
    return start, end


def _period_start(value: str, unit: str, now: datetime) -> str:
    """``this <unit>`` / ``last <unit>`` to the start of that period."""
    if not isinstance(value, str):
        return value
    text = value.strip().lower()
    if text not in (f"this {unit}", f"last {unit}"):
        return value
    ranges = {
        "day": (_today, _yesterday),
        "week": (_week, lambda n: _week(n, -1)),
        "month": (_month, lambda n: _month(n, -1)),
        "year": (_year, lambda n: _year(n, -1)),
    }
    current, previous = ranges[unit]
    start, _ = (current if text.startswith("this") else previous)(now)
    return start.isoformat(sep=" ")


class TimeFieldQuery:
    """Time window conditions for ``BaseQuery``."""

    def time_rule(self, rule: Dict[str, Any]):
        """
        Register extra named windows.

        Values are ``(start, end)`` pairs or callables taking ``now``.
        """
        rules = dict(getattr(self, "_time_rules", None) or TIME_RULES)
        rules.update({name.lower(): value for name, value in rule.items()})
        self._time_rules = rules
        return self

    def where_time(self, field: str, op: str, range: Any = None, logic: str = "AND"):
        """
        ``where_time("created", "today")`` - a named window.
        ``where_time("created", ">=", "2024-01-01")`` - a comparison.
        ``where_time("created", "between", [start, end])``.
        """
        if range is None:
            rules = getattr(self, "_time_rules", None) or TIME_RULES
            rule = rules.get(op.lower())
            if rule is not None:
                range = time_rule_range(rule)
                op = "between"
            else:
                range = op
                op = ">="
        return self._parse_where_exp(logic, field, f"{op.lower()} time", range, strict=True)

    def where_time_interval(self, field: str, start: Any, interval: str = "day", step: int = 1, logic: str = "AND"):
        """The ``step`` × ``interval`` window beginning at ``start``."""
        start_time = to_datetime(start)
        if start_time is None:
            raise ValueError(f"Invalid start time: {start!r}")
        end_time = shift(start_time, interval, step)
        if step > 0:
            bounds = [start_time, end_time - _ONE_SECOND]
        else:
            bounds = [end_time, start_time - _ONE_SECOND]
        return self.where_time(field, "between", bounds, logic)

    def where_day(self, field: str, day: str = "this day", step: int = 1, logic: str = "AND"):
        return self.where_time_interval(field, _period_start(day, "day", datetime.now()), "day", step, logic)

    def where_week(self, field: str, week: str = "this week", step: int = 1, logic: str = "AND"):
        return self.where_time_interval(field, _period_start(week, "week", datetime.now()), "week", step, logic)

    def where_month(self, field: str, month: str = "this month", step: int = 1, logic: str = "AND"):
        return self.where_time_interval(field, _period_start(month, "month", datetime.now()), "month", step, logic)

    def where_year(self, field: str, year: str = "this year", step: int = 1, logic: str = "AND"):
        if isinstance(year, int) and not isinstance(year, bool):
            year = str(year)
        return self.where_time_interval(field, _period_start(year, "year", datetime.now()), "year", step, logic)

    def where_between_time(self, field: str, start_time: Any, end_time: Any, logic: str = "AND"):
        return self.where_time(field, "between", [start_time, end_time], logic)

    def where_not_between_time(self, field: str, start_time: Any, end_time: Any, logic: str = "AND"):
        """Outside the window: ``field < start OR field > end``."""
        return self._parse_where_exp(
            logic,
            lambda query: query.where_time(field, "<", start_time).where_time(field, ">", end_time, "OR"),
        )

    def where_between_time_field(self, start_field: str, end_field: str, logic: str = "AND"):
        """Rows whose ``[start_field, end_field]`` window contains now."""
        now = datetime.now()
        return self.where_time(start_field, "<=", now, logic).where_time(end_field, ">=", now, logic)

    def where_not_between_time_field(self, start_field: str, end_field: str, logic: str = "AND"):
        now = datetime.now()
        return self._parse_where_exp(
            logic,
            lambda query: query.where_time(start_field, ">", now).where_time(end_field, "<", now, "OR"),
        )
