"""Cron expression engine.

Pure evaluator for 5-field (minute hour day-of-month month day-of-week) and
6-field (seconds prepended) expressions. Each field accepts ``*``, a single
integer, a comma list, an inclusive range ``a-b`` and a step ``*/n``,
``a-b/n`` or ``a/n``.

When both day-of-month and day-of-week are restricted the expression matches
if *either* of them matches, as classic cron does.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import FrozenSet, List, Tuple

from goldagent.scheduler.errors import ParseError

# (name, min, max) for the 6-field form; 5-field expressions skip "second".
_FIELDS: Tuple[Tuple[str, int, int], ...] = (
    ("second", 0, 59),
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day-of-month", 1, 31),
    ("month", 1, 12),
    ("day-of-week", 0, 7),
)

_SHORTCUT_RE = re.compile(r"^(daily|weekdays)@(\d{1,2}):(\d{1,2})$")


@dataclass(frozen=True)
class ParsedSchedule:
    """A validated cron expression, ready for matching."""

    expr: str
    seconds: FrozenSet[int]
    minutes: FrozenSet[int]
    hours: FrozenSet[int]
    days_of_month: FrozenSet[int]
    months: FrozenSet[int]
    days_of_week: FrozenSet[int]
    dom_restricted: bool
    dow_restricted: bool
    has_seconds: bool

    @property
    def needs_second_resolution(self) -> bool:
        """True if the schedule can fire at a second other than :00."""
        return self.seconds != frozenset({0})

    def matches(self, timestamp: datetime) -> bool:
        if timestamp.second not in self.seconds:
            return False
        if timestamp.minute not in self.minutes:
            return False
        if timestamp.hour not in self.hours:
            return False
        if timestamp.month not in self.months:
            return False

        dom_match = timestamp.day in self.days_of_month
        # Python: Monday=0; cron: Sunday=0
        dow_match = (timestamp.weekday() + 1) % 7 in self.days_of_week

        if self.dom_restricted and self.dow_restricted:
            return dom_match or dow_match
        if self.dom_restricted:
            return dom_match
        if self.dow_restricted:
            return dow_match
        return True


def _parse_int(token: str, lo: int, hi: int, index: int, name: str) -> int:
    if not (token.isascii() and token.isdigit()):
        raise ParseError(f"non-numeric value {token!r} in {name}", index)
    value = int(token)
    if value < lo or value > hi:
        raise ParseError(f"{name} value {value} out of range {lo}-{hi}", index)
    return value


def _parse_field(raw: str, lo: int, hi: int, index: int, name: str) -> FrozenSet[int]:
    values = set()
    for part in raw.split(","):
        if not part:
            raise ParseError(f"empty list item in {name}", index)

        step = 1
        base = part
        if "/" in part:
            base, step_raw = part.split("/", 1)
            if not (step_raw.isascii() and step_raw.isdigit()) or int(step_raw) == 0:
                raise ParseError(f"invalid step {step_raw!r} in {name}", index)
            step = int(step_raw)

        if base == "*":
            start, end = lo, hi
        elif "-" in base:
            a_raw, b_raw = base.split("-", 1)
            start = _parse_int(a_raw, lo, hi, index, name)
            end = _parse_int(b_raw, lo, hi, index, name)
            if end < start:
                raise ParseError(f"descending range {base!r} in {name}", index)
        else:
            start = _parse_int(base, lo, hi, index, name)
            end = hi if "/" in part else start

        values.update(range(start, end + 1, step))

    if name == "day-of-week" and 7 in values:
        values.discard(7)
        values.add(0)
    return frozenset(values)


def normalize(expr: str) -> str:
    """Expand ``daily@HH:MM`` / ``weekdays@HH:MM`` shortcuts to 6-field cron."""
    expr = expr.strip()
    match = _SHORTCUT_RE.match(expr)
    if not match:
        return expr

    kind, hour_raw, minute_raw = match.groups()
    hour, minute = int(hour_raw), int(minute_raw)
    if hour > 23:
        raise ParseError(f"invalid hour {hour} in {expr!r}, expected 00-23")
    if minute > 59:
        raise ParseError(f"invalid minute {minute} in {expr!r}, expected 00-59")
    dow = "*" if kind == "daily" else "1-5"
    return f"0 {minute} {hour} * * {dow}"


def parse(expr: str) -> ParsedSchedule:
    """Parse and validate a cron expression.

    Raises:
        ParseError: with ``field_index`` (0-based, in the caller's
            expression) naming the offending field.
    """
    if not isinstance(expr, str) or not expr.strip():
        raise ParseError("empty schedule expression")

    parts: List[str] = normalize(expr).split()
    if len(parts) == 5:
        fields = _FIELDS[1:]
        has_seconds = False
    elif len(parts) == 6:
        fields = _FIELDS
        has_seconds = True
    else:
        raise ParseError(
            f"expected 5 or 6 fields, got {len(parts)} in {expr!r}"
        )

    sets = [
        _parse_field(raw, lo, hi, index, name)
        for index, (raw, (name, lo, hi)) in enumerate(zip(parts, fields))
    ]
    if not has_seconds:
        sets.insert(0, frozenset({0}))
    offset = 0 if has_seconds else 1

    return ParsedSchedule(
        expr=expr,
        seconds=sets[0],
        minutes=sets[1],
        hours=sets[2],
        days_of_month=sets[3],
        months=sets[4],
        days_of_week=sets[5],
        dom_restricted=not parts[3 - offset].startswith("*"),
        dow_restricted=not parts[5 - offset].startswith("*"),
        has_seconds=has_seconds,
    )


def evaluate(expr: str, timestamp: datetime) -> bool:
    """Return True if ``timestamp`` matches ``expr`` (to the second)."""
    return parse(expr).matches(timestamp)


def validate(expr: str) -> None:
    """Raise ParseError if ``expr`` is not an acceptable schedule."""
    parse(expr)
