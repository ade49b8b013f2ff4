"""
Five-field cron expressions.

Fields are ``minute hour day month weekday`` with weekday 0-6, Sunday = 0.
Each field is ``*``, a number, an ``a-b`` range, or a comma list of those.
Step syntax (``*/5``) is rejected with a CronParseError rather than being
silently mismatched.

Matching is set membership: ``1`` in the hour field matches 01:00 only,
not 11:00 or 21:00.
"""

from datetime import datetime, timedelta
from typing import Optional

from docqueue.errors import CronNoMatchError, CronParseError

FIELD_NAMES = ("minute", "hour", "day", "month", "weekday")

FIELD_BOUNDS = {
    "minute": (0, 59),
    "hour": (0, 23),
    "day": (1, 31),
    "month": (1, 12),
    "weekday": (0, 6),
}

# One leap year of minutes
MAX_SEARCH_MINUTES = 366 * 24 * 60


def _parse_value(expression: str, name: str, text: str) -> int:
    if not (text.isascii() and text.isdigit()):
        raise CronParseError(expression, f"{name} field value {text!r} is not a number")
    value = int(text)
    low, high = FIELD_BOUNDS[name]
    if not low <= value <= high:
        raise CronParseError(
            expression, f"{name} field value {value} is outside {low}-{high}"
        )
    return value


def _parse_field(expression: str, name: str, field: str) -> Optional[frozenset]:
    """Return the allowed values of a field, or None for a wildcard."""
    if field == "*":
        return None
    if "/" in field:
        raise CronParseError(expression, "step syntax is not supported")

    values = set()
    for part in field.split(","):
        if not part:
            raise CronParseError(expression, f"empty list item in {name} field")
        if "-" in part:
            start_text, _, end_text = part.partition("-")
            start = _parse_value(expression, name, start_text)
            end = _parse_value(expression, name, end_text)
            if start > end:
                raise CronParseError(expression, f"descending range {part!r} in {name} field")
            values.update(range(start, end + 1))
        else:
            values.add(_parse_value(expression, name, part))
    return frozenset(values)


def _field_values(dt: datetime) -> dict[str, int]:
    return {
        "minute": dt.minute,
        "hour": dt.hour,
        "day": dt.day,
        "month": dt.month,
        "weekday": dt.isoweekday() % 7,
    }


class CronExpression:
    """
    A parsed cron expression.

    Example:
        ```python
        cron = CronExpression("0 2 * * *")
        cron.matches(datetime(2024, 5, 1, 2, 0))  # True
        cron.next_run(datetime(2024, 5, 1, 2, 0))  # 2024-05-02 02:00
        ```
    """

    def __init__(self, expression: str):
        self.expression = expression
        parts = expression.split()
        if len(parts) != 5:
            raise CronParseError(
                expression,
                "must have 5 parts: minute hour day month weekday",
            )
        self.fields = {
            name: _parse_field(expression, name, part)
            for name, part in zip(FIELD_NAMES, parts)
        }

    def matches(self, dt: datetime) -> bool:
        """Check whether the wall-clock fields of dt satisfy every field."""
        actual = _field_values(dt)
        for name in FIELD_NAMES:
            allowed = self.fields[name]
            if allowed is not None and actual[name] not in allowed:
                return False
        return True

    def next_run(self, after: datetime, max_minutes: int = MAX_SEARCH_MINUTES) -> datetime:
        """
        First matching minute strictly after ``after``.

        Steps one minute at a time. Raises CronNoMatchError when nothing
        matches within ``max_minutes``.
        """
        current = after.replace(second=0, microsecond=0) + timedelta(minutes=1)
        for _ in range(max_minutes):
            if self.matches(current):
                return current
            current += timedelta(minutes=1)
        raise CronNoMatchError(self.expression)

    def __repr__(self) -> str:
        return f"CronExpression({self.expression!r})"


def parse_cron_expression(expression: str) -> CronExpression:
    return CronExpression(expression)


def matches(expression: str, instant: datetime) -> bool:
    return CronExpression(expression).matches(instant)


def next_run_estimate(expression: str, after: datetime) -> datetime:
    return CronExpression(expression).next_run(after)
