"""Next-occurrence arithmetic for repeating tasks.

Every function here is pure. Datetimes keep their ``tzinfo`` and wall-clock
time, so the result of a daily rule is always "same time tomorrow" even
across a DST change.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, timedelta

from .enums import RecurrenceRule
from .errors import InvalidRecurrenceConfiguration

logger = logging.getLogger(__name__)

_MONTHS_FOR_RULE = {
    RecurrenceRule.MONTHLY: 1,
    RecurrenceRule.YEARLY: 12,
}


def parse_rule(value: str | RecurrenceRule | None) -> RecurrenceRule:
    if not value:
        return RecurrenceRule.NONE
    return RecurrenceRule(value)


def next_due_date(rule: RecurrenceRule | str, current: datetime) -> datetime:
    """Return the due date that follows ``current`` under ``rule``.

    Monthly and yearly steps clamp the day of month to the length of the
    target month: Jan 31 becomes Feb 28 (or 29), and Feb 29 becomes Feb 28
    in a non-leap year. Never raises.
    """
    rule = parse_rule(rule)
    if rule == RecurrenceRule.NONE:
        return current

    try:
        return _step(rule, current, clamp=True)
    except (OverflowError, ValueError):
        logger.warning("Cannot clamp %s recurrence from %s, using unclamped date", rule, current)

    try:
        return _step(rule, current, clamp=False)
    except (OverflowError, ValueError):
        logger.warning("Cannot advance %s recurrence from %s", rule, current)
        return current


def validate_recurrence(rule: RecurrenceRule | str | None, due_date: datetime | None) -> RecurrenceRule:
    rule = parse_rule(rule)
    if rule != RecurrenceRule.NONE and due_date is None:
        raise InvalidRecurrenceConfiguration(rule.value)
    return rule


def normalize_recurrence(rule: RecurrenceRule | str | None, due_date: datetime | None) -> RecurrenceRule:
    """Degrade a recurring rule without a due date to ``none``."""
    try:
        return validate_recurrence(rule, due_date)
    except InvalidRecurrenceConfiguration as exc:
        logger.warning("%s, treating task as non-recurring", exc)
        return RecurrenceRule.NONE


def _step(rule: RecurrenceRule, current: datetime, clamp: bool) -> datetime:
    if rule == RecurrenceRule.DAILY:
        return current + timedelta(days=1)
    if rule == RecurrenceRule.WEEKLY:
        return current + timedelta(weeks=1)
    return _add_months(current, _MONTHS_FOR_RULE[rule], clamp=clamp)


def _add_months(base: datetime, months: int, clamp: bool = True) -> datetime:
    year = base.year + (base.month - 1 + months) // 12
    month = (base.month - 1 + months) % 12 + 1
    if not clamp:
        # Overflowing days roll into the following month.
        return base.replace(year=year, month=month, day=1) + timedelta(days=base.day - 1)
    day = min(base.day, _days_in_month(year, month))
    return base.replace(year=year, month=month, day=day)


def _days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - timedelta(days=1)).day
