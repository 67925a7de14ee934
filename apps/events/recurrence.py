# events/recurrence.py

"""
Recurrence Engine

Expands an RRULE-style recurrence rule plus a start/end timestamp into a
bounded sequence of concrete occurrences.

Supported rule parts:
- FREQ=DAILY|WEEKLY|MONTHLY|YEARLY (required)
- INTERVAL=n (default 1)
- BYDAY=MO,WE,FR (WEEKLY enumerates the days of each week; DAILY filters)
- BYMONTHDAY=1,15 (MONTHLY only; months without the day are skipped)
- COUNT=n
- UNTIL=YYYYMMDD | YYYYMMDDTHHMMSS | YYYYMMDDTHHMMSSZ

Every expansion stops at the first of COUNT, UNTIL or the caller's
``max_occurrences`` cap, so a rule without COUNT and UNTIL still terminates.
Malformed rules raise RuleParseError; they are never treated as "does not
repeat".
"""

from calendar import monthrange
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone as dt_timezone
from itertools import count as counter

from dateutil.relativedelta import relativedelta
from django.utils import timezone

from utils.clock import get_clock
from utils.exceptions import RuleParseError

DEFAULT_MAX_OCCURRENCES = 100

# 400 years; leap days and month lengths repeat after this
GREGORIAN_CYCLE_MONTHS = 4800

DAILY = 'DAILY'
WEEKLY = 'WEEKLY'
MONTHLY = 'MONTHLY'
YEARLY = 'YEARLY'

FREQUENCY_CHOICES = (
    (DAILY, 'Daily'),
    (WEEKLY, 'Weekly'),
    (MONTHLY, 'Monthly'),
    (YEARLY, 'Yearly'),
)

# Index matches datetime.weekday()
WEEKDAYS = ('MO', 'TU', 'WE', 'TH', 'FR', 'SA', 'SU')
WEEKDAY_LABELS = {
    'MO': 'Mon', 'TU': 'Tue', 'WE': 'Wed', 'TH': 'Thu',
    'FR': 'Fri', 'SA': 'Sat', 'SU': 'Sun',
}

SUPPORTED_PARTS = ('FREQ', 'INTERVAL', 'BYDAY', 'BYMONTHDAY', 'COUNT', 'UNTIL')

FALLBACK_DESCRIPTION = 'Custom recurrence'


# =============================================================================
# RULE
# =============================================================================

@dataclass(frozen=True)
class RecurrenceRule:
    """
    A validated recurrence rule.

    Construction checks every field, so a rule built directly (not through
    ``parse``) raises RuleParseError for the same mistakes as RRULE text.
    """

    frequency: str
    interval: int = 1
    by_weekday: tuple = ()
    by_month_day: tuple = ()
    count: int = None
    until: object = None  # date (whole day inclusive) or datetime

    def __post_init__(self):
        if self.frequency not in dict(FREQUENCY_CHOICES):
            raise RuleParseError(f"Unknown frequency '{self.frequency}'")
        if not _is_positive_int(self.interval):
            raise RuleParseError(f"INTERVAL must be a positive integer, got {self.interval!r}")
        if self.count is not None and not _is_positive_int(self.count):
            raise RuleParseError(f"COUNT must be a positive integer, got {self.count!r}")

        unknown = [day for day in self.by_weekday if day not in WEEKDAYS]
        if unknown:
            raise RuleParseError(f"Invalid BYDAY value {','.join(map(str, unknown))}")
        if self.by_weekday and self.frequency not in (DAILY, WEEKLY):
            raise RuleParseError("BYDAY is only supported for DAILY and WEEKLY rules")

        invalid = [day for day in self.by_month_day if not _is_positive_int(day) or day > 31]
        if invalid:
            raise RuleParseError(f"BYMONTHDAY must be between 1 and 31, got {invalid[0]!r}")
        if self.by_month_day and self.frequency != MONTHLY:
            raise RuleParseError("BYMONTHDAY is only supported for MONTHLY rules")

        # Frozen; normalise through object.__setattr__
        object.__setattr__(self, 'by_weekday', tuple(sorted(set(self.by_weekday), key=WEEKDAYS.index)))
        object.__setattr__(self, 'by_month_day', tuple(sorted(set(self.by_month_day))))

    @classmethod
    def parse(cls, text):
        """
        Parse RRULE text such as ``FREQ=WEEKLY;BYDAY=MO,WE,FR;COUNT=5``.

        The "RRULE:" prefix is optional. Raises RuleParseError when FREQ is
        missing or unknown, or when any part is malformed or unsupported.
        """
        if not isinstance(text, str):
            raise RuleParseError(f"Recurrence rule must be text, got {type(text).__name__}", rule=text)

        body = text.strip()
        if body.upper().startswith('RRULE:'):
            body = body[len('RRULE:'):]

        parts = {}
        for part in body.split(';'):
            part = part.strip()
            if not part:
                continue
            if '=' not in part:
                raise RuleParseError(f"Malformed rule part '{part}'", rule=text)
            key, value = part.split('=', 1)
            key = key.strip().upper()
            value = value.strip()
            if key not in SUPPORTED_PARTS:
                raise RuleParseError(f"Unsupported rule part '{key}'", rule=text)
            if key in parts:
                raise RuleParseError(f"Duplicate rule part '{key}'", rule=text)
            parts[key] = value

        frequency = parts.get('FREQ', '').upper()
        if not frequency:
            raise RuleParseError("Recurrence rule has no FREQ", rule=text)

        interval = _parse_positive_int(parts, 'INTERVAL', text) or 1
        count = _parse_positive_int(parts, 'COUNT', text)

        until = None
        if 'UNTIL' in parts:
            until = _parse_until(parts['UNTIL'], text)

        by_weekday = ()
        if 'BYDAY' in parts:
            by_weekday = tuple(_split_list(parts, 'BYDAY', text, str.upper))

        by_month_day = ()
        if 'BYMONTHDAY' in parts:
            by_month_day = tuple(_split_list(parts, 'BYMONTHDAY', text, int))

        try:
            return cls(
                frequency=frequency,
                interval=interval,
                by_weekday=by_weekday,
                by_month_day=by_month_day,
                count=count,
                until=until,
            )
        except RuleParseError as e:
            raise RuleParseError(str(e), rule=text) from e

    def to_rrule(self):
        """Serialize back to RRULE text (without the "RRULE:" prefix)."""
        parts = [f"FREQ={self.frequency}"]
        if self.interval and self.interval > 1:
            parts.append(f"INTERVAL={self.interval}")
        if self.count:
            parts.append(f"COUNT={self.count}")
        if self.until is not None:
            if isinstance(self.until, datetime):
                if self.until.tzinfo is not None:
                    parts.append(f"UNTIL={self.until.astimezone(dt_timezone.utc):%Y%m%dT%H%M%S}Z")
                else:
                    parts.append(f"UNTIL={self.until:%Y%m%dT%H%M%S}")
            else:
                parts.append(f"UNTIL={self.until:%Y%m%d}")
        if self.by_weekday:
            parts.append(f"BYDAY={','.join(self.by_weekday)}")
        if self.by_month_day:
            parts.append(f"BYMONTHDAY={','.join(str(day) for day in self.by_month_day)}")
        return ';'.join(parts)

    @property
    def weekday_indexes(self):
        return [WEEKDAYS.index(day) for day in self.by_weekday]


@dataclass(frozen=True)
class Occurrence:
    start: datetime
    end: datetime


def _is_positive_int(value):
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def _split_list(parts, key, text, convert):
    try:
        values = [convert(token.strip()) for token in parts[key].split(',') if token.strip()]
    except ValueError:
        raise RuleParseError(f"Invalid {key} value '{parts[key]}'", rule=text)
    if not values:
        raise RuleParseError(f"Invalid {key} value '{parts[key]}'", rule=text)
    return values


def _parse_positive_int(parts, key, text):
    if key not in parts:
        return None
    try:
        value = int(parts[key])
    except ValueError:
        raise RuleParseError(f"{key} must be an integer, got '{parts[key]}'", rule=text)
    if value < 1:
        raise RuleParseError(f"{key} must be positive, got {value}", rule=text)
    return value


def _parse_until(value, text):
    formats = (
        ('%Y%m%dT%H%M%SZ', True),
        ('%Y%m%dT%H%M%S', False),
        ('%Y-%m-%dT%H:%M:%S', False),
    )
    for fmt, is_utc in formats:
        try:
            parsed = datetime.strptime(value, fmt)
        except ValueError:
            continue
        return parsed.replace(tzinfo=dt_timezone.utc) if is_utc else parsed

    for fmt in ('%Y%m%d', '%Y-%m-%d'):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue

    raise RuleParseError(f"Invalid UNTIL value '{value}'", rule=text)


def coerce_rule(rule):
    """
    Normalise ``rule`` to a RecurrenceRule, or None for "does not repeat".

    Accepts None, blank text, RRULE text or a RecurrenceRule.
    """
    if rule is None or isinstance(rule, RecurrenceRule):
        return rule
    if isinstance(rule, str) and not rule.strip():
        return None
    return RecurrenceRule.parse(rule)


# =============================================================================
# EXPANSION
# =============================================================================

def _until_bound(until, start):
    """Express ``until`` as a datetime comparable with ``start``."""
    if until is None:
        return None

    if not isinstance(until, datetime):
        return datetime.combine(until, time.max, tzinfo=start.tzinfo)

    if start.tzinfo is None and until.tzinfo is not None:
        return timezone.make_naive(until)
    if start.tzinfo is not None and until.tzinfo is None:
        return until.replace(tzinfo=start.tzinfo)
    return until


def _candidate_starts(start, rule):
    """Unbounded ascending occurrence starts for ``rule``."""
    step = rule.interval

    if rule.frequency == DAILY:
        if rule.by_weekday:
            allowed = set(rule.weekday_indexes)
            reachable = {(start.weekday() + i * step) % 7 for i in range(7)}
            if not allowed & reachable:
                return
            for i in counter():
                candidate = start + timedelta(days=i * step)
                if candidate.weekday() in allowed:
                    yield candidate
        else:
            for i in counter():
                yield start + timedelta(days=i * step)

    elif rule.frequency == WEEKLY:
        if rule.by_weekday:
            week_start = start - timedelta(days=start.weekday())
            for i in counter():
                week = week_start + timedelta(weeks=i * step)
                for day in rule.weekday_indexes:
                    candidate = week + timedelta(days=day)
                    if candidate >= start:
                        yield candidate
        else:
            for i in counter():
                yield start + timedelta(weeks=i * step)

    elif rule.frequency == MONTHLY:
        if rule.by_month_day:
            yield from _month_days(start, rule.by_month_day, step)
        else:
            # Offsets from the original start so Jan 31 -> Feb 28 -> Mar 31
            for i in counter():
                yield start + relativedelta(months=i * step)

    elif rule.frequency == YEARLY:
        for i in counter():
            yield start + relativedelta(years=i * step)

    else:
        raise RuleParseError(f"Unknown frequency '{rule.frequency}'")


def _month_days(start, days, step):
    """
    Listed days of every ``step``-th month from ``start``'s month, at
    ``start``'s time of day. Days a month does not have are skipped.
    """
    first_of_month = start.replace(day=1)
    last_hit = 0

    for i in counter():
        month = first_of_month + relativedelta(months=i * step)
        month_length = monthrange(month.year, month.month)[1]
        for day in days:
            if day > month_length:
                continue
            candidate = month.replace(day=day)
            if candidate >= start:
                last_hit = i
                yield candidate
        # The month pattern repeats within one Gregorian cycle
        if (i - last_hit) * step > GREGORIAN_CYCLE_MONTHS:
            return


class OccurrenceSequence:
    """
    Finite, re-iterable sequence of Occurrence values.

    Each iteration recomputes from the stored start, so iterating twice
    yields the same occurrences.
    """

    def __init__(self, start, end, rule, max_occurrences=DEFAULT_MAX_OCCURRENCES):
        if max_occurrences is None or max_occurrences < 1:
            raise ValueError("max_occurrences must be a positive integer")
        self.start = start
        self.end = end if end is not None else start
        self.rule = coerce_rule(rule)
        self.max_occurrences = max_occurrences

    @property
    def duration(self):
        return self.end - self.start

    def __iter__(self):
        if self.rule is None:
            yield Occurrence(self.start, self.end)
            return

        limit = self.max_occurrences
        if self.rule.count is not None:
            limit = min(limit, self.rule.count)
        until = _until_bound(self.rule.until, self.start)
        duration = self.duration

        emitted = 0
        for candidate in _candidate_starts(self.start, self.rule):
            if emitted >= limit:
                break
            if until is not None and candidate > until:
                break
            yield Occurrence(candidate, candidate + duration)
            emitted += 1

    def __repr__(self):
        rule = self.rule.to_rrule() if self.rule else None
        return f"<OccurrenceSequence start={self.start.isoformat()} rule={rule!r}>"


def generate_occurrences(start, end, rule, max_occurrences=DEFAULT_MAX_OCCURRENCES):
    """
    Expand ``rule`` from ``start``.

    Args:
        start: First occurrence start (datetime)
        end: First occurrence end; ``end - start`` is every occurrence's duration
        rule: None (does not repeat), RRULE text or RecurrenceRule
        max_occurrences: Hard cap on the number of occurrences

    Returns:
        OccurrenceSequence in ascending order

    Raises:
        RuleParseError: If ``rule`` is malformed
    """
    return OccurrenceSequence(start, end, rule, max_occurrences=max_occurrences)


def get_next_occurrence(start, end, rule, after=None, clock=None,
                        max_occurrences=DEFAULT_MAX_OCCURRENCES):
    """
    First occurrence whose start is strictly after ``after``.

    ``after`` defaults to the clock's current time. Returns None when the
    sequence is exhausted first.
    """
    if after is None:
        after = get_clock(clock).now()

    for occurrence in generate_occurrences(start, end, rule, max_occurrences):
        if occurrence.start > after:
            return occurrence
    return None


def _calendar_day(value, tzinfo):
    if isinstance(value, datetime):
        if value.tzinfo is not None and tzinfo is not None:
            value = value.astimezone(tzinfo)
        return value.date()
    return value


def is_occurrence(day, start, rule, max_occurrences=DEFAULT_MAX_OCCURRENCES):
    """
    True iff ``day`` (date or datetime) falls on the calendar day of an
    occurrence start. Non-recurring events only match the day of ``start``.
    """
    target = _calendar_day(day, start.tzinfo)

    for occurrence in generate_occurrences(start, None, rule, max_occurrences):
        occurrence_day = _calendar_day(occurrence.start, start.tzinfo)
        if occurrence_day == target:
            return True
        if occurrence_day > target:
            break
    return False


# =============================================================================
# DESCRIPTION
# =============================================================================

def _format_day(value):
    if isinstance(value, datetime):
        value = value.date()
    return f"{value:%b} {value.day}, {value.year}"


def describe(rule):
    """
    Human-readable description, e.g. "Weekly on Mon, Wed, Fri, 5 times".

    Never raises; anything that cannot be described returns
    "Custom recurrence".
    """
    try:
        rule = coerce_rule(rule)
        if rule is None:
            return 'Does not repeat'
        return _describe_rule(rule)
    except (RuleParseError, KeyError, TypeError, ValueError):
        return FALLBACK_DESCRIPTION


def _describe_rule(rule):
    units = {DAILY: 'days', WEEKLY: 'weeks', MONTHLY: 'months', YEARLY: 'years'}
    if rule.interval == 1:
        description = dict(FREQUENCY_CHOICES)[rule.frequency]
    else:
        description = f"Every {rule.interval} {units[rule.frequency]}"

    if rule.by_weekday:
        days = ', '.join(WEEKDAY_LABELS[day] for day in rule.by_weekday)
        description = f"{description} on {days}"
    if rule.by_month_day:
        days = ', '.join(str(day) for day in rule.by_month_day)
        description = f"{description} on day {days}"

    if rule.count:
        description += ', once' if rule.count == 1 else f", {rule.count} times"
    elif rule.until is not None:
        description += f", until {_format_day(rule.until)}"

    return description
