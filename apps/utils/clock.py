# utils/clock.py

"""
Clock capability injected into portal services.

Services never call timezone.now() directly for business decisions (payment
deadlines, renewal windows, next occurrence); they ask their clock, so tests
can pin "now" with FixedClock.
"""

from datetime import timedelta
from django.utils import timezone


class SystemClock:
    """Wall clock in the project's configured timezone."""

    def now(self):
        return timezone.localtime(timezone.now())

    def today(self):
        return self.now().date()


class FixedClock(SystemClock):
    """
    Clock frozen at a given instant; ``advance`` moves it forward.

    Example:
        clock = FixedClock(datetime(2025, 1, 6, 9, 0, tzinfo=MANILA))
        clock.advance(hours=49)
    """

    def __init__(self, instant):
        if timezone.is_naive(instant):
            instant = timezone.make_aware(instant)
        self.instant = instant

    def now(self):
        return self.instant

    def advance(self, **kwargs):
        self.instant = self.instant + timedelta(**kwargs)
        return self.instant


def get_clock(clock=None):
    return clock if clock is not None else SystemClock()
