import datetime
from dataclasses import dataclass

from django.utils import timezone


class SystemClock:
    """Wall clock backed by django.utils.timezone."""

    def now(self):
        return timezone.now()

    def today(self):
        return timezone.localdate()


@dataclass
class FixedClock:
    """Clock pinned to one instant, for tests and replays."""

    instant: datetime.datetime

    def now(self):
        return self.instant

    def today(self):
        if timezone.is_aware(self.instant):
            return timezone.localtime(self.instant).date()
        return self.instant.date()

    def advance(self, **delta):
        self.instant = self.instant + datetime.timedelta(**delta)


default_clock = SystemClock()
