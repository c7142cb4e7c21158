"""System clock backed by ``django.utils.timezone``."""

from __future__ import annotations

from datetime import datetime

from django.utils import timezone

from shared.domain.clock import IClock


class SystemClock(IClock):
    def now(self) -> datetime:
        return timezone.now()


system_clock = SystemClock()
