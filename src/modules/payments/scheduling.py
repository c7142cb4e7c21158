"""Deferred poll scheduling.

A poll attempt is an explicit ``PollTask`` value (correlation id plus
attempt number) so it can cross a process boundary.  The production
scheduler hands it to Celery with a countdown.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PollTask:
    correlation_id: str
    attempt_number: int


class IScheduler(Protocol):
    def schedule_once(self, delay: timedelta, task: PollTask) -> None: ...


class CeleryScheduler:
    """Submits ``poll_payment_status`` with ``countdown=delay``."""

    def schedule_once(self, delay: timedelta, task: PollTask) -> None:
        from modules.payments.tasks import poll_payment_status

        poll_payment_status.apply_async(
            args=[task.correlation_id, task.attempt_number],
            countdown=delay.total_seconds(),
        )
        logger.info(
            "payment.poll_scheduled",
            correlation_id=task.correlation_id,
            attempt=task.attempt_number + 1,
            delay_seconds=delay.total_seconds(),
        )
