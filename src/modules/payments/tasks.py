"""Payment background tasks."""

import structlog
from celery import shared_task

logger = structlog.get_logger(__name__)


@shared_task(name="payments.poll_payment_status", ignore_result=True)
def poll_payment_status(correlation_id: str, attempt_number: int) -> str:
    """Run one gateway status poll; the reconciler reschedules as needed."""
    from modules.payments.factory import build_payment_reconciler

    structlog.contextvars.bind_contextvars(payment_correlation_id=correlation_id)
    try:
        outcome = build_payment_reconciler().poll(correlation_id, attempt_number)
    finally:
        structlog.contextvars.unbind_contextvars("payment_correlation_id")
    logger.info("payment.poll_task_finished", outcome=outcome.value)
    return outcome.value
