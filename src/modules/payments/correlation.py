"""Correlation and merchant refund identifiers.

Correlation id (``app_trans_id``): ``{yyMMdd}_{orderId}_{epochMillis}``.
The date prefix is rendered in the gateway's timezone; the order id is
recovered from the second segment when a callback or poll comes back.

Merchant refund id (``m_refund_id``):
``{yyMMdd}_{appId}_{epochMillis}{3 random digits}``.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import structlog

from modules.payments.exceptions import MalformedCorrelationId

logger = structlog.get_logger(__name__)

MAX_CORRELATION_ID_LENGTH = 40

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def date_prefix(now: datetime, tz: str) -> str:
    return now.astimezone(ZoneInfo(tz)).strftime("%y%m%d")


def epoch_millis(now: datetime) -> int:
    return (now - _EPOCH) // timedelta(milliseconds=1)


def new_correlation_id(order_id: int, now: datetime, tz: str) -> str:
    correlation_id = f"{date_prefix(now, tz)}_{order_id}_{epoch_millis(now)}"
    if len(correlation_id) > MAX_CORRELATION_ID_LENGTH:
        raise ValueError(
            f"Correlation id exceeds {MAX_CORRELATION_ID_LENGTH} characters: "
            f"{correlation_id}"
        )
    return correlation_id


def parse_order_id(correlation_id: str | None) -> int:
    """Extract the order id embedded in a correlation id.

    ``"251217_28_1765957661610"`` -> ``28``.

    Raises:
        MalformedCorrelationId: fewer than two segments or a non-numeric
            order segment.
    """
    parts = (correlation_id or "").split("_")
    if len(parts) < 2 or not parts[1].isdigit():
        logger.error("payment.malformed_correlation_id", correlation_id=correlation_id)
        raise MalformedCorrelationId(
            f"Invalid correlation id format: {correlation_id!r}"
        )
    if len(parts[0]) != 6 or not parts[0].isdigit():
        logger.warning(
            "payment.unexpected_correlation_prefix", correlation_id=correlation_id
        )
    return int(parts[1])


def new_refund_id(app_id: int, now: datetime, tz: str) -> str:
    suffix = 111 + secrets.randbelow(888)
    return f"{date_prefix(now, tz)}_{app_id}_{epoch_millis(now)}{suffix}"
