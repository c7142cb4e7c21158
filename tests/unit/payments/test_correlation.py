"""Unit tests for correlation and merchant refund identifiers."""

from __future__ import annotations

import re
from datetime import datetime, timezone

import pytest

from modules.payments.correlation import (
    date_prefix,
    epoch_millis,
    new_correlation_id,
    new_refund_id,
    parse_order_id,
)
from modules.payments.exceptions import MalformedCorrelationId

pytestmark = pytest.mark.unit

TZ = "Asia/Ho_Chi_Minh"
NOW = datetime(2025, 12, 17, 7, 47, 41, 610000, tzinfo=timezone.utc)


class TestCorrelationId:
    def test_format(self):
        assert new_correlation_id(28, NOW, TZ) == "251217_28_1765957661610"

    def test_epoch_millis_is_exact(self):
        assert epoch_millis(NOW) == 1765957661610

    def test_date_prefix_uses_gateway_timezone(self):
        # 17:30 UTC on the 16th is already the 17th in GMT+7.
        late_evening_utc = datetime(2025, 12, 16, 17, 30, tzinfo=timezone.utc)
        assert date_prefix(late_evening_utc, TZ) == "251217"
        assert date_prefix(late_evening_utc, "UTC") == "251216"

    def test_fits_gateway_length_limit(self):
        assert len(new_correlation_id(2**53, NOW, TZ)) <= 40


class TestParseOrderId:
    def test_extracts_order_id(self):
        assert parse_order_id("251217_28_1765957661610") == 28

    def test_round_trip(self):
        assert parse_order_id(new_correlation_id(9001, NOW, TZ)) == 9001

    @pytest.mark.parametrize("bad", ["nope", "", None, "251217_abc_1765957661610", "251217__1"])
    def test_malformed_ids_raise(self, bad):
        with pytest.raises(MalformedCorrelationId):
            parse_order_id(bad)


class TestRefundId:
    def test_format(self):
        refund_id = new_refund_id(2553, NOW, TZ)

        match = re.fullmatch(r"251217_2553_1765957661610(\d{3})", refund_id)
        assert match is not None
        assert 111 <= int(match.group(1)) <= 998
