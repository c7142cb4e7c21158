"""Unit tests for HMAC-SHA256 request signing."""

from __future__ import annotations

import pytest

from modules.payments.gateway import signing

pytestmark = pytest.mark.unit


def test_rfc4231_vector():
    mac = signing.sign("Jefe", "what do ya want for nothing?")
    assert mac == "5bdcc146bf60754e6a042426089575c75a003f089d2739839dec58b964ec3843"


def test_join_fields_uses_pipes_and_blanks_for_none():
    assert signing.join_fields(2553, "251217_28_1", None, 170) == "2553|251217_28_1||170"


def test_verify_accepts_own_signature():
    data = '{"app_trans_id":"251217_28_1"}'
    assert signing.verify("k2", data, signing.sign("k2", data))


def test_verify_is_case_insensitive_on_hex():
    data = "payload"
    assert signing.verify("k2", data, signing.sign("k2", data).upper())


@pytest.mark.parametrize("mac", ["", "deadbeef", "é" * 64])
def test_verify_rejects_bad_macs(mac):
    assert not signing.verify("k2", "payload", mac)


def test_verify_rejects_signature_with_other_key():
    data = "payload"
    assert not signing.verify("k2", data, signing.sign("k1", data))
