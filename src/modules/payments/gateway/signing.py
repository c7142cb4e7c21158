"""HMAC-SHA256 request signing.

MAC inputs are fields joined by ``|`` in an order fixed per endpoint; the
digest is lower-case hex.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Any


def join_fields(*fields: Any) -> str:
    return "|".join("" if f is None else str(f) for f in fields)


def sign(key: str, data: str) -> str:
    return hmac.new(key.encode("utf-8"), data.encode("utf-8"), hashlib.sha256).hexdigest()


def verify(key: str, data: str, mac: str) -> bool:
    """Constant-time comparison of ``mac`` against the expected signature."""
    if not mac:
        return False
    return hmac.compare_digest(
        sign(key, data).encode("ascii"), mac.lower().encode("utf-8")
    )
