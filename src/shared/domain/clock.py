"""Clock port.

Services never call ``datetime.now()`` directly; they receive an ``IClock``
so date-prefixed identifiers and poll scheduling are reproducible in tests.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class IClock(Protocol):
    """Source of the current (timezone-aware) instant."""

    def now(self) -> datetime: ...
