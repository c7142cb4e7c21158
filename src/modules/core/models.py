"""Base abstract models shared by every module.

Provides:
- ``TimestampedModel``: created_at / updated_at bookkeeping only.  Used by
  aggregates that keep Django's integer primary key (``Order`` ids are
  embedded in gateway correlation ids and must stay short and numeric).
- ``BaseModel``: TimestampedModel + UUIDv7 primary key for child records.
"""

from __future__ import annotations

import uuid6
from django.db import models


class TimestampedModel(models.Model):
    """Abstract base with timestamp bookkeeping."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs) -> None:
        """Ensure ``updated_at`` is refreshed even when ``update_fields`` is passed."""
        update_fields = kwargs.get("update_fields")
        if update_fields is not None and "updated_at" not in update_fields:
            kwargs["update_fields"] = list(update_fields) + ["updated_at"]
        super().save(*args, **kwargs)


class BaseModel(TimestampedModel):
    """Abstract base with UUIDv7 PK (time-ordered)."""

    id = models.UUIDField(
        primary_key=True,
        default=uuid6.uuid7,
        editable=False,
    )

    class Meta:
        abstract = True
