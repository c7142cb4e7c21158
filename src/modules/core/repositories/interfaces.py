"""Generic repository interface (Dependency Inversion Principle).

Provides ``IRepository[T, K]``, the base abstract class that all
domain-specific repository interfaces extend.  Service-layer code
depends on this abstraction, never on Django ORM directly.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar

T = TypeVar("T")
K = TypeVar("K")


class IRepository(ABC, Generic[T, K]):
    """Base generic repository contract.

    ``T`` is the entity managed by the repository (e.g. ``Order``) and
    ``K`` the type of its primary key.
    """

    @abstractmethod
    def get_by_id(self, id: K) -> Optional[T]:
        """Retrieve an entity by its primary key, ``None`` if absent."""

    @abstractmethod
    def save(self, entity: T) -> T:
        """Persist (create or update) an entity."""
