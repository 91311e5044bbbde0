"""Generic repository contract.

Services depend on these abstractions and receive concrete Django
implementations through their constructors, so the state-machine logic can
be exercised against any store that honours the contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class IRepository(ABC, Generic[T]):
    """Base contract; ``T`` is the aggregate the repository manages."""

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[T]:
        """Return the entity, or ``None`` for unknown / malformed IDs."""

    @abstractmethod
    def save(self, entity: T) -> T:
        """Persist (create or update) an entity."""
