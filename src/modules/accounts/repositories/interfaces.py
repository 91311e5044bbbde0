"""User repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, List, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.accounts.models import User


class IUserRepository(IRepository["User"]):
    """Look-ups the order workflow needs about marketplace actors."""

    @abstractmethod
    def get_delivery_person(self, id: str) -> Optional[User]:
        """Return an active ``delivery``-role user, or ``None``."""

    @abstractmethod
    def list_delivery_persons(self) -> List[User]:
        """All active delivery users, ordered by name."""
