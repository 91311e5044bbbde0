"""Account DTOs (Pydantic v2, immutable)."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from modules.accounts.models import User


class DeliveryPersonDTO(BaseModel):
    """Public card of a delivery person, as shown in the seller's assign menu."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    name: str
    phone: str
    email: str

    @classmethod
    def from_entity(cls, user: User) -> DeliveryPersonDTO:
        return cls(
            id=user.id,
            name=user.display_name,
            phone=user.phone,
            email=user.email,
        )
