"""Django ORM implementation of the User repository.

Follows the Null Object convention of the other repositories: unknown or
malformed IDs yield ``None`` and the service decides what that means.
"""

from __future__ import annotations

from typing import List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction

from modules.accounts.models import User, UserRole
from modules.accounts.repositories.interfaces import IUserRepository

logger = structlog.get_logger(__name__)


class UserDjangoRepository(IUserRepository):
    def get_by_id(self, id: str) -> Optional[User]:
        try:
            return User.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    @transaction.atomic
    def save(self, entity: User) -> User:
        entity.save()
        logger.info("user.saved", user_id=str(entity.id), role=entity.role)
        return entity

    def get_delivery_person(self, id: str) -> Optional[User]:
        try:
            return User.objects.filter(
                id=id, role=UserRole.DELIVERY, is_active=True
            ).first()
        except (ValueError, ValidationError):
            return None

    def list_delivery_persons(self) -> List[User]:
        return list(
            User.objects.filter(role=UserRole.DELIVERY, is_active=True).order_by(
                "name", "email"
            )
        )
