"""LiveMart user model.

One table for every actor in the marketplace; ``role`` decides which
dashboard a user sees and which order transitions they may trigger:

- ``customer``: buys from retailers, confirms receipt of retail orders.
- ``retailer``: sells to customers, buys from wholesalers.
- ``wholesaler``: sells to retailers.
- ``delivery``: carries orders and runs the OTP handoff.
- ``admin``: back-office.
"""

from __future__ import annotations

import uuid6
from django.contrib.auth.models import AbstractUser
from django.db import models


class UserRole(models.TextChoices):
    CUSTOMER = "customer", "Customer"
    RETAILER = "retailer", "Retailer"
    WHOLESALER = "wholesaler", "Wholesaler"
    DELIVERY = "delivery", "Delivery"
    ADMIN = "admin", "Admin"


SELLER_ROLES: frozenset[str] = frozenset({UserRole.RETAILER, UserRole.WHOLESALER})


class User(AbstractUser):
    """Authenticated marketplace actor.

    ``email`` is unique because delivery OTPs and order notifications are
    addressed to it.
    """

    id = models.UUIDField(primary_key=True, default=uuid6.uuid7, editable=False)
    email = models.EmailField(max_length=254, unique=True)
    name = models.CharField(max_length=255, blank=True, default="")
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.CUSTOMER,
    )
    phone = models.CharField(max_length=20, blank=True, default="")
    address = models.TextField(blank=True, default="")

    class Meta:
        db_table = "users"
        indexes = [
            models.Index(fields=["role"], name="users_role_idx"),
        ]

    @property
    def is_seller(self) -> bool:
        return self.role in SELLER_ROLES

    @property
    def is_delivery_person(self) -> bool:
        return self.role == UserRole.DELIVERY

    @property
    def display_name(self) -> str:
        return self.name or self.get_full_name() or self.email

    def __str__(self) -> str:
        return f"{self.display_name} ({self.role})"
