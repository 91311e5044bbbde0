"""Seller catalogue entries.

Only the fields the order workflow reads are modelled here: who owns the
product (to authorise seller transitions), which tier it is sold on (to
derive an order's delivery type), its price (snapshotted into order items)
and its stock (reserved at checkout, released on cancellation).
"""

from __future__ import annotations

from decimal import Decimal

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import SoftDeleteModel

logger = structlog.get_logger(__name__)


class ProductStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"


class OwnerType(models.TextChoices):
    RETAILER = "retailer", "Retailer"
    WHOLESALER = "wholesaler", "Wholesaler"


class Product(SoftDeleteModel):
    """A product listed by a retailer or wholesaler.

    ``owner_type`` defaults to the owner's role on first save; it is kept as
    a column so listings can be split by tier without joining users.
    """

    sku = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    stock_quantity = models.PositiveIntegerField(default=0)
    status = models.CharField(
        max_length=20,
        choices=ProductStatus.choices,
        default=ProductStatus.ACTIVE,
    )
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="products",
    )
    owner_type = models.CharField(max_length=20, choices=OwnerType.choices)

    class Meta:
        db_table = "products"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["status"], name="products_status_idx"),
            models.Index(fields=["owner", "status"], name="products_owner_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price__gt=0),
                name="products_price_positive",
            ),
        ]

    def clean(self) -> None:
        super().clean()
        if self.price is not None and self.price <= 0:
            raise ValidationError({"price": "Price must be greater than zero."})
        if self.owner_id and self.owner.role not in OwnerType.values:
            raise ValidationError({"owner": "Only retailers and wholesalers sell."})

    def save(self, *args, **kwargs) -> None:
        is_new = self._state.adding
        if self.sku:
            self.sku = self.sku.strip().upper()
        if not self.owner_type and self.owner_id:
            self.owner_type = self.owner.role
        super().save(*args, **kwargs)
        if is_new:
            logger.info(
                "product_created",
                product_id=str(self.id),
                owner_id=str(self.owner_id),
                sku=self.sku,
            )

    @property
    def is_active(self) -> bool:
        return self.status == ProductStatus.ACTIVE and not self.is_deleted

    def __str__(self) -> str:
        return f"{self.sku} - {self.name}"
