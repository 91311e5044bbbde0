"""Django ORM implementation of the Product repository."""

from __future__ import annotations

from typing import Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction

from modules.products.models import Product
from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class ProductDjangoRepository(IProductRepository):
    """Concrete Product repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Product]:
        try:
            return Product.objects.alive().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    @transaction.atomic
    def save(self, entity: Product) -> Product:
        entity.save()
        logger.info("product.saved", product_id=str(entity.id), sku=entity.sku)
        return entity

    def get_for_update(self, id: str) -> Optional[Product]:
        try:
            return (
                Product.objects.select_for_update()
                .select_related("owner")
                .filter(id=id, deleted_at__isnull=True)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def adjust_stock(self, product: Product, delta: int) -> Product:
        product.stock_quantity += delta
        product.save(update_fields=["stock_quantity"])
        logger.info(
            "product.stock_adjusted",
            product_id=str(product.id),
            delta=delta,
            stock=product.stock_quantity,
        )
        return product
