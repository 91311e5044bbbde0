"""Product repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.products.models import Product


class IProductRepository(IRepository["Product"]):
    """Repository contract for catalogue products."""

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Product]:
        """Retrieve a product with a row-level lock (SELECT FOR UPDATE).

        Used for atomic stock reservation at checkout and release on
        cancellation.  Returns ``None`` if the product does not exist.
        """

    @abstractmethod
    def adjust_stock(self, product: Product, delta: int) -> Product:
        """Add ``delta`` (negative to reserve) to a locked product's stock."""
