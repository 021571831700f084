"""
Product Service - catalog management for artisans.

Stock counters (reserved_quantity, total_sold, ...) are never written here;
they move only through StockReservationService.
"""
import logging
import uuid
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from craftmarket.config import settings
from craftmarket.core.enum_utils import get_enum_value
from craftmarket.core.exceptions import (
    ProductNotFoundError, AccessDeniedError, InsufficientStockError, InvalidQuantityError,
)
from craftmarket.models.product import Product, ProductStatus
from craftmarket.models.user import User, UserRole, ArtisanProfile
from craftmarket.schemas.product import ProductCreate, ProductUpdate
from craftmarket.services.stock_reservation_service import StockReservationService


logger = logging.getLogger(__name__)


class ProductService:
    """Catalog CRUD with owner checks and soft delete."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.stock = StockReservationService(db)

    async def get_product(self, product_id: uuid.UUID, include_inactive: bool = False) -> Product:
        query = select(Product).where(Product.id == product_id)
        if not include_inactive:
            query = query.where(Product.is_active == True)
        product = (await self.db.execute(query)).scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError("Product not found", details={"product_id": str(product_id)})
        return product

    async def list_products(
        self,
        category: Optional[str] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        search: Optional[str] = None,
        seller_id: Optional[uuid.UUID] = None,
        include_inactive: bool = False,
        page: int = 1,
        size: int = 20,
    ) -> Tuple[List[Product], int]:
        """Filtered, paginated product list (newest first)."""
        conditions = []
        if not include_inactive:
            conditions.append(Product.is_active == True)
        if category:
            conditions.append(Product.category == get_enum_value(category))
        if min_price is not None:
            conditions.append(Product.base_price >= min_price)
        if max_price is not None:
            conditions.append(Product.base_price <= max_price)
        if seller_id:
            conditions.append(Product.seller_id == seller_id)
        if search:
            pattern = f"%{search}%"
            conditions.append(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))

        total = (await self.db.execute(
            select(func.count(Product.id)).where(*conditions)
        )).scalar_one()

        result = await self.db.execute(
            select(Product)
            .where(*conditions)
            .order_by(Product.created_at.desc())
            .offset((page - 1) * size)
            .limit(size)
        )
        return list(result.scalars().all()), total

    @staticmethod
    def _check_owner(product: Product, actor: User) -> None:
        if actor.role == UserRole.ADMIN.value:
            return
        if product.seller_id != actor.id:
            raise AccessDeniedError("You can only manage your own products")

    async def create_product(self, data: ProductCreate, seller: User) -> Product:
        if seller.role != UserRole.ARTISAN.value:
            raise AccessDeniedError("Only artisans can list products")

        payload = data.model_dump(mode="json", exclude={"currency", "base_price", "discounted_price"})
        product = Product(
            **payload,
            seller_id=seller.id,
            base_price=data.base_price,
            discounted_price=data.discounted_price,
            currency=data.currency or settings.DEFAULT_CURRENCY,
            reserved_quantity=0,
            total_sold=0,
            total_revenue=Decimal("0.00"),
            status=ProductStatus.ACTIVE.value if data.quantity > 0 else ProductStatus.OUT_OF_STOCK.value,
            is_active=True,
        )
        self.db.add(product)

        profile = await self.db.get(ArtisanProfile, seller.id)
        if profile is not None:
            profile.product_count += 1

        await self.db.commit()
        await self.db.refresh(product)
        logger.info(f"Product {product.id} '{product.name}' listed by artisan {seller.id}")
        return product

    async def update_product(self, product_id: uuid.UUID, data: ProductUpdate, actor: User) -> Product:
        product = await self.get_product(product_id)
        self._check_owner(product, actor)

        update_data = data.model_dump(exclude_unset=True)
        if "quantity" in update_data and update_data["quantity"] < product.reserved_quantity:
            raise InvalidQuantityError(
                "Quantity cannot drop below the reserved quantity",
                details={"reserved_quantity": product.reserved_quantity},
            )
        if "customization_options" in update_data:
            update_data["customization_options"] = [
                option.model_dump(mode="json") for option in data.customization_options or []
            ]
        for field, value in update_data.items():
            setattr(product, field, get_enum_value(value) if field in ("category", "status") else value)

        if "quantity" in update_data and "status" not in update_data:
            if product.quantity == 0:
                product.status = ProductStatus.OUT_OF_STOCK.value
            elif product.status == ProductStatus.OUT_OF_STOCK.value:
                product.status = ProductStatus.ACTIVE.value

        await self.db.commit()
        await self.db.refresh(product)
        logger.info(f"Product {product.id} updated by {actor.id}: {sorted(update_data)}")
        return product

    async def delete_product(self, product_id: uuid.UUID, actor: User) -> None:
        """Soft delete: hidden from the catalog, kept for order history."""
        product = await self.get_product(product_id)
        self._check_owner(product, actor)

        product.is_active = False
        product.status = ProductStatus.DISCONTINUED.value

        profile = await self.db.get(ArtisanProfile, product.seller_id)
        if profile is not None and profile.product_count > 0:
            profile.product_count -= 1

        await self.db.commit()
        logger.info(f"Product {product.id} discontinued by {actor.id}")

    async def reserve(self, product_id: uuid.UUID, quantity: int) -> Product:
        """
        Reserve stock outside an order.

        Raises:
            InsufficientStockError: with code INSUFFICIENT_INVENTORY
        """
        product = await self.get_product(product_id)
        if not await self.stock.reserve_inventory(product, quantity):
            raise InsufficientStockError(
                "Insufficient inventory",
                code="INSUFFICIENT_INVENTORY",
                details={"available_quantity": product.available_quantity},
            )
        await self.db.commit()
        return product
