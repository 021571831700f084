"""
Stock Reservation Service.

Prevents overselling by holding stock for unpaid orders:
1. reserve_inventory() - order placed (or explicit reserve call)
2. complete_sale() - payment completed, reservation becomes a sale
3. release_reserved_inventory() - order cancelled or payment failed

Every counter change is a single guarded UPDATE on the product row, so two
concurrent requests can never both pass an availability check and
oversell. The in-session Product is refreshed afterwards.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import update, case
from sqlalchemy.ext.asyncio import AsyncSession

from craftmarket.core.exceptions import InsufficientStockError, InvalidQuantityError
from craftmarket.models.product import Product, ProductStatus


logger = logging.getLogger(__name__)


def _validate_quantity(quantity: int) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise InvalidQuantityError(
            "Quantity must be a positive integer",
            details={"requested_quantity": quantity},
        )


def _released(quantity: int):
    """SQL expression for reserved_quantity - quantity, floored at zero."""
    return case(
        (Product.reserved_quantity > quantity, Product.reserved_quantity - quantity),
        else_=0,
    )


class StockReservationService:
    """Atomic reserve / release / sale operations on product stock."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def reserve_inventory(self, product: Product, quantity: int) -> bool:
        """
        Reserve `quantity` units if that many are available.

        Returns True on success. Returns False, changing nothing, when
        available stock is short; failure is not an exception.
        """
        _validate_quantity(quantity)

        result = await self.db.execute(
            update(Product)
            .where(
                Product.id == product.id,
                Product.quantity - Product.reserved_quantity >= quantity,
            )
            .values(reserved_quantity=Product.reserved_quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(product)

        if result.rowcount != 1:
            logger.warning(
                f"Reservation rejected for product {product.id}: "
                f"requested={quantity}, available={product.available_quantity}"
            )
            return False

        logger.info(
            f"Reserved {quantity} of product {product.id} "
            f"(reserved={product.reserved_quantity}, available={product.available_quantity})"
        )
        return True

    async def release_reserved_inventory(self, product: Product, quantity: int) -> None:
        """Return held units to available stock. Never drops below zero."""
        _validate_quantity(quantity)

        await self.db.execute(
            update(Product)
            .where(Product.id == product.id)
            .values(reserved_quantity=_released(quantity))
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(product)

        logger.info(
            f"Released {quantity} of product {product.id} "
            f"(reserved={product.reserved_quantity}, available={product.available_quantity})"
        )

    async def complete_sale(self, product: Product, quantity: int) -> None:
        """
        Convert a reservation into a sale.

        Decrements on-hand stock and the reservation, records sales totals and
        marks the product OUT_OF_STOCK once nothing is left on hand.

        Raises:
            InsufficientStockError: fewer than `quantity` units on hand
        """
        _validate_quantity(quantity)

        revenue = product.effective_price * quantity
        now = datetime.now(timezone.utc)

        result = await self.db.execute(
            update(Product)
            .where(
                Product.id == product.id,
                Product.quantity >= quantity,
            )
            .values(
                quantity=Product.quantity - quantity,
                reserved_quantity=_released(quantity),
                total_sold=Product.total_sold + quantity,
                total_revenue=Product.total_revenue + revenue,
                last_sale_date=now,
                status=case(
                    (Product.quantity == quantity, ProductStatus.OUT_OF_STOCK.value),
                    else_=Product.status,
                ),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(product)

        if result.rowcount != 1:
            logger.warning(
                f"Sale of {quantity} rejected for product {product.id}: on hand={product.quantity}"
            )
            raise InsufficientStockError(
                f"Not enough stock on hand to sell {quantity} of '{product.name}'",
                details={
                    "product_id": str(product.id),
                    "available_quantity": product.quantity,
                    "requested_quantity": quantity,
                },
            )

        logger.info(
            f"Sold {quantity} of product {product.id} "
            f"(quantity={product.quantity}, reserved={product.reserved_quantity}, status={product.status})"
        )
