"""
Customer loyalty and purchase statistics.

Loyalty points are credited at checkout (1 point per LOYALTY_POINT_UNIT of
order total). Purchase statistics and the loyalty tier are recomputed from
orders with a completed payment.
"""
import logging
import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from craftmarket.config import settings
from craftmarket.core.exceptions import UserNotFoundError
from craftmarket.models.order import Order, PaymentStatus
from craftmarket.models.user import (
    User, UserRole, CustomerProfile, ArtisanProfile, loyalty_tier_for,
)


logger = logging.getLogger(__name__)


def loyalty_points_for(amount: Decimal) -> int:
    """floor(amount / LOYALTY_POINT_UNIT); never negative."""
    if amount <= 0:
        return 0
    return int(Decimal(amount) // Decimal(settings.LOYALTY_POINT_UNIT))


class UserService:
    """Role-specific profile lookups and customer statistics."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: uuid.UUID) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundError("User not found", details={"user_id": str(user_id)})
        return user

    async def get_profile(self, user: User) -> Optional[Union[CustomerProfile, ArtisanProfile]]:
        """Return the extension row matching the user's role, if the role has one."""
        if user.role == UserRole.CUSTOMER.value:
            return await self.get_customer_profile(user.id)
        if user.role == UserRole.ARTISAN.value:
            return await self.db.get(ArtisanProfile, user.id)
        return None

    async def get_customer_profile(self, user_id: uuid.UUID) -> CustomerProfile:
        """Load the customer profile, creating an empty one on first use."""
        profile = await self.db.get(CustomerProfile, user_id)
        if profile is None:
            profile = CustomerProfile(
                user_id=user_id,
                loyalty_points=0,
                total_orders=0,
                total_spent=Decimal("0.00"),
                average_order_value=Decimal("0.00"),
            )
            self.db.add(profile)
            await self.db.flush()
        return profile

    async def add_loyalty_points(self, user_id: uuid.UUID, order_amount: Decimal) -> int:
        """Credit points for an order total and count the order. Returns points earned."""
        profile = await self.get_customer_profile(user_id)
        points = loyalty_points_for(order_amount)
        profile.loyalty_points += points
        profile.total_orders += 1
        logger.info(f"Credited {points} loyalty points to customer {user_id} (balance={profile.loyalty_points})")
        return points

    async def refresh_purchase_statistics(self, user_id: uuid.UUID) -> CustomerProfile:
        """Recompute spend, average order value and tier from paid orders."""
        profile = await self.get_customer_profile(user_id)

        result = await self.db.execute(
            select(
                func.count(Order.id),
                func.coalesce(func.sum(Order.total_amount), 0),
            ).where(
                Order.buyer_id == user_id,
                Order.payment_status == PaymentStatus.COMPLETED.value,
            )
        )
        paid_orders, total_spent = result.one()
        total_spent = Decimal(str(total_spent)).quantize(Decimal("0.01"))

        profile.total_spent = total_spent
        if paid_orders:
            profile.average_order_value = (total_spent / paid_orders).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP
            )
        profile.loyalty_tier = loyalty_tier_for(total_spent).value

        logger.info(
            f"Customer {user_id} statistics: paid_orders={paid_orders}, "
            f"total_spent={total_spent}, tier={profile.loyalty_tier}"
        )
        return profile
