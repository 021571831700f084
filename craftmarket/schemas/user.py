from typing import Optional, Union
from decimal import Decimal
import uuid

from craftmarket.schemas.base import BaseResponseSchema


class CustomerProfileResponse(BaseResponseSchema):
    loyalty_points: int
    loyalty_tier: str
    total_orders: int
    total_spent: Decimal
    average_order_value: Decimal


class ArtisanProfileResponse(BaseResponseSchema):
    business_name: Optional[str] = None
    craft_specialty: Optional[str] = None
    product_count: int


class UserProfileResponse(BaseResponseSchema):
    """User identity plus the extension row matching its role."""
    id: uuid.UUID
    email: str
    first_name: str
    last_name: Optional[str] = None
    full_name: str
    role: str
    is_active: bool
    profile: Optional[Union[CustomerProfileResponse, ArtisanProfileResponse]] = None
