from pydantic import Field, computed_field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import uuid

from craftmarket.models.product import ProductCategory, ProductStatus
from craftmarket.schemas.base import (
    BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema, PaginatedResponse,
)


# ==================== CUSTOMIZATION ====================

class CustomizationOption(BaseCreateSchema):
    """A customization the artisan offers, e.g. engraving."""
    name: str = Field(..., min_length=1, max_length=100)
    options: List[str] = Field(default_factory=list)
    additional_cost: Decimal = Field(Decimal("0"), ge=0)


# ==================== PRODUCT SCHEMAS ====================

class ProductCreate(BaseCreateSchema):
    """Product creation schema (artisan only)."""
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    category: ProductCategory
    subcategory: Optional[str] = Field(None, max_length=100)
    base_price: Decimal = Field(..., gt=0)
    discounted_price: Optional[Decimal] = Field(None, gt=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    quantity: int = Field(0, ge=0)
    low_stock_threshold: int = Field(5, ge=0)
    time_to_craft: Optional[str] = Field(None, max_length=50)
    is_customizable: bool = False
    customization_options: List[CustomizationOption] = Field(default_factory=list)
    is_featured: bool = False


class ProductUpdate(BaseUpdateSchema):
    """Partial product update. Stock reservations cannot be edited here."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[ProductCategory] = None
    subcategory: Optional[str] = Field(None, max_length=100)
    base_price: Optional[Decimal] = Field(None, gt=0)
    discounted_price: Optional[Decimal] = Field(None, gt=0)
    quantity: Optional[int] = Field(None, ge=0)
    low_stock_threshold: Optional[int] = Field(None, ge=0)
    time_to_craft: Optional[str] = Field(None, max_length=50)
    is_customizable: Optional[bool] = None
    customization_options: Optional[List[CustomizationOption]] = None
    status: Optional[ProductStatus] = None
    is_featured: Optional[bool] = None


class ProductResponse(BaseResponseSchema):
    """Product response schema."""
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    category: str
    subcategory: Optional[str] = None
    seller_id: uuid.UUID
    base_price: Decimal
    discounted_price: Optional[Decimal] = None
    currency: str
    quantity: int
    reserved_quantity: int
    low_stock_threshold: int
    time_to_craft: Optional[str] = None
    is_customizable: bool
    customization_options: List[dict] = []
    total_sold: int
    total_revenue: Decimal
    last_sale_date: Optional[datetime] = None
    status: str
    is_active: bool
    is_featured: bool
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def available_quantity(self) -> int:
        return self.quantity - self.reserved_quantity


class ProductListResponse(PaginatedResponse[ProductResponse]):
    """Paginated product list."""
    pass


# ==================== RESERVATION ====================

class ReserveRequest(BaseCreateSchema):
    # Range checked by the service so the error code is INVALID_QUANTITY
    quantity: int


class ReservationData(BaseResponseSchema):
    reserved_quantity: int
    available_quantity: int


class ReserveResponse(BaseResponseSchema):
    success: bool = True
    message: str
    data: ReservationData
