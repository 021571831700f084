from pydantic import BaseModel, Field, model_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import uuid

from craftmarket.models.order import (
    OrderStatus, OrderItemStatus, PaymentStatus, PaymentMethod, ShippingMethod, DiscountType,
)
from craftmarket.schemas.base import (
    BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema, PaginatedResponse,
)


# ==================== INPUT SCHEMAS ====================

class CustomOptionSelection(BaseCreateSchema):
    """One selected customization; cost comes from the product's offer."""
    name: str = Field(..., min_length=1, max_length=100)
    selected_option: Optional[str] = None


class ItemCustomization(BaseCreateSchema):
    is_customized: bool = False
    custom_options: List[CustomOptionSelection] = Field(default_factory=list)
    custom_instructions: Optional[str] = Field(None, max_length=1000)


class OrderItemCreate(BaseCreateSchema):
    """Order line requested by the buyer."""
    product_id: uuid.UUID
    # Range checked by the stock service so the error code is INVALID_QUANTITY
    quantity: int
    customization: Optional[ItemCustomization] = None


class Address(BaseCreateSchema):
    """Postal address snapshot."""
    full_name: Optional[str] = Field(None, max_length=200)
    phone: Optional[str] = Field(None, max_length=20)
    address_line1: str = Field(..., min_length=1, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    country: str = Field("Sri Lanka", max_length=100)


class PaymentInput(BaseCreateSchema):
    method: PaymentMethod


class ShippingInput(BaseCreateSchema):
    method: ShippingMethod = ShippingMethod.STANDARD
    delivery_instructions: Optional[str] = Field(None, max_length=1000)


class DiscountInput(BaseCreateSchema):
    type: DiscountType
    code: Optional[str] = Field(None, max_length=50)
    amount: Decimal = Field(..., ge=0)
    description: Optional[str] = Field(None, max_length=255)


class OrderCreate(BaseCreateSchema):
    """Checkout request. Buyer comes from the authenticated user."""
    items: List[OrderItemCreate] = Field(..., min_length=1)
    shipping_address: Address
    billing_address: Optional[Address] = None
    payment: PaymentInput
    shipping: ShippingInput = Field(default_factory=ShippingInput)
    notes: Optional[str] = Field(None, max_length=2000)
    discounts: List[DiscountInput] = Field(default_factory=list)


class OrderStatusUpdate(BaseUpdateSchema):
    """Overall status change, or a single item's status when item_id is given."""
    status: str
    item_id: Optional[uuid.UUID] = None
    note: Optional[str] = Field(None, max_length=1000)
    tracking_number: Optional[str] = Field(None, max_length=100)
    carrier: Optional[str] = Field(None, max_length=100)

    @model_validator(mode="after")
    def check_status_value(self):
        allowed = OrderItemStatus if self.item_id else OrderStatus
        valid = {s.value for s in allowed}
        if self.status not in valid:
            raise ValueError(f"status must be one of: {', '.join(sorted(valid))}")
        return self


class OrderCancel(BaseUpdateSchema):
    reason: Optional[str] = Field(None, max_length=1000)


class PaymentStatusUpdate(BaseUpdateSchema):
    payment_status: PaymentStatus
    transaction_id: Optional[str] = Field(None, max_length=100)
    payment_details: Optional[dict] = None


# ==================== RESPONSE SCHEMAS ====================

class OrderItemResponse(BaseResponseSchema):
    """Order line response schema."""
    id: uuid.UUID
    product_id: uuid.UUID
    seller_id: uuid.UUID
    product_name: str
    quantity: int
    unit_price: Decimal
    customization_cost: Decimal
    total_price: Decimal
    customization: dict = {}
    status: str


class TimelineEntryResponse(BaseResponseSchema):
    sequence: int
    status: str
    note: Optional[str] = None
    actor_id: uuid.UUID
    actor_role: str
    created_at: datetime


class OrderResponse(BaseResponseSchema):
    """Full order detail."""
    id: uuid.UUID
    order_number: str
    buyer_id: uuid.UUID
    status: str

    subtotal: Decimal
    shipping_cost: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    currency: str
    discounts: List[dict] = []

    shipping_address: dict
    billing_address: Optional[dict] = None

    payment_method: str
    payment_status: str
    transaction_id: Optional[str] = None
    payment_date: Optional[datetime] = None

    shipping_method: str
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    delivery_instructions: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None

    estimated_completion_date: Optional[datetime] = None
    actual_completion_date: Optional[datetime] = None

    is_cancelled: bool
    cancelled_by: Optional[uuid.UUID] = None
    cancelled_by_role: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    refund_status: Optional[str] = None

    customer_notes: Optional[str] = None

    items: List[OrderItemResponse] = []
    timeline: List[TimelineEntryResponse] = []

    created_at: datetime
    updated_at: datetime


class OrderBrief(BaseResponseSchema):
    """Row in an order list."""
    id: uuid.UUID
    order_number: str
    status: str
    payment_status: str
    total_amount: Decimal
    currency: str
    item_count: int
    estimated_completion_date: Optional[datetime] = None
    created_at: datetime


class OrderListResponse(PaginatedResponse[OrderBrief]):
    """Paginated order list."""
    pass


# ==================== STATISTICS ====================

class MonthlyOrderStats(BaseModel):
    year: int
    month: int
    orders: int
    revenue: Decimal


class OrderStatistics(BaseModel):
    total_orders: int = 0
    total_revenue: Decimal = Decimal("0")
    average_order_value: Decimal = Decimal("0")
    pending_orders: int = 0
    completed_orders: int = 0
    monthly: List[MonthlyOrderStats] = []
