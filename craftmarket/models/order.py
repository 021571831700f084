import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from craftmarket.database import Base
from craftmarket.db_types import UUIDType, JSONType


class OrderStatus(str, Enum):
    """Overall order status."""
    PENDING_PAYMENT = "pending_payment"
    PAYMENT_PROCESSING = "payment_processing"
    PAID = "paid"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    READY = "ready"                   # Every artisan has finished their items
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class OrderItemStatus(str, Enum):
    """Per line item crafting/fulfilment status."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CRAFTING = "crafting"
    READY = "ready"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment sub-record status."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    """Payment method enumeration."""
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    CASH_ON_DELIVERY = "cash_on_delivery"
    MOBILE_PAYMENT = "mobile_payment"


class ShippingMethod(str, Enum):
    """Shipping method enumeration."""
    STANDARD = "standard"
    EXPRESS = "express"
    PICKUP = "pickup"
    INTERNATIONAL = "international"


class DiscountType(str, Enum):
    COUPON = "coupon"
    LOYALTY = "loyalty"
    BULK = "bulk"
    SEASONAL = "seasonal"


class RefundStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ActorRole(str, Enum):
    """Who performed a timeline transition."""
    CUSTOMER = "CUSTOMER"
    ARTISAN = "ARTISAN"
    ADMIN = "ADMIN"


# Timeline-only marker, never stored in Order.status
PAYMENT_FAILED_EVENT = "payment_failed"

NON_CANCELLABLE_STATUSES = frozenset({
    OrderStatus.SHIPPED.value,
    OrderStatus.DELIVERED.value,
    OrderStatus.COMPLETED.value,
    OrderStatus.CANCELLED.value,
    OrderStatus.REFUNDED.value,
})


class Order(Base):
    """
    Order aggregate.
    Owns its line items and timeline entries; buyer and sellers are referenced.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index('ix_order_status_created', 'status', 'created_at'),
        Index('ix_order_buyer_created', 'buyer_id', 'created_at'),
        Index('ix_order_payment_status', 'payment_status', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Order Identification
    order_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True
    )

    # Buyer
    buyer_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False
    )

    # Status
    status: Mapped[str] = mapped_column(
        String(30),
        default=OrderStatus.PENDING_PAYMENT.value,
        nullable=False,
        index=True
    )

    # Pricing (catalog currency)
    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Sum of line item totals"
    )
    shipping_cost: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )
    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="subtotal + shipping + tax - discount"
    )
    currency: Mapped[str] = mapped_column(String(3), default="LKR", nullable=False)
    # [{"type": "coupon", "code": "VESAK10", "amount": "150.00", "description": "..."}]
    discounts: Mapped[List[dict]] = mapped_column(JSONType, default=list, nullable=False)

    # Addresses (snapshots for historical record)
    shipping_address: Mapped[dict] = mapped_column(JSONType, nullable=False)
    billing_address: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    # Payment
    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)
    payment_status: Mapped[str] = mapped_column(
        String(20),
        default=PaymentStatus.PENDING.value,
        nullable=False
    )
    transaction_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    payment_details: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    # Shipping
    shipping_method: Mapped[str] = mapped_column(String(30), nullable=False)
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    carrier: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    delivery_instructions: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Completion
    estimated_completion_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_completion_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Cancellation
    is_cancelled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cancelled_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    cancelled_by_role: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    refund_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # Notes
    customer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    internal_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position"
    )
    timeline: Mapped[List["OrderTimelineEntry"]] = relationship(
        "OrderTimelineEntry",
        back_populates="order",
        cascade="save-update, merge",
        order_by="OrderTimelineEntry.sequence"
    )

    @property
    def item_count(self) -> int:
        """Get total number of units."""
        return sum(item.quantity for item in self.items)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.COMPLETED.value

    def can_be_cancelled(self) -> bool:
        return self.status not in NON_CANCELLABLE_STATUSES

    def seller_ids(self) -> set:
        return {item.seller_id for item in self.items}

    def items_for_seller(self, seller_id: uuid.UUID) -> List["OrderItem"]:
        return [item for item in self.items if item.seller_id == seller_id]

    def add_timeline_entry(
        self,
        status: str,
        actor_id: uuid.UUID,
        actor_role: str,
        note: Optional[str] = None,
    ) -> "OrderTimelineEntry":
        """Append an immutable timeline entry. Does not change `status`."""
        entry = OrderTimelineEntry(
            status=status,
            note=note,
            actor_id=actor_id,
            actor_role=actor_role,
            sequence=len(self.timeline) + 1,
        )
        self.timeline.append(entry)
        return entry

    def add_status_update(
        self,
        status: str,
        actor_id: uuid.UUID,
        actor_role: str,
        note: Optional[str] = None,
    ) -> "OrderTimelineEntry":
        """Move the order to `status` and record the transition."""
        self.status = status
        return self.add_timeline_entry(status, actor_id, actor_role, note)

    def __repr__(self) -> str:
        return f"<Order(number='{self.order_number}', status='{self.status}')>"


class OrderItem(Base):
    """Order line item model."""
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False
    )
    # Denormalized from the product at order time
    seller_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Product snapshot (stored for historical record)
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Quantity & Pricing
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    customization_cost: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
        comment="Customization surcharge for the whole line"
    )
    total_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    # {"is_customized": bool, "custom_options": [...], "custom_instructions": str}
    customization: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        default=OrderItemStatus.PENDING.value,
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="items")

    @property
    def is_customized(self) -> bool:
        return bool((self.customization or {}).get("is_customized"))

    def __repr__(self) -> str:
        return f"<OrderItem(product='{self.product_name}', qty={self.quantity}, status='{self.status}')>"


class OrderTimelineEntry(Base):
    """Append-only record of an order status transition."""
    __tablename__ = "order_timeline"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[str] = mapped_column(String(30), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    actor_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    actor_role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="CUSTOMER, ARTISAN, ADMIN"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="timeline")

    def __repr__(self) -> str:
        return f"<OrderTimelineEntry(#{self.sequence} '{self.status}' by {self.actor_role})>"
