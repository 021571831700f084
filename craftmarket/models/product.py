import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import (
    String, Boolean, DateTime, ForeignKey, Integer, Text, Numeric, Index, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column

from craftmarket.database import Base
from craftmarket.db_types import UUIDType, JSONType


class ProductStatus(str, Enum):
    """Product status enumeration."""
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    DISCONTINUED = "DISCONTINUED"


class ProductCategory(str, Enum):
    """Craft categories."""
    WOOD_CARVING = "wood_carving"
    POTTERY = "pottery"
    BATIK = "batik"
    JEWELRY = "jewelry"
    TEXTILES = "textiles"
    METALWORK = "metalwork"
    LEATHER_CRAFT = "leather_craft"
    BAMBOO_CRAFT = "bamboo_craft"
    STONE_CARVING = "stone_carving"
    MASKS = "masks"
    TRADITIONAL_PAINTING = "traditional_painting"
    DECORATIVE_ITEMS = "decorative_items"
    FUNCTIONAL_ITEMS = "functional_items"


class Product(Base):
    """
    Catalog entity sold by an artisan.

    Stock is tracked as `quantity` (physically held) and `reserved_quantity`
    (held for unpaid orders). Counters are only ever changed through
    StockReservationService, which issues guarded single-row UPDATEs.
    """
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("reserved_quantity >= 0", name="ck_product_reserved_non_negative"),
        CheckConstraint("reserved_quantity <= quantity", name="ck_product_reserved_within_quantity"),
        Index('ix_product_category_active_status', 'category', 'is_active', 'status'),
        Index('ix_product_seller_active', 'seller_id', 'is_active'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Basic Info
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    subcategory: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    seller_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        comment="Artisan who crafts and sells this product"
    )

    # Pricing
    base_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    discounted_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), default="LKR", nullable=False)

    # Inventory
    quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    reserved_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    low_stock_threshold: Mapped[int] = mapped_column(Integer, default=5, nullable=False)

    # Crafting
    time_to_craft: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="Free-text lead time, e.g. '5 days', '2 weeks'"
    )
    is_customizable: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # [{"name": "Engraving", "options": ["Name", "Date"], "additional_cost": 500}]
    customization_options: Mapped[List[dict]] = mapped_column(JSONType, default=list, nullable=False)

    # Sales
    total_sold: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_revenue: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        default=Decimal("0.00"),
        nullable=False
    )
    last_sale_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Status
    status: Mapped[str] = mapped_column(
        String(20),
        default=ProductStatus.ACTIVE.value,
        nullable=False,
        comment="DRAFT, ACTIVE, OUT_OF_STOCK, DISCONTINUED"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Timestamps
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

    @property
    def available_quantity(self) -> int:
        """Stock that can still be reserved."""
        return self.quantity - self.reserved_quantity

    @property
    def effective_price(self) -> Decimal:
        """Price a buyer pays per unit before customization."""
        if self.discounted_price is not None:
            return self.discounted_price
        return self.base_price

    @property
    def is_low_stock(self) -> bool:
        return self.available_quantity <= self.low_stock_threshold

    def is_in_stock(self, requested_quantity: int = 1) -> bool:
        return self.available_quantity >= requested_quantity

    def get_customization_option(self, name: str) -> Optional[dict]:
        for option in self.customization_options or []:
            if option.get("name") == name:
                return option
        return None

    def __repr__(self) -> str:
        return f"<Product(name='{self.name}', qty={self.quantity}, reserved={self.reserved_quantity})>"
