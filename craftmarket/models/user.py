import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from craftmarket.database import Base
from craftmarket.db_types import UUIDType


class UserRole(str, Enum):
    """Marketplace participant roles."""
    CUSTOMER = "CUSTOMER"
    ARTISAN = "ARTISAN"
    SUPPLIER = "SUPPLIER"
    TOURISM_PROVIDER = "TOURISM_PROVIDER"
    ADMIN = "ADMIN"


class LoyaltyTier(str, Enum):
    """Customer loyalty tiers, by lifetime spend."""
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


# Lifetime spend thresholds, highest first
LOYALTY_TIER_THRESHOLDS = [
    (Decimal("100000"), LoyaltyTier.PLATINUM),
    (Decimal("50000"), LoyaltyTier.GOLD),
    (Decimal("25000"), LoyaltyTier.SILVER),
]


def loyalty_tier_for(total_spent: Decimal) -> LoyaltyTier:
    for threshold, tier in LOYALTY_TIER_THRESHOLDS:
        if total_spent >= threshold:
            return tier
    return LoyaltyTier.BRONZE


class User(Base):
    """
    Base identity shared by every marketplace participant.

    Role-specific data lives in extension tables (CustomerProfile,
    ArtisanProfile) selected by `role` at lookup time.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    role: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        index=True,
        comment="CUSTOMER, ARTISAN, SUPPLIER, TOURISM_PROVIDER, ADMIN"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

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

    customer_profile: Mapped[Optional["CustomerProfile"]] = relationship(
        "CustomerProfile",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan"
    )
    artisan_profile: Mapped[Optional["ArtisanProfile"]] = relationship(
        "ArtisanProfile",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name or ''}".strip()

    def __repr__(self) -> str:
        return f"<User(email='{self.email}', role='{self.role}')>"


class CustomerProfile(Base):
    """Customer extension: loyalty and purchase statistics."""
    __tablename__ = "customer_profiles"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True
    )

    loyalty_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    loyalty_tier: Mapped[str] = mapped_column(
        String(20),
        default=LoyaltyTier.BRONZE.value,
        nullable=False
    )

    total_orders: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_spent: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False,
        comment="Sum of paid order totals"
    )
    average_order_value: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        default=Decimal("0.00"),
        nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="customer_profile")

    def __repr__(self) -> str:
        return f"<CustomerProfile(points={self.loyalty_points}, tier='{self.loyalty_tier}')>"


class ArtisanProfile(Base):
    """Artisan (seller) extension."""
    __tablename__ = "artisan_profiles"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True
    )
    business_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    craft_specialty: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    product_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="artisan_profile")

    def __repr__(self) -> str:
        return f"<ArtisanProfile(business='{self.business_name}')>"
