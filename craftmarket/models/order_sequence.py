"""
Daily order number sequence.

One row per (prefix, calendar day). The row is locked with SELECT FOR UPDATE
and incremented inside the order-creation transaction, so two concurrent
checkouts can never be handed the same number.

Format: {PREFIX}{YYYYMMDD}{SEQUENCE}, e.g. AC202610170007
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import String, Integer, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from craftmarket.database import Base
from craftmarket.db_types import UUIDType


class OrderSequence(Base):
    """Per-day counter backing human-facing order numbers."""
    __tablename__ = "order_sequences"
    __table_args__ = (
        UniqueConstraint("prefix", "sequence_date", name="uq_order_sequence_prefix_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    prefix: Mapped[str] = mapped_column(String(10), nullable=False)
    sequence_date: Mapped[str] = mapped_column(
        String(8),
        nullable=False,
        comment="YYYYMMDD (UTC)"
    )
    current_number: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Last issued sequence number"
    )
    padding_length: Mapped[int] = mapped_column(Integer, default=4, nullable=False)

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

    def format_number(self, number: int) -> str:
        return f"{self.prefix}{self.sequence_date}{str(number).zfill(self.padding_length)}"

    def get_next_number(self) -> str:
        """Increment the counter and return the formatted order number."""
        self.current_number += 1
        return self.format_number(self.current_number)

    def __repr__(self) -> str:
        return f"<OrderSequence({self.prefix}{self.sequence_date} at {self.current_number})>"
