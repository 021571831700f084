"""
Order Sequence Service for atomic order number generation.

Format: {PREFIX}{YYYYMMDD}{SEQUENCE}, e.g. AC202610170001

The counter restarts every UTC day. Rows are locked with SELECT FOR UPDATE
so concurrent checkouts cannot be handed the same number; the increment is
flushed into the caller's transaction and released on its commit/rollback.

USAGE:
    service = OrderSequenceService(db)
    order_number = await service.next_order_number()
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from craftmarket.config import settings
from craftmarket.models.order_sequence import OrderSequence


logger = logging.getLogger(__name__)


def sequence_date_for(moment: Optional[datetime] = None) -> str:
    moment = moment or datetime.now(timezone.utc)
    return moment.strftime("%Y%m%d")


class OrderSequenceService:
    """Hands out order numbers from a row-locked per-day counter."""

    def __init__(self, db: AsyncSession, prefix: Optional[str] = None):
        self.db = db
        self.prefix = prefix or settings.ORDER_NUMBER_PREFIX

    async def next_order_number(self, moment: Optional[datetime] = None) -> str:
        """
        Increment today's counter and return the formatted number.

        Numbers grow past 9999 instead of wrapping.
        """
        sequence = await self._get_or_create_sequence(sequence_date_for(moment))
        order_number = sequence.get_next_number()
        await self.db.flush()
        return order_number

    async def _lock_sequence(self, sequence_date: str) -> Optional[OrderSequence]:
        result = await self.db.execute(
            select(OrderSequence)
            .where(
                OrderSequence.prefix == self.prefix,
                OrderSequence.sequence_date == sequence_date,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_or_create_sequence(self, sequence_date: str) -> OrderSequence:
        """Get today's row with a lock, creating it on the first order of the day."""
        sequence = await self._lock_sequence(sequence_date)
        if sequence:
            return sequence

        # A concurrent first insert of the day hits uq_order_sequence_prefix_date
        # and fails that checkout with IntegrityError.
        self.db.add(OrderSequence(
            prefix=self.prefix,
            sequence_date=sequence_date,
            current_number=0,
            padding_length=4,
        ))
        await self.db.flush()
        logger.info(f"Started order sequence {self.prefix}{sequence_date}")

        # Re-fetch with lock
        return await self._lock_sequence(sequence_date)
