"""
Order Service.

Order creation, item/order status changes, cancellation and payment
status handling. Each public operation is one unit of work: it commits on
success and rolls back everything (stock reservations included) on any
failure before re-raising.
"""
import logging
import re
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from craftmarket.config import settings
from craftmarket.core.enum_utils import get_enum_value
from craftmarket.core.exceptions import (
    MarketplaceError,
    ProductNotFoundError,
    OrderNotFoundError,
    OrderItemNotFoundError,
    InsufficientStockError,
    ReservationFailedError,
    CannotCancelOrderError,
    InvalidStatusTransitionError,
    InvalidDiscountError,
    InvalidCustomizationError,
    AccessDeniedError,
)
from craftmarket.models.order import (
    Order, OrderItem,
    OrderStatus, OrderItemStatus, PaymentStatus, RefundStatus, ActorRole,
    PAYMENT_FAILED_EVENT,
)
from craftmarket.models.product import Product
from craftmarket.models.user import User, UserRole
from craftmarket.schemas.order import OrderCreate, ItemCustomization
from craftmarket.services.order_sequence_service import OrderSequenceService
from craftmarket.services.stock_reservation_service import StockReservationService
from craftmarket.services.user_service import UserService


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

_LEAD_TIME_PATTERN = re.compile(r"(\d+)\s*(day|week)s?", re.IGNORECASE)

# Payment states in which the order's stock is still held as a reservation
_RESERVATION_HELD = frozenset({PaymentStatus.PENDING.value, PaymentStatus.PROCESSING.value})

# Statuses at or past `ready`; item changes no longer move the order
_READY_OR_LATER = frozenset({
    OrderStatus.READY.value,
    OrderStatus.SHIPPED.value,
    OrderStatus.DELIVERED.value,
    OrderStatus.COMPLETED.value,
    OrderStatus.REFUNDED.value,
})

_STATUS_TIMESTAMPS = {
    OrderStatus.SHIPPED.value: "shipped_at",
    OrderStatus.DELIVERED.value: "delivered_at",
    OrderStatus.COMPLETED.value: "actual_completion_date",
}


def _money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


# ==================== PRICING & SCHEDULING ====================

def parse_lead_time_days(time_to_craft: Optional[str], default: Optional[int] = None) -> int:
    """
    Turn a free-text lead time into days.

    "5 days" -> 5, "2 weeks" -> 14, "1 week" -> 7; anything else -> default.
    """
    if default is None:
        default = settings.DEFAULT_LEAD_TIME_DAYS
    if not time_to_craft:
        return default
    match = _LEAD_TIME_PATTERN.search(time_to_craft)
    if not match:
        return default
    amount = int(match.group(1))
    if match.group(2).lower() == "week":
        return amount * 7
    return amount


def calculate_estimated_completion(
    lines: Iterable[Tuple[Optional[str], bool]],
    now: Optional[datetime] = None,
) -> datetime:
    """
    Completion date for an order, given (lead time text, is customized) per line.

    The order is as slow as its slowest line; customized lines take
    CUSTOMIZATION_EXTRA_DAYS longer.
    """
    now = now or datetime.now(timezone.utc)
    days = [
        parse_lead_time_days(lead_time) + (settings.CUSTOMIZATION_EXTRA_DAYS if customized else 0)
        for lead_time, customized in lines
    ]
    return now + timedelta(days=max(days, default=settings.DEFAULT_LEAD_TIME_DAYS))


def shipping_cost_for(method: str) -> Decimal:
    method = get_enum_value(method)
    if method not in settings.SHIPPING_RATES:
        raise MarketplaceError(
            f"Unsupported shipping method '{method}'",
            code="INVALID_SHIPPING_METHOD",
        )
    return _money(settings.SHIPPING_RATES[method])


def _price_customization(product: Product, customization: Optional[ItemCustomization]) -> Tuple[Decimal, dict]:
    """
    Per-unit surcharge and the snapshot stored on the line.

    Option costs are taken from the product's own offer, never from the client.
    """
    if customization is None or not customization.is_customized:
        return Decimal("0"), {"is_customized": False, "custom_options": [], "custom_instructions": None}

    if not product.is_customizable:
        raise InvalidCustomizationError(
            f"Product '{product.name}' cannot be customized",
            details={"product_id": str(product.id)},
        )

    per_unit = Decimal("0")
    selections = []
    for selection in customization.custom_options:
        offered = product.get_customization_option(selection.name)
        if offered is None:
            raise InvalidCustomizationError(
                f"Customization '{selection.name}' is not offered for '{product.name}'",
                details={"product_id": str(product.id), "option": selection.name},
            )
        if selection.selected_option and offered.get("options") and \
                selection.selected_option not in offered["options"]:
            raise InvalidCustomizationError(
                f"'{selection.selected_option}' is not a valid choice for '{selection.name}'",
                details={"product_id": str(product.id), "option": selection.name},
            )
        cost = _money(offered.get("additional_cost") or 0)
        per_unit += cost
        selections.append({
            "name": selection.name,
            "selected_option": selection.selected_option,
            "additional_cost": str(cost),
        })

    return per_unit, {
        "is_customized": True,
        "custom_options": selections,
        "custom_instructions": customization.custom_instructions,
    }


class OrderService:
    """Order lifecycle operations."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.stock = StockReservationService(db)
        self.sequences = OrderSequenceService(db)
        self.users = UserService(db)

    # ==================== LOOKUPS ====================

    async def _load_order(self, order_id: uuid.UUID) -> Order:
        result = await self.db.execute(
            select(Order)
            .options(selectinload(Order.items), selectinload(Order.timeline))
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        order = result.scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError("Order not found", details={"order_id": str(order_id)})
        return order

    async def _get_active_product(self, product_id: uuid.UUID) -> Product:
        result = await self.db.execute(
            select(Product).where(Product.id == product_id, Product.is_active == True)
        )
        product = result.scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError(
                f"Product {product_id} not found",
                details={"product_id": str(product_id)},
            )
        return product

    @staticmethod
    def _actor_role(actor: User) -> str:
        if actor.role == UserRole.ADMIN.value:
            return ActorRole.ADMIN.value
        if actor.role == UserRole.ARTISAN.value:
            return ActorRole.ARTISAN.value
        return ActorRole.CUSTOMER.value

    @staticmethod
    def _check_access(order: Order, actor: User) -> None:
        """Buyer owns it, artisan sells at least one item in it, or admin."""
        if actor.role == UserRole.ADMIN.value:
            return
        if actor.role == UserRole.CUSTOMER.value and order.buyer_id == actor.id:
            return
        if actor.role == UserRole.ARTISAN.value and actor.id in order.seller_ids():
            return
        raise AccessDeniedError("You do not have access to this order")

    async def get_order(self, order_id: uuid.UUID, actor: User) -> Order:
        order = await self._load_order(order_id)
        self._check_access(order, actor)
        return order

    async def _list_orders(self, where, status, page, size) -> Tuple[List[Order], int]:
        conditions = list(where)
        if status:
            conditions.append(Order.status == get_enum_value(status))

        total = (await self.db.execute(
            select(func.count(Order.id)).where(*conditions)
        )).scalar_one()

        result = await self.db.execute(
            select(Order)
            .options(selectinload(Order.items))
            .where(*conditions)
            .order_by(Order.created_at.desc())
            .offset((page - 1) * size)
            .limit(size)
        )
        return list(result.scalars().all()), total

    async def list_buyer_orders(
        self, buyer_id: uuid.UUID, status: Optional[str] = None, page: int = 1, size: int = 20
    ) -> Tuple[List[Order], int]:
        return await self._list_orders([Order.buyer_id == buyer_id], status, page, size)

    async def list_seller_orders(
        self, seller_id: uuid.UUID, status: Optional[str] = None, page: int = 1, size: int = 20
    ) -> Tuple[List[Order], int]:
        seller_orders = select(OrderItem.order_id).where(OrderItem.seller_id == seller_id)
        return await self._list_orders([Order.id.in_(seller_orders)], status, page, size)

    # ==================== CREATE ====================

    async def create_order(self, data: OrderCreate, buyer: User) -> Order:
        """
        Validate stock, reserve it and persist a priced order.

        Lines are processed in request order; the first failure aborts the
        whole order and rolls back every reservation already made.

        Raises:
            ProductNotFoundError, InsufficientStockError, ReservationFailedError,
            InvalidQuantityError, InvalidCustomizationError, InvalidDiscountError
        """
        if buyer.role != UserRole.CUSTOMER.value:
            raise AccessDeniedError("Only customers can place orders")

        buyer_id = buyer.id
        now = datetime.now(timezone.utc)
        try:
            lines: List[OrderItem] = []
            lead_times = []
            subtotal = Decimal("0")

            for position, item in enumerate(data.items):
                product = await self._get_active_product(item.product_id)

                if not product.is_in_stock(item.quantity):
                    raise InsufficientStockError(
                        f"Insufficient stock for '{product.name}'",
                        details={
                            "product_id": str(product.id),
                            "available_quantity": product.available_quantity,
                            "requested_quantity": item.quantity,
                        },
                    )

                surcharge_per_unit, customization = _price_customization(product, item.customization)

                if not await self.stock.reserve_inventory(product, item.quantity):
                    raise ReservationFailedError(
                        f"Could not reserve stock for '{product.name}'",
                        details={"product_id": str(product.id)},
                    )

                unit_price = _money(product.effective_price)
                customization_cost = _money(surcharge_per_unit * item.quantity)
                total_price = _money(unit_price * item.quantity + customization_cost)
                subtotal += total_price

                lines.append(OrderItem(
                    position=position,
                    product_id=product.id,
                    seller_id=product.seller_id,
                    product_name=product.name,
                    quantity=item.quantity,
                    unit_price=unit_price,
                    customization_cost=customization_cost,
                    total_price=total_price,
                    customization=customization,
                    status=OrderItemStatus.PENDING.value,
                ))
                lead_times.append((product.time_to_craft, customization["is_customized"]))

            subtotal = _money(subtotal)
            shipping_cost = shipping_cost_for(data.shipping.method)
            tax_amount = _money(subtotal * settings.TAX_RATE)
            discount_amount = _money(sum((d.amount for d in data.discounts), Decimal("0")))
            total_amount = subtotal + shipping_cost + tax_amount - discount_amount
            if total_amount < 0:
                raise InvalidDiscountError(
                    "Discounts exceed the order value",
                    details={"discount_amount": str(discount_amount)},
                )

            shipping_address = data.shipping_address.model_dump(mode="json")
            if data.billing_address:
                billing_address = {**data.billing_address.model_dump(mode="json"), "same_as_shipping": False}
            else:
                billing_address = {**shipping_address, "same_as_shipping": True}

            order = Order(
                order_number=await self.sequences.next_order_number(now),
                buyer_id=buyer_id,
                status=OrderStatus.PENDING_PAYMENT.value,
                subtotal=subtotal,
                shipping_cost=shipping_cost,
                tax_amount=tax_amount,
                discount_amount=discount_amount,
                total_amount=total_amount,
                currency=settings.DEFAULT_CURRENCY,
                discounts=[d.model_dump(mode="json") for d in data.discounts],
                shipping_address=shipping_address,
                billing_address=billing_address,
                payment_method=get_enum_value(data.payment.method),
                payment_status=PaymentStatus.PENDING.value,
                shipping_method=get_enum_value(data.shipping.method),
                delivery_instructions=data.shipping.delivery_instructions,
                estimated_completion_date=calculate_estimated_completion(lead_times, now),
                customer_notes=data.notes,
                is_cancelled=False,
                items=lines,
                timeline=[],
            )
            order.add_timeline_entry(
                OrderStatus.PENDING_PAYMENT.value, buyer_id, ActorRole.CUSTOMER.value, "Order placed"
            )
            self.db.add(order)

            await self.users.add_loyalty_points(buyer_id, total_amount)

            await self.db.commit()

        except MarketplaceError as e:
            await self.db.rollback()
            logger.warning(f"Order creation rejected for buyer {buyer_id}: {e.code} {e.message}")
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception(f"Database error creating order for buyer {buyer_id}: {e}")
            raise

        logger.info(
            f"Order {order.order_number} created for buyer {buyer_id}: "
            f"{len(lines)} items, total={total_amount}"
        )
        return await self._load_order(order.id)

    # ==================== STATUS ====================

    async def update_item_status(
        self,
        order_id: uuid.UUID,
        item_id: uuid.UUID,
        status: str,
        actor: User,
        note: Optional[str] = None,
    ) -> Order:
        """
        Change one line's crafting status (owning artisan or admin).

        When the owning artisan's lines are all ready the order moves to
        `ready`; otherwise the change is recorded on the timeline only.
        """
        status = get_enum_value(status)
        order = await self._load_order(order_id)

        item = next((i for i in order.items if i.id == item_id), None)
        if item is None:
            raise OrderItemNotFoundError(
                "Order item not found",
                details={"order_id": str(order_id), "item_id": str(item_id)},
            )

        is_owner = actor.role == UserRole.ARTISAN.value and item.seller_id == actor.id
        if not (is_owner or actor.role == UserRole.ADMIN.value):
            raise AccessDeniedError("Only the artisan selling this item can update it")

        if order.status == OrderStatus.CANCELLED.value:
            raise InvalidStatusTransitionError(
                "Cannot update items of a cancelled order",
                details={"current_status": order.status},
            )
        if status == OrderItemStatus.CANCELLED.value:
            raise InvalidStatusTransitionError(
                "Items are cancelled by cancelling the order",
                code="USE_CANCEL_ENDPOINT",
            )

        actor_role = self._actor_role(actor)
        try:
            item.status = status

            seller_items = order.items_for_seller(item.seller_id)
            promote = (
                status == OrderItemStatus.READY.value
                and order.status not in _READY_OR_LATER
                and all(i.status == OrderItemStatus.READY.value for i in seller_items)
            )
            if promote:
                if is_owner:
                    default_note = "All items from artisan are ready"
                else:
                    default_note = f"All items from artisan {item.seller_id} marked ready by admin"
                order.add_status_update(OrderStatus.READY.value, actor.id, actor_role, note or default_note)
            else:
                order.add_timeline_entry(
                    order.status, actor.id, actor_role,
                    note or f"Item '{item.product_name}' marked {status}",
                )

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception(f"Database error updating item {item_id} of order {order_id}: {e}")
            raise

        logger.info(f"Order {order.order_number} item {item.id} -> {status} by {actor.id}")
        return await self._load_order(order.id)

    async def update_order_status(
        self,
        order_id: uuid.UUID,
        status: str,
        actor: User,
        note: Optional[str] = None,
        tracking_number: Optional[str] = None,
        carrier: Optional[str] = None,
    ) -> Order:
        """Set the overall status and append one timeline entry."""
        status = get_enum_value(status)
        if status == OrderStatus.CANCELLED.value:
            raise InvalidStatusTransitionError(
                "Use the cancel endpoint to cancel an order",
                code="USE_CANCEL_ENDPOINT",
            )

        order = await self._load_order(order_id)
        self._check_access(order, actor)

        if order.status == OrderStatus.CANCELLED.value:
            raise InvalidStatusTransitionError(
                "Cancelled orders cannot change status",
                details={"current_status": order.status},
            )

        now = datetime.now(timezone.utc)
        if status in _STATUS_TIMESTAMPS:
            setattr(order, _STATUS_TIMESTAMPS[status], now)
        if tracking_number:
            order.tracking_number = tracking_number
        if carrier:
            order.carrier = carrier

        previous = order.status
        try:
            order.add_status_update(status, actor.id, self._actor_role(actor), note)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception(f"Database error updating status of order {order_id}: {e}")
            raise

        logger.info(f"Order {order.order_number} status {previous} -> {status} by {actor.id}")
        return await self._load_order(order.id)

    # ==================== CANCEL ====================

    async def _release_all(self, order: Order) -> None:
        for item in order.items:
            product = await self.db.get(Product, item.product_id)
            if product is not None:
                await self.stock.release_reserved_inventory(product, item.quantity)

    async def _reserve_all(self, order: Order) -> None:
        for item in order.items:
            product = await self.db.get(Product, item.product_id)
            if product is None or not await self.stock.reserve_inventory(product, item.quantity):
                raise ReservationFailedError(
                    f"Could not reserve stock for '{item.product_name}'",
                    details={"product_id": str(item.product_id)},
                )

    async def cancel_order(self, order_id: uuid.UUID, actor: User, reason: Optional[str] = None) -> Order:
        """
        Cancel an order and return its reserved stock.

        Raises:
            CannotCancelOrderError: order already shipped, delivered, completed,
                cancelled or refunded
        """
        order = await self._load_order(order_id)
        self._check_access(order, actor)

        if not order.can_be_cancelled():
            raise CannotCancelOrderError(
                f"Order cannot be cancelled in status '{order.status}'",
                details={"current_status": order.status},
            )

        try:
            if order.payment_status in _RESERVATION_HELD:
                await self._release_all(order)

            now = datetime.now(timezone.utc)
            actor_role = self._actor_role(actor)
            for item in order.items:
                item.status = OrderItemStatus.CANCELLED.value

            order.is_cancelled = True
            order.cancelled_by = actor.id
            order.cancelled_by_role = actor_role
            order.cancelled_at = now
            order.cancellation_reason = reason
            order.refund_status = RefundStatus.PENDING.value
            order.add_status_update(
                OrderStatus.CANCELLED.value, actor.id, actor_role, reason or "Order cancelled"
            )

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception(f"Database error cancelling order {order_id}: {e}")
            raise

        logger.info(f"Order {order.order_number} cancelled by {actor_role} {actor.id}")
        return await self._load_order(order.id)

    # ==================== PAYMENT ====================

    async def update_payment_status(
        self,
        order_id: uuid.UUID,
        payment_status: str,
        actor: User,
        transaction_id: Optional[str] = None,
        payment_details: Optional[dict] = None,
    ) -> Order:
        """
        Apply a payment outcome.

        completed -> reservations become sales, order is `paid`.
        failed    -> reservations released, order status unchanged.
        processing / pending -> status follows; stock is re-reserved when
        retrying after a failure.
        refunded  -> admin only, on a completed payment; a cancelled order
        stays cancelled. A refunded payment accepts no further updates.
        """
        payment_status = get_enum_value(payment_status)
        order = await self._load_order(order_id)

        if actor.role != UserRole.ADMIN.value and not (
            actor.role == UserRole.CUSTOMER.value and order.buyer_id == actor.id
        ):
            raise AccessDeniedError("You do not have access to this order's payment")

        if order.payment_status == PaymentStatus.REFUNDED.value or order.status == OrderStatus.REFUNDED.value:
            raise InvalidStatusTransitionError(
                "Payment has already been refunded",
                code="PAYMENT_ALREADY_REFUNDED",
            )

        cancelled = order.is_cancelled or order.status == OrderStatus.CANCELLED.value
        if cancelled and not (order.is_paid and payment_status == PaymentStatus.REFUNDED.value):
            raise InvalidStatusTransitionError(
                "Payment cannot be updated on a cancelled order",
                code="ORDER_CANCELLED",
            )

        if order.is_paid and payment_status != PaymentStatus.REFUNDED.value:
            raise InvalidStatusTransitionError(
                "Payment has already been completed",
                code="PAYMENT_ALREADY_COMPLETED",
            )

        actor_role = self._actor_role(actor)
        now = datetime.now(timezone.utc)
        previous = order.payment_status

        try:
            if transaction_id:
                order.transaction_id = transaction_id
            if payment_details is not None:
                order.payment_details = payment_details

            if payment_status == PaymentStatus.COMPLETED.value:
                if previous == PaymentStatus.FAILED.value:
                    await self._reserve_all(order)
                for item in order.items:
                    product = await self.db.get(Product, item.product_id)
                    await self.stock.complete_sale(product, item.quantity)
                order.payment_status = payment_status
                order.payment_date = now
                order.add_status_update(OrderStatus.PAID.value, actor.id, actor_role, "Payment completed")
                await self.db.flush()
                await self.users.refresh_purchase_statistics(order.buyer_id)

            elif payment_status == PaymentStatus.FAILED.value:
                if previous in _RESERVATION_HELD:
                    await self._release_all(order)
                order.payment_status = payment_status
                order.add_timeline_entry(PAYMENT_FAILED_EVENT, actor.id, actor_role, "Payment failed")

            elif payment_status == PaymentStatus.REFUNDED.value:
                if actor.role != UserRole.ADMIN.value:
                    raise AccessDeniedError("Only admins can record refunds")
                if not order.is_paid:
                    raise InvalidStatusTransitionError(
                        "Only completed payments can be refunded",
                        details={"payment_status": order.payment_status},
                    )
                order.payment_status = payment_status
                order.refund_status = RefundStatus.COMPLETED.value
                if cancelled:
                    # Cancelled orders stay cancelled; the refund closes the cancellation
                    order.add_timeline_entry(order.status, actor.id, actor_role, "Payment refunded")
                else:
                    order.add_status_update(OrderStatus.REFUNDED.value, actor.id, actor_role, "Payment refunded")
                await self.db.flush()
                await self.users.refresh_purchase_statistics(order.buyer_id)

            else:
                if previous == PaymentStatus.FAILED.value:
                    await self._reserve_all(order)
                order.payment_status = payment_status
                new_status = (
                    OrderStatus.PAYMENT_PROCESSING.value
                    if payment_status == PaymentStatus.PROCESSING.value
                    else OrderStatus.PENDING_PAYMENT.value
                )
                order.add_status_update(new_status, actor.id, actor_role)

            await self.db.commit()

        except MarketplaceError as e:
            await self.db.rollback()
            logger.warning(f"Payment update rejected for order {order_id}: {e.code} {e.message}")
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.exception(f"Database error updating payment for order {order_id}: {e}")
            raise

        logger.info(f"Order {order.order_number} payment {previous} -> {payment_status}")
        return await self._load_order(order.id)

    # ==================== STATISTICS ====================

    async def get_order_statistics(self, actor: User) -> dict:
        """Totals and a 12-month breakdown over the orders visible to the actor."""
        query = select(Order.status, Order.total_amount, Order.created_at)
        if actor.role == UserRole.ARTISAN.value:
            query = query.where(
                Order.id.in_(select(OrderItem.order_id).where(OrderItem.seller_id == actor.id))
            )
        elif actor.role == UserRole.CUSTOMER.value:
            query = query.where(Order.buyer_id == actor.id)
        elif actor.role != UserRole.ADMIN.value:
            raise AccessDeniedError("Order statistics are not available for this role")

        rows = (await self.db.execute(query)).all()

        total_revenue = Decimal("0")
        pending = completed = 0
        monthly = defaultdict(lambda: {"orders": 0, "revenue": Decimal("0")})
        for status, amount, created_at in rows:
            amount = Decimal(amount)
            total_revenue += amount
            if status == OrderStatus.PENDING_PAYMENT.value:
                pending += 1
            elif status in (OrderStatus.DELIVERED.value, OrderStatus.COMPLETED.value):
                completed += 1
            bucket = monthly[(created_at.year, created_at.month)]
            bucket["orders"] += 1
            bucket["revenue"] += amount

        today = datetime.now(timezone.utc)
        oldest = (today.year * 12 + today.month - 1) - 11
        months = sorted(
            (entry for entry in monthly.items() if entry[0][0] * 12 + entry[0][1] - 1 >= oldest),
            reverse=True,
        )
        return {
            "total_orders": len(rows),
            "total_revenue": _money(total_revenue),
            "average_order_value": _money(total_revenue / len(rows)) if rows else Decimal("0.00"),
            "pending_orders": pending,
            "completed_orders": completed,
            "monthly": [
                {"year": year, "month": month, "orders": v["orders"], "revenue": _money(v["revenue"])}
                for (year, month), v in months
            ],
        }
