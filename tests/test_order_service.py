"""Tests for the order lifecycle: creation, status changes, cancellation, payment."""
import re
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError

from craftmarket.core.exceptions import (
    AccessDeniedError,
    CannotCancelOrderError,
    InsufficientStockError,
    InvalidCustomizationError,
    InvalidDiscountError,
    InvalidStatusTransitionError,
    OrderItemNotFoundError,
    ProductNotFoundError,
    ReservationFailedError,
)
from craftmarket.models.order import (
    Order, OrderTimelineEntry, OrderStatus, OrderItemStatus, PaymentStatus, PAYMENT_FAILED_EVENT,
)
from craftmarket.models.product import Product
from craftmarket.models.user import CustomerProfile, UserRole
from craftmarket.services.order_service import OrderService
from tests.helpers import order_data


ENGRAVING = [{"name": "Engraving", "options": ["Name", "Date"], "additional_cost": 500}]


async def _order_count(db) -> int:
    return (await db.execute(select(func.count(Order.id)))).scalar_one()


class TestCreateOrder:
    async def test_prices_two_line_order(self, db, customer, artisan, make_product):
        mask = await make_product(artisan, base_price="100.00", quantity=10)
        vase = await make_product(artisan, name="Clay Vase", base_price="250.00", quantity=5)

        order = await OrderService(db).create_order(order_data((mask, 2), (vase, 1)), customer)

        assert order.subtotal == Decimal("450.00")
        assert order.shipping_cost == Decimal("200.00")
        assert order.tax_amount == Decimal("0.00")
        assert order.total_amount == Decimal("650.00")
        assert sum(item.total_price for item in order.items) == order.subtotal
        assert order.total_amount == (
            order.subtotal + order.shipping_cost + order.tax_amount - order.discount_amount
        )
        assert order.status == OrderStatus.PENDING_PAYMENT.value
        assert order.payment_status == PaymentStatus.PENDING.value
        assert [item.seller_id for item in order.items] == [artisan.id, artisan.id]

    async def test_reserves_stock_for_every_line(self, db, customer, artisan, make_product):
        mask = await make_product(artisan, quantity=10)
        vase = await make_product(artisan, quantity=5)

        await OrderService(db).create_order(order_data((mask, 2), (vase, 1)), customer)

        await db.refresh(mask)
        await db.refresh(vase)
        assert mask.reserved_quantity == 2
        assert vase.reserved_quantity == 1
        assert mask.quantity == 10

    async def test_uses_discounted_price_snapshot(self, db, customer, artisan, make_product):
        mask = await make_product(artisan, base_price="300.00", discounted_price=Decimal("240.00"))

        order = await OrderService(db).create_order(order_data((mask, 1)), customer)

        assert order.items[0].unit_price == Decimal("240.00")
        assert order.items[0].product_name == mask.name

    async def test_customization_surcharge_per_unit(self, db, customer, artisan, make_product):
        box = await make_product(
            artisan, base_price="1000.00", is_customizable=True, customization_options=ENGRAVING,
        )
        customization = {
            "is_customized": True,
            "custom_options": [{"name": "Engraving", "selected_option": "Name"}],
            "custom_instructions": "Engrave 'Amma'",
        }

        order = await OrderService(db).create_order(order_data((box, 2, customization)), customer)

        item = order.items[0]
        assert item.customization_cost == Decimal("1000.00")
        assert item.total_price == Decimal("3000.00")
        assert item.is_customized
        assert item.customization["custom_options"][0]["additional_cost"] == "500.00"

    async def test_unknown_customization_rejected(self, db, customer, artisan, make_product):
        box = await make_product(artisan, is_customizable=True, customization_options=ENGRAVING)
        customization = {"is_customized": True, "custom_options": [{"name": "Gilding"}]}

        with pytest.raises(InvalidCustomizationError):
            await OrderService(db).create_order(order_data((box, 1, customization)), customer)

        await db.refresh(box)
        assert box.reserved_quantity == 0

    async def test_discount_and_shipping_method(self, db, customer, artisan, make_product):
        mask = await make_product(artisan, base_price="1000.00")
        data = order_data(
            (mask, 1),
            shipping="express",
            discounts=[{"type": "coupon", "code": "VESAK10", "amount": "100.00"}],
        )

        order = await OrderService(db).create_order(data, customer)

        assert order.shipping_cost == Decimal("500.00")
        assert order.discount_amount == Decimal("100.00")
        assert order.total_amount == Decimal("1400.00")
        assert order.discounts[0]["code"] == "VESAK10"

    async def test_discount_larger_than_order_rejected(self, db, customer, artisan, make_product):
        mask = await make_product(artisan, base_price="100.00")
        data = order_data(
            (mask, 1), shipping="pickup",
            discounts=[{"type": "coupon", "amount": "150.00"}],
        )

        with pytest.raises(InvalidDiscountError):
            await OrderService(db).create_order(data, customer)

        await db.refresh(mask)
        assert mask.reserved_quantity == 0
        assert await _order_count(db) == 0

    async def test_billing_defaults_to_shipping(self, db, customer, artisan, make_product):
        mask = await make_product(artisan)

        order = await OrderService(db).create_order(order_data((mask, 1)), customer)

        assert order.billing_address["same_as_shipping"] is True
        assert order.billing_address["city"] == order.shipping_address["city"]

    async def test_records_initial_timeline_entry(self, db, customer, artisan, make_product):
        mask = await make_product(artisan)

        order = await OrderService(db).create_order(order_data((mask, 1)), customer)

        assert len(order.timeline) == 1
        entry = order.timeline[0]
        assert entry.status == OrderStatus.PENDING_PAYMENT.value
        assert entry.actor_id == customer.id
        assert entry.actor_role == "CUSTOMER"
        assert entry.note == "Order placed"

    async def test_order_numbers_follow_daily_sequence(self, db, customer, artisan, make_product):
        mask = await make_product(artisan, quantity=10)
        service = OrderService(db)

        first = await service.create_order(order_data((mask, 1)), customer)
        second = await service.create_order(order_data((mask, 1)), customer)

        assert re.fullmatch(r"AC\d{8}0001", first.order_number)
        assert second.order_number == first.order_number[:-4] + "0002"

    async def test_credits_loyalty_points(self, db, customer, artisan, make_product):
        mask = await make_product(artisan, base_price="1000.00")

        await OrderService(db).create_order(order_data((mask, 2)), customer)

        profile = await db.get(CustomerProfile, customer.id)
        await db.refresh(profile)
        assert profile.loyalty_points == 22
        assert profile.total_orders == 1

    async def test_failure_at_later_line_rolls_back_earlier_reservations(
        self, db, customer, artisan, make_product
    ):
        mask = await make_product(artisan, quantity=10)
        vase = await make_product(artisan, quantity=1)

        with pytest.raises(InsufficientStockError) as exc_info:
            await OrderService(db).create_order(order_data((mask, 4), (vase, 2)), customer)

        assert exc_info.value.details["available_quantity"] == 1
        assert exc_info.value.details["requested_quantity"] == 2
        await db.refresh(mask)
        await db.refresh(vase)
        assert mask.reserved_quantity == 0
        assert vase.reserved_quantity == 0
        assert await _order_count(db) == 0

    async def test_missing_product_rolls_back(self, db, customer, artisan, make_product):
        mask = await make_product(artisan, quantity=10)
        ghost = await make_product(artisan, is_active=False)
        ghost_id = ghost.id

        with pytest.raises(ProductNotFoundError) as exc_info:
            await OrderService(db).create_order(order_data((mask, 2), (ghost, 1)), customer)

        assert exc_info.value.details["product_id"] == str(ghost_id)
        await db.refresh(mask)
        assert mask.reserved_quantity == 0

    async def test_reservation_lost_to_concurrent_checkout(
        self, db, customer, artisan, make_product, monkeypatch
    ):
        mask = await make_product(artisan, quantity=10)
        vase = await make_product(artisan, quantity=5)
        vase_id = vase.id
        service = OrderService(db)
        reserve = service.stock.reserve_inventory

        async def reserve_after_competitor(product, quantity):
            if product.id == vase_id:
                # Another checkout takes the remaining vases after the availability check
                await db.execute(
                    update(Product)
                    .where(Product.id == vase_id)
                    .values(reserved_quantity=Product.quantity)
                )
            return await reserve(product, quantity)

        monkeypatch.setattr(service.stock, "reserve_inventory", reserve_after_competitor)

        with pytest.raises(ReservationFailedError) as exc_info:
            await service.create_order(order_data((mask, 2), (vase, 1)), customer)

        assert exc_info.value.code == "INVENTORY_RESERVATION_FAILED"
        assert exc_info.value.details["product_id"] == str(vase_id)
        await db.refresh(mask)
        assert mask.reserved_quantity == 0
        assert await _order_count(db) == 0

    async def test_only_customers_place_orders(self, db, artisan, make_product):
        mask = await make_product(artisan)

        with pytest.raises(AccessDeniedError):
            await OrderService(db).create_order(order_data((mask, 1)), artisan)


class TestCancelOrder:
    async def test_cancel_restores_reservations(self, db, customer, artisan, make_product):
        mask = await make_product(artisan, quantity=10, reserved_quantity=1)
        vase = await make_product(artisan, quantity=5)
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 3), (vase, 2)), customer)

        cancelled = await service.cancel_order(order.id, customer, reason="Changed my mind")

        await db.refresh(mask)
        await db.refresh(vase)
        assert mask.reserved_quantity == 1
        assert vase.reserved_quantity == 0
        assert cancelled.status == OrderStatus.CANCELLED.value
        assert cancelled.is_cancelled
        assert cancelled.cancelled_by == customer.id
        assert cancelled.cancelled_by_role == "CUSTOMER"
        assert cancelled.cancellation_reason == "Changed my mind"
        assert cancelled.refund_status == "pending"
        assert all(item.status == OrderItemStatus.CANCELLED.value for item in cancelled.items)
        assert cancelled.timeline[-1].status == OrderStatus.CANCELLED.value

    async def test_shipped_order_cannot_be_cancelled(self, db, customer, admin, artisan, make_product):
        mask = await make_product(artisan)
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 1)), customer)
        await service.update_order_status(order.id, OrderStatus.SHIPPED.value, admin)

        with pytest.raises(CannotCancelOrderError) as exc_info:
            await service.cancel_order(order.id, customer)

        assert exc_info.value.code == "CANNOT_CANCEL_ORDER"
        assert exc_info.value.details["current_status"] == "shipped"

    async def test_cancelling_paid_order_keeps_sale(self, db, customer, make_user, artisan, make_product):
        other_buyer = await make_user(UserRole.CUSTOMER)
        mask = await make_product(artisan, quantity=10)
        service = OrderService(db)
        await service.create_order(order_data((mask, 2)), other_buyer)
        order = await service.create_order(order_data((mask, 3)), customer)
        await service.update_payment_status(order.id, "completed", customer)

        cancelled = await service.cancel_order(order.id, customer, reason="Gift no longer needed")

        await db.refresh(mask)
        assert (mask.quantity, mask.reserved_quantity, mask.total_sold) == (7, 2, 3)
        assert cancelled.status == OrderStatus.CANCELLED.value
        assert cancelled.payment_status == PaymentStatus.COMPLETED.value
        assert cancelled.refund_status == "pending"

    async def test_refund_recorded_after_cancelling_paid_order(
        self, db, customer, admin, artisan, make_product
    ):
        mask = await make_product(artisan, quantity=10)
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 3)), customer)
        await service.update_payment_status(order.id, "completed", customer)
        await service.cancel_order(order.id, customer)

        order = await service.update_payment_status(order.id, "refunded", admin)

        await db.refresh(mask)
        assert mask.quantity == 7
        assert order.status == OrderStatus.CANCELLED.value
        assert order.payment_status == PaymentStatus.REFUNDED.value
        assert order.refund_status == "completed"
        assert order.timeline[-1].note == "Payment refunded"
        assert order.timeline[-1].actor_role == "ADMIN"

    async def test_other_customer_cannot_cancel(self, db, customer, make_user, artisan, make_product):
        stranger = await make_user(UserRole.CUSTOMER)
        mask = await make_product(artisan)
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 1)), customer)

        with pytest.raises(AccessDeniedError):
            await service.cancel_order(order.id, stranger)


class TestItemStatus:
    async def test_all_seller_items_ready_promotes_order(self, db, customer, make_user, make_product):
        potter = await make_user(UserRole.ARTISAN)
        carver = await make_user(UserRole.ARTISAN)
        vase = await make_product(potter, name="Vase")
        bowl = await make_product(potter, name="Bowl")
        mask = await make_product(carver, name="Mask")
        service = OrderService(db)
        order = await service.create_order(order_data((vase, 1), (bowl, 1), (mask, 1)), customer)
        vase_item, bowl_item, mask_item = order.items

        order = await service.update_item_status(order.id, vase_item.id, "ready", potter)
        assert order.status == OrderStatus.PENDING_PAYMENT.value
        assert len(order.timeline) == 2

        order = await service.update_item_status(order.id, bowl_item.id, "ready", potter)
        assert order.status == OrderStatus.READY.value
        assert order.timeline[-1].status == OrderStatus.READY.value
        assert order.timeline[-1].note == "All items from artisan are ready"
        assert order.timeline[-1].actor_role == "ARTISAN"

    async def test_item_ready_after_shipping_keeps_order_status(
        self, db, customer, admin, artisan, make_product
    ):
        mask = await make_product(artisan)
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 1)), customer)
        await service.update_order_status(order.id, "shipped", admin)

        order = await service.update_item_status(order.id, order.items[0].id, "ready", artisan)

        assert order.status == OrderStatus.SHIPPED.value
        assert order.items[0].status == OrderItemStatus.READY.value
        assert order.timeline[-1].status == OrderStatus.SHIPPED.value
        with pytest.raises(CannotCancelOrderError):
            await service.cancel_order(order.id, customer)

    async def test_admin_promotion_is_attributed_to_admin(self, db, customer, admin, artisan, make_product):
        mask = await make_product(artisan)
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 1)), customer)

        order = await service.update_item_status(order.id, order.items[0].id, "ready", admin)

        assert order.status == OrderStatus.READY.value
        assert order.timeline[-1].actor_role == "ADMIN"
        assert order.timeline[-1].note.endswith("marked ready by admin")
        assert str(artisan.id) in order.timeline[-1].note

    async def test_non_ready_item_change_only_appends_timeline(self, db, customer, artisan, make_product):
        mask = await make_product(artisan)
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 1)), customer)

        order = await service.update_item_status(order.id, order.items[0].id, "crafting", artisan, note="Carving")

        assert order.items[0].status == OrderItemStatus.CRAFTING.value
        assert order.status == OrderStatus.PENDING_PAYMENT.value
        assert order.timeline[-1].note == "Carving"

    async def test_artisan_cannot_touch_other_sellers_items(self, db, customer, make_user, make_product):
        owner = await make_user(UserRole.ARTISAN)
        other = await make_user(UserRole.ARTISAN)
        mask = await make_product(owner)
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 1)), customer)

        with pytest.raises(AccessDeniedError) as exc_info:
            await service.update_item_status(order.id, order.items[0].id, "ready", other)
        assert exc_info.value.status_code == 403

    async def test_missing_item(self, db, customer, artisan, make_product):
        mask = await make_product(artisan)
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 1)), customer)

        with pytest.raises(OrderItemNotFoundError):
            await service.update_item_status(order.id, customer.id, "ready", artisan)


class TestOrderStatus:
    async def test_cancelled_status_must_use_cancel(self, db, customer, admin, artisan, make_product):
        mask = await make_product(artisan)
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 1)), customer)

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            await service.update_order_status(order.id, "cancelled", admin)
        assert exc_info.value.code == "USE_CANCEL_ENDPOINT"

    async def test_delivery_stamps_timestamps(self, db, customer, admin, artisan, make_product):
        mask = await make_product(artisan)
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 1)), customer)

        order = await service.update_order_status(
            order.id, "shipped", admin, tracking_number="LK123", carrier="SL Post"
        )
        assert order.shipped_at is not None
        assert order.tracking_number == "LK123"

        order = await service.update_order_status(order.id, "delivered", admin, note="Left at door")
        assert order.delivered_at is not None
        assert [e.status for e in order.timeline] == ["pending_payment", "shipped", "delivered"]
        assert order.timeline[-1].note == "Left at door"

    async def test_commit_failure_rolls_back(self, db, customer, admin, artisan, make_product, monkeypatch):
        mask = await make_product(artisan)
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 1)), customer)
        order_id = order.id

        async def failing_commit():
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(db, "commit", failing_commit)
        with pytest.raises(OperationalError):
            await service.update_order_status(order_id, "shipped", admin)
        monkeypatch.undo()

        status = (await db.execute(select(Order.status).where(Order.id == order_id))).scalar_one()
        entries = (await db.execute(
            select(func.count(OrderTimelineEntry.id)).where(OrderTimelineEntry.order_id == order_id)
        )).scalar_one()
        assert status == OrderStatus.PENDING_PAYMENT.value
        assert entries == 1


class TestPaymentStatus:
    async def test_completed_payment_converts_reservations_to_sales(
        self, db, customer, artisan, make_product
    ):
        mask = await make_product(artisan, quantity=10, base_price="1000.00")
        vase = await make_product(artisan, quantity=4, base_price="500.00")
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 2), (vase, 1)), customer)

        order = await service.update_payment_status(
            order.id, "completed", customer, transaction_id="TXN-1"
        )

        await db.refresh(mask)
        await db.refresh(vase)
        assert (mask.quantity, mask.reserved_quantity, mask.total_sold) == (8, 0, 2)
        assert (vase.quantity, vase.reserved_quantity, vase.total_sold) == (3, 0, 1)
        assert order.status == OrderStatus.PAID.value
        assert order.payment_status == PaymentStatus.COMPLETED.value
        assert order.payment_date is not None
        assert order.transaction_id == "TXN-1"

        profile = await db.get(CustomerProfile, customer.id)
        await db.refresh(profile)
        assert profile.total_spent == Decimal("2700.00")
        assert profile.average_order_value == Decimal("2700.00")

    async def test_completing_twice_rejected(self, db, customer, artisan, make_product):
        mask = await make_product(artisan, quantity=10)
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 2)), customer)
        await service.update_payment_status(order.id, "completed", customer)

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            await service.update_payment_status(order.id, "completed", customer)

        assert exc_info.value.code == "PAYMENT_ALREADY_COMPLETED"
        await db.refresh(mask)
        assert mask.quantity == 8

    async def test_failed_payment_releases_reservations(self, db, customer, artisan, make_product):
        mask = await make_product(artisan, quantity=10)
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 3)), customer)

        order = await service.update_payment_status(order.id, "failed", customer)

        await db.refresh(mask)
        assert mask.reserved_quantity == 0
        assert order.payment_status == PaymentStatus.FAILED.value
        assert order.status == OrderStatus.PENDING_PAYMENT.value
        assert order.timeline[-1].status == PAYMENT_FAILED_EVENT

    async def test_retry_after_failure_reserves_again(self, db, customer, artisan, make_product):
        mask = await make_product(artisan, quantity=10)
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 3)), customer)
        await service.update_payment_status(order.id, "failed", customer)

        order = await service.update_payment_status(order.id, "processing", customer)

        await db.refresh(mask)
        assert mask.reserved_quantity == 3
        assert order.status == OrderStatus.PAYMENT_PROCESSING.value

    async def test_payment_on_cancelled_order_rejected(self, db, customer, artisan, make_product):
        mask = await make_product(artisan)
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 1)), customer)
        await service.cancel_order(order.id, customer)

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            await service.update_payment_status(order.id, "completed", customer)
        assert exc_info.value.code == "ORDER_CANCELLED"

    async def test_admin_refund(self, db, customer, admin, artisan, make_product):
        mask = await make_product(artisan, quantity=10, base_price="1000.00")
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 1)), customer)
        await service.update_payment_status(order.id, "completed", customer)

        order = await service.update_payment_status(order.id, "refunded", admin)

        assert order.status == OrderStatus.REFUNDED.value
        assert order.payment_status == PaymentStatus.REFUNDED.value
        assert order.refund_status == "completed"
        assert order.timeline[-1].status == OrderStatus.REFUNDED.value
        profile = await db.get(CustomerProfile, customer.id)
        await db.refresh(profile)
        assert profile.total_spent == Decimal("0.00")

    async def test_refunded_payment_cannot_be_completed_again(
        self, db, customer, make_user, admin, artisan, make_product
    ):
        other_buyer = await make_user(UserRole.CUSTOMER)
        mask = await make_product(artisan, quantity=10)
        service = OrderService(db)
        refunded = await service.create_order(order_data((mask, 3)), customer)
        await service.create_order(order_data((mask, 2)), other_buyer)
        await service.update_payment_status(refunded.id, "completed", customer)
        await service.update_payment_status(refunded.id, "refunded", admin)

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            await service.update_payment_status(refunded.id, "completed", customer)

        assert exc_info.value.code == "PAYMENT_ALREADY_REFUNDED"
        await db.refresh(mask)
        assert (mask.quantity, mask.reserved_quantity, mask.total_sold) == (7, 2, 3)

    async def test_only_admin_records_refund(self, db, customer, artisan, make_product):
        mask = await make_product(artisan, quantity=10)
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 1)), customer)
        await service.update_payment_status(order.id, "completed", customer)

        with pytest.raises(AccessDeniedError):
            await service.update_payment_status(order.id, "refunded", customer)

    async def test_artisan_cannot_record_payment(self, db, customer, artisan, make_product):
        mask = await make_product(artisan)
        service = OrderService(db)
        order = await service.create_order(order_data((mask, 1)), customer)

        with pytest.raises(AccessDeniedError):
            await service.update_payment_status(order.id, "completed", artisan)


class TestStatistics:
    async def test_scoped_to_actor(self, db, customer, make_user, admin, artisan, make_product):
        other_customer = await make_user(UserRole.CUSTOMER)
        mask = await make_product(artisan, base_price="1000.00", quantity=20)
        service = OrderService(db)
        await service.create_order(order_data((mask, 1)), customer)
        await service.create_order(order_data((mask, 2)), other_customer)

        mine = await service.get_order_statistics(customer)
        everything = await service.get_order_statistics(admin)
        sold = await service.get_order_statistics(artisan)

        assert mine["total_orders"] == 1
        assert mine["total_revenue"] == Decimal("1200.00")
        assert mine["pending_orders"] == 1
        assert everything["total_orders"] == 2
        assert everything["total_revenue"] == Decimal("3400.00")
        assert everything["average_order_value"] == Decimal("1700.00")
        assert sold["total_orders"] == 2
        assert len(everything["monthly"]) == 1
        assert everything["monthly"][0]["orders"] == 2
