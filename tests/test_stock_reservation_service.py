"""Tests for guarded reserve / release / sale operations."""
from decimal import Decimal

import pytest

from craftmarket.core.exceptions import InsufficientStockError, InvalidQuantityError
from craftmarket.models.product import ProductStatus
from craftmarket.services.stock_reservation_service import StockReservationService


class TestReserveInventory:
    async def test_reserve_then_reject_when_short(self, db, artisan, make_product):
        product = await make_product(artisan, quantity=10)
        service = StockReservationService(db)

        assert await service.reserve_inventory(product, 4) is True
        assert product.reserved_quantity == 4
        assert product.available_quantity == 6

        assert await service.reserve_inventory(product, 7) is False
        assert product.reserved_quantity == 4
        assert product.available_quantity == 6

    async def test_reserve_all_available(self, db, artisan, make_product):
        product = await make_product(artisan, quantity=3, reserved_quantity=1)
        service = StockReservationService(db)

        assert await service.reserve_inventory(product, 2) is True
        assert product.reserved_quantity == product.quantity
        assert product.is_in_stock(1) is False

    @pytest.mark.parametrize("quantity", [0, -2])
    async def test_non_positive_quantity_rejected(self, db, artisan, make_product, quantity):
        product = await make_product(artisan, quantity=10)

        with pytest.raises(InvalidQuantityError) as exc_info:
            await StockReservationService(db).reserve_inventory(product, quantity)

        assert exc_info.value.code == "INVALID_QUANTITY"
        assert exc_info.value.status_code == 400


class TestReleaseReservedInventory:
    async def test_release_restores_availability(self, db, artisan, make_product):
        product = await make_product(artisan, quantity=10, reserved_quantity=5)

        await StockReservationService(db).release_reserved_inventory(product, 3)

        assert product.reserved_quantity == 2
        assert product.available_quantity == 8

    async def test_repeated_release_never_goes_negative(self, db, artisan, make_product):
        product = await make_product(artisan, quantity=10, reserved_quantity=4)
        service = StockReservationService(db)

        await service.release_reserved_inventory(product, 4)
        await service.release_reserved_inventory(product, 4)

        assert product.reserved_quantity == 0
        assert product.available_quantity == 10


class TestCompleteSale:
    async def test_sale_consumes_reservation(self, db, artisan, make_product):
        product = await make_product(
            artisan, quantity=10, reserved_quantity=3,
            base_price="200.00", discounted_price=Decimal("150.00"),
        )

        await StockReservationService(db).complete_sale(product, 3)

        assert product.quantity == 7
        assert product.reserved_quantity == 0
        assert product.total_sold == 3
        assert product.total_revenue == Decimal("450.00")
        assert product.last_sale_date is not None
        assert product.status == ProductStatus.ACTIVE.value

    async def test_selling_last_units_marks_out_of_stock(self, db, artisan, make_product):
        product = await make_product(artisan, quantity=2, reserved_quantity=2)

        await StockReservationService(db).complete_sale(product, 2)

        assert product.quantity == 0
        assert product.reserved_quantity == 0
        assert product.status == ProductStatus.OUT_OF_STOCK.value

    async def test_sale_without_reservation_floors_reserved_at_zero(self, db, artisan, make_product):
        product = await make_product(artisan, quantity=5, reserved_quantity=1)

        await StockReservationService(db).complete_sale(product, 3)

        assert product.quantity == 2
        assert product.reserved_quantity == 0

    async def test_sale_beyond_stock_on_hand_rejected(self, db, artisan, make_product):
        product = await make_product(artisan, quantity=2)

        with pytest.raises(InsufficientStockError) as exc_info:
            await StockReservationService(db).complete_sale(product, 3)

        assert exc_info.value.details["available_quantity"] == 2
        assert product.quantity == 2
        assert product.total_sold == 0
