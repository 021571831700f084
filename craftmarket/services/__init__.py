# Services module
from craftmarket.services.stock_reservation_service import StockReservationService
from craftmarket.services.order_sequence_service import OrderSequenceService
from craftmarket.services.user_service import UserService
from craftmarket.services.product_service import ProductService
from craftmarket.services.order_service import OrderService

__all__ = [
    "StockReservationService",
    "OrderSequenceService",
    "UserService",
    "ProductService",
    "OrderService",
]
