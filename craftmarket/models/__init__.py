# Import every model so Base.metadata knows all tables
from craftmarket.models.user import User, CustomerProfile, ArtisanProfile, UserRole
from craftmarket.models.product import Product, ProductStatus, ProductCategory
from craftmarket.models.order import (
    Order, OrderItem, OrderTimelineEntry,
    OrderStatus, OrderItemStatus, PaymentStatus, PaymentMethod, ShippingMethod,
)
from craftmarket.models.order_sequence import OrderSequence
