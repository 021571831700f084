"""
Domain errors for the order and inventory workflow.

Every error carries a stable machine-readable `code`, the HTTP status it maps
to, and optional `details` merged into the JSON error body.
"""
from typing import Dict, Optional


class MarketplaceError(Exception):
    """Base exception for domain rule violations."""
    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str, details: Optional[Dict] = None, code: Optional[str] = None):
        self.message = message
        self.details = details or {}
        if code:
            self.code = code
        super().__init__(self.message)

    def to_dict(self) -> Dict:
        return {"success": False, "error": self.message, "code": self.code, **self.details}


# ==================== NOT FOUND ====================

class ProductNotFoundError(MarketplaceError):
    status_code = 404
    code = "PRODUCT_NOT_FOUND"


class OrderNotFoundError(MarketplaceError):
    status_code = 404
    code = "ORDER_NOT_FOUND"


class OrderItemNotFoundError(MarketplaceError):
    status_code = 404
    code = "ORDER_ITEM_NOT_FOUND"


class UserNotFoundError(MarketplaceError):
    status_code = 404
    code = "USER_NOT_FOUND"


# ==================== STATE CONFLICT ====================

class InsufficientStockError(MarketplaceError):
    code = "INSUFFICIENT_STOCK"


class ReservationFailedError(MarketplaceError):
    code = "INVENTORY_RESERVATION_FAILED"


class CannotCancelOrderError(MarketplaceError):
    code = "CANNOT_CANCEL_ORDER"


class InvalidStatusTransitionError(MarketplaceError):
    code = "INVALID_STATUS_TRANSITION"


class InvalidQuantityError(MarketplaceError):
    code = "INVALID_QUANTITY"


class InvalidDiscountError(MarketplaceError):
    code = "INVALID_DISCOUNT"


class InvalidCustomizationError(MarketplaceError):
    code = "INVALID_CUSTOMIZATION"


# ==================== AUTHORIZATION ====================

class AccessDeniedError(MarketplaceError):
    status_code = 403
    code = "ACCESS_DENIED"
