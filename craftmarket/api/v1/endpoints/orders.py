from typing import Optional
import uuid
from math import ceil

from fastapi import APIRouter, status, Query

from craftmarket.api.deps import DB, CurrentUser, CustomerUser, ArtisanUser
from craftmarket.models.order import OrderStatus
from craftmarket.schemas.order import (
    OrderCreate,
    OrderStatusUpdate,
    OrderCancel,
    PaymentStatusUpdate,
    OrderResponse,
    OrderBrief,
    OrderListResponse,
    OrderStatistics,
)
from craftmarket.services.order_service import OrderService


router = APIRouter(tags=["Orders"])


def _build_order_list(orders, total: int, page: int, size: int) -> OrderListResponse:
    return OrderListResponse(
        items=[OrderBrief.model_validate(o) for o in orders],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_order(
    data: OrderCreate,
    db: DB,
    current_user: CustomerUser,
):
    """
    Place an order.

    Stock for every line is reserved in the same transaction; any failure
    leaves no reservation behind.
    """
    order = await OrderService(db).create_order(data, current_user)
    return OrderResponse.model_validate(order)


@router.get("/my-orders", response_model=OrderListResponse)
async def list_my_orders(
    db: DB,
    current_user: CustomerUser,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = Query(None),
):
    """Orders placed by the current customer."""
    orders, total = await OrderService(db).list_buyer_orders(current_user.id, status, page, size)
    return _build_order_list(orders, total, page, size)


@router.get("/artisan/my-orders", response_model=OrderListResponse)
async def list_artisan_orders(
    db: DB,
    current_user: ArtisanUser,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = Query(None),
):
    """Orders containing at least one item sold by the current artisan."""
    orders, total = await OrderService(db).list_seller_orders(current_user.id, status, page, size)
    return _build_order_list(orders, total, page, size)


@router.get("/statistics", response_model=OrderStatistics)
async def get_order_statistics(
    db: DB,
    current_user: CurrentUser,
):
    stats = await OrderService(db).get_order_statistics(current_user)
    return OrderStatistics(**stats)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    """Get order details by ID."""
    order = await OrderService(db).get_order(order_id, current_user)
    return OrderResponse.model_validate(order)


@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: uuid.UUID,
    data: OrderStatusUpdate,
    db: DB,
    current_user: CurrentUser,
):
    """
    Update the order status, or one item's status when `item_id` is given.
    """
    service = OrderService(db)

    if data.item_id:
        order = await service.update_item_status(
            order_id, data.item_id, data.status, current_user, note=data.note,
        )
    else:
        order = await service.update_order_status(
            order_id,
            data.status,
            current_user,
            note=data.note,
            tracking_number=data.tracking_number,
            carrier=data.carrier,
        )

    return OrderResponse.model_validate(order)


@router.put("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: uuid.UUID,
    data: OrderCancel,
    db: DB,
    current_user: CurrentUser,
):
    """Cancel an order and release its reserved stock."""
    order = await OrderService(db).cancel_order(order_id, current_user, reason=data.reason)
    return OrderResponse.model_validate(order)


@router.put("/{order_id}/payment", response_model=OrderResponse)
async def update_payment_status(
    order_id: uuid.UUID,
    data: PaymentStatusUpdate,
    db: DB,
    current_user: CurrentUser,
):
    order = await OrderService(db).update_payment_status(
        order_id,
        data.payment_status,
        current_user,
        transaction_id=data.transaction_id,
        payment_details=data.payment_details,
    )
    return OrderResponse.model_validate(order)
