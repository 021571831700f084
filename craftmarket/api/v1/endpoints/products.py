from typing import Optional
import uuid
from math import ceil
from decimal import Decimal

from fastapi import APIRouter, status, Query

from craftmarket.api.deps import DB, CurrentUser, ArtisanUser
from craftmarket.models.product import ProductCategory
from craftmarket.schemas.base import SuccessResponse
from craftmarket.schemas.product import (
    ProductCreate,
    ProductUpdate,
    ProductResponse,
    ProductListResponse,
    ReserveRequest,
    ReserveResponse,
    ReservationData,
)
from craftmarket.services.product_service import ProductService


router = APIRouter(tags=["Products"])


def _build_product_list(products, total: int, page: int, size: int) -> ProductListResponse:
    return ProductListResponse(
        items=[ProductResponse.model_validate(p) for p in products],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.get("", response_model=ProductListResponse)
async def list_products(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    category: Optional[ProductCategory] = Query(None),
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    search: Optional[str] = Query(None, description="Search name and description"),
):
    """Public catalog listing (active products only)."""
    products, total = await ProductService(db).list_products(
        category=category,
        min_price=min_price,
        max_price=max_price,
        search=search,
        page=page,
        size=size,
    )
    return _build_product_list(products, total, page, size)


@router.get("/artisan/my-products", response_model=ProductListResponse)
async def list_my_products(
    db: DB,
    current_user: ArtisanUser,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    include_inactive: bool = Query(False),
):
    """Products listed by the current artisan."""
    products, total = await ProductService(db).list_products(
        seller_id=current_user.id,
        include_inactive=include_inactive,
        page=page,
        size=size,
    )
    return _build_product_list(products, total, page, size)


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: uuid.UUID, db: DB):
    product = await ProductService(db).get_product(product_id)
    return ProductResponse.model_validate(product)


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(
    data: ProductCreate,
    db: DB,
    current_user: ArtisanUser,
):
    product = await ProductService(db).create_product(data, current_user)
    return ProductResponse.model_validate(product)


@router.put("/{product_id}", response_model=ProductResponse)
async def update_product(
    product_id: uuid.UUID,
    data: ProductUpdate,
    db: DB,
    current_user: CurrentUser,
):
    """Update a product (owning artisan or admin)."""
    product = await ProductService(db).update_product(product_id, data, current_user)
    return ProductResponse.model_validate(product)


@router.delete("/{product_id}", response_model=SuccessResponse)
async def delete_product(
    product_id: uuid.UUID,
    db: DB,
    current_user: CurrentUser,
):
    """Discontinue a product. It stays on record for past orders."""
    await ProductService(db).delete_product(product_id, current_user)
    return SuccessResponse(message="Product deleted successfully")


@router.post("/{product_id}/reserve", response_model=ReserveResponse)
async def reserve_product(
    product_id: uuid.UUID,
    data: ReserveRequest,
    db: DB,
    current_user: CurrentUser,
):
    """Hold stock for the caller outside of an order."""
    product = await ProductService(db).reserve(product_id, data.quantity)
    return ReserveResponse(
        message="Inventory reserved successfully",
        data=ReservationData(
            reserved_quantity=data.quantity,
            available_quantity=product.available_quantity,
        ),
    )
