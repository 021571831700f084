from fastapi import APIRouter

from craftmarket.api.v1.endpoints import orders, products, users


api_router = APIRouter(prefix="/api/v1")

api_router.include_router(orders.router, prefix="/orders")
api_router.include_router(products.router, prefix="/products")
api_router.include_router(users.router, prefix="/users")
