"""
Base schema classes.

RULE: response schemas that read from ORM models inherit from
BaseResponseSchema; request bodies inherit from BaseCreateSchema or
BaseUpdateSchema.
"""
from typing import Generic, List, TypeVar

from pydantic import BaseModel, ConfigDict


T = TypeVar("T")


class BaseResponseSchema(BaseModel):
    """
    Base class for response schemas built from ORM objects.

    UUIDs, datetimes and Decimals serialize natively in pydantic v2.
    """
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class BaseCreateSchema(BaseModel):
    """Base class for create/input schemas. Unknown fields are ignored."""
    model_config = ConfigDict(extra='ignore')


class BaseUpdateSchema(BaseModel):
    """Base class for partial updates; every field optional."""
    model_config = ConfigDict(extra='ignore')


class PaginatedResponse(BaseModel, Generic[T]):
    """Page of results."""
    items: List[T]
    total: int
    page: int
    size: int
    pages: int


class SuccessResponse(BaseModel):
    success: bool = True
    message: str
