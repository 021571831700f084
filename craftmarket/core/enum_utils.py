"""
Enum utilities for VARCHAR-based status fields.

Statuses are stored as plain strings; pydantic schemas use the Enum classes
for input validation. get_enum_value accepts either form.
"""

from enum import Enum
from typing import Any, Optional


def get_enum_value(value: Any) -> Optional[str]:
    """
    Safely get string value from an enum or string.

    Examples:
        >>> get_enum_value(OrderStatus.PAID)
        'paid'
        >>> get_enum_value("paid")
        'paid'
    """
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    return str(value)
