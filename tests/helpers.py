"""Request builders shared by the test modules."""
from craftmarket.core.security import create_access_token
from craftmarket.models.user import User
from craftmarket.schemas.order import OrderCreate


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


ADDRESS = {
    "full_name": "Nimali Perera",
    "address_line1": "12 Temple Road",
    "city": "Kandy",
    "postal_code": "20000",
}


def order_payload(*lines, shipping: str = "standard", **extra) -> dict:
    """JSON body for POST /orders; lines are (product, quantity[, customization])."""
    items = []
    for line in lines:
        item = {"product_id": str(line[0].id), "quantity": line[1]}
        if len(line) > 2:
            item["customization"] = line[2]
        items.append(item)
    return {
        "items": items,
        "shipping_address": ADDRESS,
        "payment": {"method": "card"},
        "shipping": {"method": shipping},
        **extra,
    }


def order_data(*lines, **kwargs) -> OrderCreate:
    return OrderCreate.model_validate(order_payload(*lines, **kwargs))
