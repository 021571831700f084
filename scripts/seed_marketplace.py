"""
Seed script for a local marketplace.
Creates one admin, one customer, two artisans and a small craft catalog,
then prints bearer tokens for each user.

Usage:
    python -m scripts.seed_marketplace
"""

import asyncio
import sys
from pathlib import Path
from decimal import Decimal

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select
from craftmarket.core.security import create_access_token
from craftmarket.database import get_db_session, init_db
from craftmarket.models.product import Product, ProductCategory, ProductStatus
from craftmarket.models.user import User, UserRole, CustomerProfile, ArtisanProfile


# ==================== USERS ====================
USERS = [
    {"email": "admin@craftmarket.lk", "first_name": "Market", "last_name": "Admin", "role": UserRole.ADMIN},
    {"email": "nimali@example.lk", "first_name": "Nimali", "last_name": "Perera", "role": UserRole.CUSTOMER},
    {
        "email": "sunil@ambalangoda.lk", "first_name": "Sunil", "last_name": "Wijesuriya",
        "role": UserRole.ARTISAN, "business_name": "Ambalangoda Masks", "craft_specialty": "masks",
    },
    {
        "email": "kumari@dumbara.lk", "first_name": "Kumari", "last_name": "Herath",
        "role": UserRole.ARTISAN, "business_name": "Dumbara Weaves", "craft_specialty": "textiles",
    },
]


# ==================== PRODUCTS ====================
PRODUCTS = [
    {
        "seller": "sunil@ambalangoda.lk",
        "name": "Naga Raksha Mask",
        "description": "Hand-carved kaduru wood mask, painted with natural pigments",
        "category": ProductCategory.MASKS,
        "base_price": Decimal("8500.00"),
        "quantity": 6,
        "time_to_craft": "2 weeks",
        "is_customizable": True,
        "customization_options": [
            {"name": "Size", "options": ["Small", "Medium", "Large"], "additional_cost": "1500", "is_required": True},
        ],
    },
    {
        "seller": "sunil@ambalangoda.lk",
        "name": "Gurulu Raksha Wall Hanging",
        "category": ProductCategory.MASKS,
        "base_price": Decimal("4200.00"),
        "discounted_price": Decimal("3800.00"),
        "quantity": 10,
        "time_to_craft": "5 days",
    },
    {
        "seller": "kumari@dumbara.lk",
        "name": "Dumbara Table Runner",
        "description": "Handloom runner with traditional Dumbara motifs",
        "category": ProductCategory.TEXTILES,
        "base_price": Decimal("3200.00"),
        "quantity": 15,
        "time_to_craft": "3 days",
        "is_customizable": True,
        "customization_options": [
            {"name": "Colour", "options": ["Red", "Indigo", "Natural"], "additional_cost": "0"},
            {"name": "Monogram", "options": ["Initials"], "additional_cost": "750"},
        ],
    },
    {
        "seller": "kumari@dumbara.lk",
        "name": "Dumbara Wall Mat",
        "category": ProductCategory.TEXTILES,
        "base_price": Decimal("5600.00"),
        "quantity": 0,
        "time_to_craft": "1 week",
    },
]


async def seed_users(session) -> dict:
    """Create users and their role profiles, skipping existing emails."""
    users = {}
    for data in USERS:
        result = await session.execute(select(User).where(User.email == data["email"]))
        user = result.scalar_one_or_none()
        if user:
            print(f"  User exists: {user.email}")
            users[user.email] = user
            continue

        user = User(
            email=data["email"],
            first_name=data["first_name"],
            last_name=data.get("last_name"),
            role=data["role"].value,
        )
        session.add(user)
        await session.flush()

        if data["role"] == UserRole.CUSTOMER:
            session.add(CustomerProfile(user_id=user.id))
        elif data["role"] == UserRole.ARTISAN:
            session.add(ArtisanProfile(
                user_id=user.id,
                business_name=data.get("business_name"),
                craft_specialty=data.get("craft_specialty"),
            ))
        users[user.email] = user
        print(f"  Created {data['role'].value.lower()}: {user.email}")

    await session.flush()
    return users


async def seed_products(session, users: dict) -> None:
    """Create catalog products, skipping names the seller already lists."""
    for data in PRODUCTS:
        data = dict(data)
        seller = users[data.pop("seller")]
        category = data.pop("category")
        result = await session.execute(
            select(Product).where(Product.seller_id == seller.id, Product.name == data["name"])
        )
        if result.scalar_one_or_none():
            print(f"  Product exists: {data['name']}")
            continue

        session.add(Product(
            **data,
            category=category.value,
            seller_id=seller.id,
            status=ProductStatus.ACTIVE.value if data["quantity"] > 0 else ProductStatus.OUT_OF_STOCK.value,
        ))

        profile = await session.get(ArtisanProfile, seller.id)
        if profile is not None:
            profile.product_count += 1
        print(f"  Created product: {data['name']}")


async def main():
    print("Creating tables...")
    await init_db()

    async with get_db_session() as session:
        print("\nSeeding users...")
        users = await seed_users(session)

        print("\nSeeding products...")
        await seed_products(session, users)

    print("\n" + "=" * 60)
    print("Bearer tokens:")
    for user in users.values():
        token = create_access_token(user.id, role=user.role)
        print(f"\n{user.role} {user.email}\n  {token}")


if __name__ == "__main__":
    asyncio.run(main())
