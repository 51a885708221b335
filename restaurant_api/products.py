from __future__ import annotations
import logging
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from .database import create_document, get_documents, id_filter, to_client, utcnow
from .errors import NotFoundError, ValidationError
from .schemas import Product, ProductCreate, ProductUpdate

log = logging.getLogger(__name__)

SEED_PRODUCTS: list[dict] = [
    {"name": "Chekkalu", "category": "snacks", "price": 7, "unit": "250g"},
    {"name": "Karapusa", "category": "snacks", "price": 7, "unit": "250g"},
    {"name": "Ribbon Pakodi", "category": "snacks", "price": 7, "unit": "250g", "variants": {"250g": 7, "500g": 13}},
    {"name": "Palli Pokodi", "category": "snacks", "price": 8, "unit": "250g"},
    {"name": "Boondi Mixture", "category": "snacks", "price": 7, "unit": "250g"},
    {"name": "Boondi Chikki", "category": "sweets", "price": 7, "unit": "250g"},
    {"name": "Gavvalu", "category": "sweets", "price": 7, "unit": "250g"},
    {"name": "Laddu", "category": "sweets", "price": 1, "unit": "Each"},
    {"name": "Sunnundalu", "category": "sweets", "price": 1.5, "unit": "Each"},
    {"name": "Cauliflower Pickle", "category": "pickles", "price": 7, "unit": "250g"},
    {"name": "Chicken Pickle (Boneless)", "category": "pickles", "price": 10, "unit": "250g", "pre_order_only": True},
]

# fields a PATCH may not null out
REQUIRED_FIELDS = {"name", "category", "price", "unit", "is_available", "is_hidden", "pre_order_only"}


def clean_prices(prices: Optional[dict[str, float]], allow_zero: bool = False) -> Optional[dict[str, float]]:
    """Keep positive prices (zero too with allow_zero); None when nothing is left."""
    if not prices:
        return None
    kept = {label: float(p) for label, p in prices.items() if p > 0 or (allow_zero and p == 0)}
    return kept or None


async def list_products(db: AsyncIOMotorDatabase, include_hidden: bool = False) -> list[dict[str, Any]]:
    query: dict[str, Any] = {"is_available": True}
    if not include_hidden:
        query["is_hidden"] = {"$ne": True}
    return await get_documents(db, "product", query, limit=0, sort=[("category", 1), ("name", 1)])


async def create_product(db: AsyncIOMotorDatabase, payload: ProductCreate) -> dict[str, Any]:
    product = Product(
        **payload.model_dump(exclude={"variants", "spending_variants"}),
        variants=clean_prices(payload.variants),
        spending_variants=clean_prices(payload.spending_variants, allow_zero=True),
    )
    doc = await create_document(db, "product", product.model_dump())
    log.info("product %s created: %s", doc["id"], doc["name"])
    return doc


async def update_product(db: AsyncIOMotorDatabase, product_id: str, payload: ProductUpdate) -> dict[str, Any]:
    updates = {name: getattr(payload, name) for name in payload.model_fields_set}
    updates = {k: v for k, v in updates.items() if v is not None or k not in REQUIRED_FIELDS}
    if "variants" in updates:
        updates["variants"] = clean_prices(updates["variants"])
    if "spending_variants" in updates:
        updates["spending_variants"] = clean_prices(updates["spending_variants"], allow_zero=True)
    if updates.get("spending") is not None and updates["spending"] < 0:
        updates["spending"] = None
    if not updates:
        raise ValidationError("No fields to update")

    updates["updated_at"] = utcnow()
    result = await db["product"].update_one(id_filter(product_id), {"$set": updates})
    if result.matched_count == 0:
        raise NotFoundError("Product not found")
    return to_client(await db["product"].find_one(id_filter(product_id)))


async def remove_product(db: AsyncIOMotorDatabase, product_id: str) -> tuple[bool, dict[str, Any]]:
    """
    Delete a product, or hide it when past orders reference it.

    Returns (deleted, product).
    """
    product = await db["product"].find_one(id_filter(product_id))
    if not product:
        raise NotFoundError("Product not found")
    pid = str(product["_id"])

    if await db["order"].count_documents({"items.product_id": pid}) > 0:
        await db["product"].update_one(
            {"_id": product["_id"]},
            {"$set": {"is_hidden": True, "is_available": False, "updated_at": utcnow()}},
        )
        log.info("product %s hidden, referenced by orders", pid)
        return False, to_client(await db["product"].find_one({"_id": product["_id"]}))

    await db["product"].delete_one({"_id": product["_id"]})
    log.info("product %s deleted", pid)
    return True, to_client(product)


async def seed_products(db: AsyncIOMotorDatabase) -> int:
    if await db["product"].count_documents({}) > 0:
        return 0
    for p in SEED_PRODUCTS:
        await create_document(db, "product", Product(**p).model_dump())
    return len(SEED_PRODUCTS)
