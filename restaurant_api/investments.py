# Invested items: admin expense tracking, grouped into nested categories.
from __future__ import annotations
import logging
from collections import Counter
from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from .database import create_document, find_by_ids, get_documents, id_filter, to_client, utcnow
from .errors import NotFoundError, ValidationError
from .schemas import (
    CategoryCreate,
    CategoryOut,
    CategoryUpdate,
    InvestedCategory,
    InvestedCategoryRef,
    InvestedItem,
    InvestedItemCreate,
    InvestedItemOut,
    InvestedItemUpdate,
)

log = logging.getLogger(__name__)

CATEGORIES = "invested_category"
ITEMS = "invested_item"


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _clean_description(value: Optional[str]) -> Optional[str]:
    return (value or "").strip() or None


async def _find_category(db: AsyncIOMotorDatabase, category_id: str, message: str = "Category not found") -> dict[str, Any]:
    doc = await db[CATEGORIES].find_one(id_filter(category_id))
    if not doc:
        raise NotFoundError(message)
    return to_client(doc)


async def _find_item(db: AsyncIOMotorDatabase, item_id: str) -> dict[str, Any]:
    doc = await db[ITEMS].find_one(id_filter(item_id))
    if not doc:
        raise NotFoundError("Item not found")
    return to_client(doc)


async def _ensure_not_descendant(db: AsyncIOMotorDatabase, category_id: str, parent: dict[str, Any]) -> None:
    """Walk up from the new parent; meeting ``category_id`` would close a cycle."""
    seen = {parent["id"]}
    ancestor_id = parent.get("parent_category_id")
    while ancestor_id and ancestor_id not in seen:
        if ancestor_id == category_id:
            raise ValidationError("Category cannot be nested under its own subcategory")
        seen.add(ancestor_id)
        doc = await db[CATEGORIES].find_one(id_filter(ancestor_id))
        ancestor_id = doc.get("parent_category_id") if doc else None


async def _category_out(db: AsyncIOMotorDatabase, doc: dict[str, Any]) -> CategoryOut:
    subs = await get_documents(db, CATEGORIES, {"parent_category_id": doc["id"]}, limit=0, sort=[("name", 1)])
    count = await db[ITEMS].count_documents({"category_id": doc["id"]})
    return CategoryOut(**doc, item_count=count, sub_categories=[CategoryOut(**s) for s in subs])


async def list_categories(db: AsyncIOMotorDatabase) -> list[CategoryOut]:
    """Top-level categories by name, each with its subcategory tree and item count."""
    docs = await get_documents(db, CATEGORIES, limit=0, sort=[("name", 1)])
    counts: Counter = Counter()
    async for item in db[ITEMS].find({}, {"category_id": 1}):
        counts[item.get("category_id")] += 1

    children: dict[str, list[dict[str, Any]]] = {}
    for doc in docs:
        if doc.get("parent_category_id"):
            children.setdefault(doc["parent_category_id"], []).append(doc)

    def build(doc: dict[str, Any]) -> CategoryOut:
        return CategoryOut(
            **doc,
            item_count=counts[doc["id"]],
            sub_categories=[build(c) for c in children.get(doc["id"], [])],
        )

    return [build(d) for d in docs if not d.get("parent_category_id")]


async def create_category(db: AsyncIOMotorDatabase, payload: CategoryCreate) -> CategoryOut:
    if _blank(payload.name):
        raise ValidationError("Category name is required")
    parent_id = None
    if payload.parent_category_id:
        parent = await _find_category(db, payload.parent_category_id, "Parent category not found")
        parent_id = parent["id"]

    category = InvestedCategory(
        name=payload.name.strip(),
        description=_clean_description(payload.description),
        parent_category_id=parent_id,
    )
    doc = await create_document(db, CATEGORIES, category.model_dump())
    log.info("invested category %s created: %s", doc["id"], doc["name"])
    return await _category_out(db, doc)


async def update_category(db: AsyncIOMotorDatabase, category_id: str, payload: CategoryUpdate) -> CategoryOut:
    fields = payload.model_fields_set
    if "name" in fields and _blank(payload.name):
        raise ValidationError("Category name is required")
    existing = await _find_category(db, category_id)

    updates: dict[str, Any] = {}
    if "name" in fields:
        updates["name"] = payload.name.strip()
    if "description" in fields:
        updates["description"] = _clean_description(payload.description)
    if "parent_category_id" in fields:
        parent_id = payload.parent_category_id or None
        if parent_id:
            if parent_id in (category_id, existing["id"]):
                raise ValidationError("Category cannot be its own parent")
            parent = await _find_category(db, parent_id, "Parent category not found")
            await _ensure_not_descendant(db, existing["id"], parent)
            parent_id = parent["id"]
        updates["parent_category_id"] = parent_id
    if not updates:
        raise ValidationError("No fields to update")

    updates["updated_at"] = utcnow()
    await db[CATEGORIES].update_one(id_filter(existing["id"]), {"$set": updates})
    return await _category_out(db, await _find_category(db, existing["id"]))


async def delete_category(db: AsyncIOMotorDatabase, category_id: str) -> None:
    existing = await _find_category(db, category_id)
    if await db[ITEMS].count_documents({"category_id": existing["id"]}) > 0:
        raise ValidationError("Cannot delete category with items. Please delete items first.")
    if await db[CATEGORIES].count_documents({"parent_category_id": existing["id"]}) > 0:
        raise ValidationError("Cannot delete category with subcategories. Please delete subcategories first.")
    await db[CATEGORIES].delete_one(id_filter(existing["id"]))
    log.info("invested category %s deleted", existing["id"])


async def expand_items(db: AsyncIOMotorDatabase, docs: list[dict[str, Any]]) -> list[InvestedItemOut]:
    """Attach each item's category and that category's parent."""
    categories = await find_by_ids(db, CATEGORIES, [d["category_id"] for d in docs])
    parents = await find_by_ids(
        db, CATEGORIES, [c["parent_category_id"] for c in categories.values() if c.get("parent_category_id")]
    )
    out = []
    for doc in docs:
        ref = None
        category = categories.get(doc["category_id"])
        if category:
            parent = parents.get(category.get("parent_category_id") or "")
            ref = InvestedCategoryRef(
                **category,
                parent_category=InvestedCategoryRef(**parent) if parent else None,
            )
        out.append(InvestedItemOut(**doc, category=ref))
    return out


def _validate_item(fields: set[str], name: Optional[str], category_id: Optional[str]) -> None:
    errors = []
    if "name" in fields and _blank(name):
        errors.append("Item name is required")
    if "category_id" in fields and not category_id:
        errors.append("Category is required")
    if errors:
        raise ValidationError(", ".join(errors))


async def list_items(db: AsyncIOMotorDatabase, category_id: Optional[str] = None) -> list[InvestedItemOut]:
    query = {"category_id": category_id} if category_id else {}
    docs = await get_documents(db, ITEMS, query, limit=0, sort=[("created_at", -1), ("_id", -1)])
    return await expand_items(db, docs)


async def create_item(db: AsyncIOMotorDatabase, payload: InvestedItemCreate) -> InvestedItemOut:
    _validate_item({"name", "category_id"}, payload.name, payload.category_id)
    category = await _find_category(db, payload.category_id)
    item = InvestedItem(
        name=payload.name.strip(),
        category_id=category["id"],
        custom_fields=payload.custom_fields or None,
    )
    doc = await create_document(db, ITEMS, item.model_dump())
    log.info("invested item %s created in category %s", doc["id"], category["id"])
    return (await expand_items(db, [doc]))[0]


async def update_item(db: AsyncIOMotorDatabase, item_id: str, payload: InvestedItemUpdate) -> InvestedItemOut:
    existing = await _find_item(db, item_id)
    fields = payload.model_fields_set
    _validate_item(fields, payload.name, payload.category_id)

    updates: dict[str, Any] = {}
    if "name" in fields:
        updates["name"] = payload.name.strip()
    if "category_id" in fields:
        updates["category_id"] = (await _find_category(db, payload.category_id))["id"]
    if "custom_fields" in fields:
        updates["custom_fields"] = payload.custom_fields
    if not updates:
        raise ValidationError("No fields to update")

    updates["updated_at"] = utcnow()
    await db[ITEMS].update_one(id_filter(existing["id"]), {"$set": updates})
    return (await expand_items(db, [await _find_item(db, existing["id"])]))[0]


async def delete_item(db: AsyncIOMotorDatabase, item_id: str) -> None:
    existing = await _find_item(db, item_id)
    await db[ITEMS].delete_one(id_filter(existing["id"]))
    log.info("invested item %s deleted", existing["id"])
