from __future__ import annotations
from typing import Any, Optional
from datetime import datetime, timezone

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from .config import get_settings

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


async def get_db() -> AsyncIOMotorDatabase:
    global _client, _db
    if _db is None:
        settings = get_settings()
        _client = AsyncIOMotorClient(settings.DATABASE_URL)
        _db = _client[settings.DATABASE_NAME]
    return _db


def close_db() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
    _client = None
    _db = None


def utcnow() -> datetime:
    """Naive UTC timestamp, the form pymongo hands back by default."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def id_filter(id_str: str) -> dict[str, Any]:
    # Seeded products use readable string ids, everything else ObjectIds
    if ObjectId.is_valid(id_str):
        return {"_id": {"$in": [ObjectId(id_str), id_str]}}
    return {"_id": id_str}


def to_client(doc: dict[str, Any]) -> dict[str, Any]:
    out = {k: v for k, v in doc.items() if k != "_id"}
    out["id"] = str(doc["_id"])
    return out


async def create_document(db: AsyncIOMotorDatabase, collection_name: str, data: dict[str, Any]) -> dict[str, Any]:
    now = utcnow()
    data_with_meta = {**data, "created_at": now, "updated_at": now}
    result = await db[collection_name].insert_one(data_with_meta)
    inserted = await db[collection_name].find_one({"_id": result.inserted_id})
    return to_client(inserted) if inserted else {}


async def get_documents(
    db: AsyncIOMotorDatabase,
    collection_name: str,
    filter_dict: dict[str, Any] | None = None,
    limit: int = 100,
    sort: list[tuple[str, int]] | None = None,
) -> list[dict[str, Any]]:
    cursor = db[collection_name].find(filter_dict or {}, sort=sort, limit=limit)
    docs = []
    async for d in cursor:
        docs.append(to_client(d))
    return docs


def ids_filter(ids: list[str]) -> dict[str, Any]:
    values: list[Any] = []
    for id_str in ids:
        values.append(id_str)
        if ObjectId.is_valid(id_str):
            values.append(ObjectId(id_str))
    return {"_id": {"$in": values}}


async def find_by_ids(db: AsyncIOMotorDatabase, collection_name: str, ids: list[str]) -> dict[str, dict[str, Any]]:
    """Fetch documents keyed by their string id."""
    if not ids:
        return {}
    found = {}
    async for d in db[collection_name].find(ids_filter(sorted(set(ids)))):
        doc = to_client(d)
        found[doc["id"]] = doc
    return found
