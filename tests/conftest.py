import uuid
from datetime import datetime, timedelta
from typing import Optional

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from restaurant_api.auth import hash_password
from restaurant_api.config import Settings, get_settings
from restaurant_api.database import get_db, utcnow
from restaurant_api.main import app, get_notifier
from restaurant_api.notifications import NotificationError

ADMIN_NUMBER = "5551234567"


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    async def send(self, phone_number, message):
        if self.fail:
            raise NotificationError("provider unavailable")
        self.sent.append((phone_number, message))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings():
    return Settings(_env_file=None, DATABASE_NAME="restaurant_test", WHATSAPP_ADMIN_NUMBER=ADMIN_NUMBER)


@pytest.fixture
def db():
    return AsyncMongoMockClient()["restaurant_test"]


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
async def client(db, settings, notifier):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_notifier] = lambda: notifier
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def make_user(db, role="customer", name="Asha", email=None, phone="2095550100", password="secret123"):
    email = email or f"{uuid.uuid4().hex[:8]}@example.com"
    result = await db["user"].insert_one({
        "name": name,
        "email": email,
        "phone": phone,
        "role": role,
        "email_verified": True,
        "password_hash": hash_password(password),
    })
    user_id = str(result.inserted_id)
    token = uuid.uuid4().hex
    now = utcnow()
    await db["session"].insert_one({
        "token": token,
        "user_id": user_id,
        "created_at": now,
        "expires_at": now + timedelta(days=1),
    })
    return {"id": user_id, "email": email, "name": name, "phone": phone,
            "headers": {"Authorization": f"Bearer {token}"}}


@pytest.fixture
async def admin(db):
    return await make_user(db, role="admin", name="Admin", phone=None)


@pytest.fixture
async def customer(db):
    return await make_user(db, name="Asha", phone="2095550100")


@pytest.fixture
async def other_customer(db):
    return await make_user(db, name="Ravi", phone="2095550199")


@pytest.fixture
async def menu(db):
    products = [
        {"_id": "choco-ladoo", "name": "Choco Ladoo", "category": "sweets", "price": 5.0, "unit": "250gm",
         "is_available": True, "is_hidden": False, "variants": {"250gm": 5.0, "500gm": 9.0},
         "spending": 2.0, "spending_variants": {"500gm": 3.5}},
        {"_id": "samosa", "name": "Samosa", "category": "snacks", "price": 2.5, "unit": "Each",
         "is_available": True, "is_hidden": False},
        {"_id": "mystery", "name": "Mystery Box", "category": "snacks", "price": 4.0, "unit": "Each",
         "is_available": False, "is_hidden": False},
    ]
    await db["product"].insert_many(products)
    return {p["_id"]: p for p in products}


def line(product_id, name, quantity, price, size=None):
    return {
        "id": str(ObjectId()),
        "product_id": product_id,
        "product_name": name,
        "product_unit": None,
        "quantity": quantity,
        "price": price,
        "subtotal": round(price * quantity, 2),
        "selected_size": size,
        "special_instructions": None,
    }


async def insert_order(
    db,
    user_id,
    items,
    status="pending",
    payment_status="payment_pending",
    payment_received_date: Optional[datetime] = None,
    created_at: Optional[datetime] = None,
    admin_notes=None,
):
    created_at = created_at or utcnow()
    doc = {
        "user_id": user_id,
        "items": items,
        "total_amount": round(sum(i["subtotal"] for i in items), 2),
        "status": status,
        "payment_status": payment_status,
        "payment_received_date": payment_received_date,
        "location": None,
        "pickup_date": None,
        "customer_name": None,
        "customer_phone": None,
        "customer_email": None,
        "admin_timeline": None,
        "admin_notes": admin_notes,
        "whatsapp_sent": False,
        "revision": 0,
        "created_at": created_at,
        "updated_at": created_at,
    }
    result = await db["order"].insert_one(doc)
    return str(result.inserted_id)
