# Order lifecycle. Items are embedded in their order; every write is conditional on its revision.
from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from .auth import Session
from .config import Settings
from .database import create_document, find_by_ids, id_filter, to_client, utcnow
from .errors import ConflictError, Forbidden, NotFoundError, Unauthorized, ValidationError
from .notifications import CustomerContact, NotificationError, WhatsAppNotifier, format_order_message
from .pricing import line_subtotal, order_total, pricing_for, resolve_unit_price
from .reports import parse_datetime
from .schemas import (
    ORDER_STATUSES,
    PAYMENT_STATUSES,
    CreateOrderRequest,
    CustomerInfo,
    ItemDeleteOut,
    ItemPrice,
    Order,
    OrderItem,
    OrderItemOut,
    OrderOut,
    OrderUpdate,
    ProductOut,
    UserSummary,
)

log = logging.getLogger(__name__)

EDITABLE_STATUSES = ("pending", "processing")


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Lenient ISO-8601 parse; None for missing or unparseable input."""
    if not value:
        return None
    try:
        return parse_datetime(value)
    except ValidationError:
        return None


def reprice_items(items: list[dict[str, Any]], prices: list[ItemPrice]) -> list[dict[str, Any]]:
    new_prices = {}
    for entry in prices:
        if entry.price < 0:
            raise ValidationError("Item price must not be negative")
        new_prices[entry.item_id] = entry.price

    known = {i["id"] for i in items}
    for item_id in new_prices.keys() - known:
        log.debug("ignoring price for unknown item %s", item_id)

    repriced = []
    for item in items:
        item = dict(item)
        if item["id"] in new_prices:
            item["price"] = new_prices[item["id"]]
            item["subtotal"] = line_subtotal(item["price"], item["quantity"])
        repriced.append(item)
    return repriced


def deletion_note(item_name: str, size: Optional[str], reason: Optional[str], when: datetime) -> str:
    stamp = when.strftime("%m/%d/%Y, %H:%M")
    size_text = f" ({size})" if size else ""
    reason_text = f" - Reason: {reason}" if reason else ""
    return f"[{stamp}] DELETED: {item_name}{size_text}{reason_text}"


def append_note(existing: Optional[str], note: str) -> str:
    return f"{existing}\n{note}" if existing else note


def customer_contact(order: dict[str, Any], user: dict[str, Any]) -> CustomerContact:
    return CustomerContact(
        name=order.get("customer_name") or user.get("name") or "Customer",
        phone=order.get("customer_phone") or user.get("phone") or "N/A",
        email=order.get("customer_email") or user.get("email") or "N/A",
    )


class OrderService:
    def __init__(self, db: AsyncIOMotorDatabase, settings: Settings, notifier: WhatsAppNotifier):
        self.db = db
        self.settings = settings
        self.notifier = notifier

    @property
    def orders(self):
        return self.db["order"]

    async def _get(self, order_id: str) -> dict[str, Any]:
        doc = await self.orders.find_one(id_filter(order_id))
        if not doc:
            raise NotFoundError("Order not found")
        return doc

    @staticmethod
    def _guard(doc: dict[str, Any], **conditions: Any) -> dict[str, Any]:
        revision = doc.get("revision")
        guard = {"_id": doc["_id"], "revision": revision if revision is not None else {"$exists": False}}
        guard.update(conditions)
        return guard

    async def _write(self, guard: dict[str, Any], updates: dict[str, Any]) -> dict[str, Any]:
        doc = await self.orders.find_one_and_update(
            guard,
            {"$set": {**updates, "updated_at": utcnow()}, "$inc": {"revision": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise ConflictError("Order was modified by another request, please retry")
        return doc

    async def expand(self, orders: list[dict[str, Any]]) -> list[OrderOut]:
        """Attach current product details and the owning user's contact fields."""
        product_ids = [i["product_id"] for o in orders for i in o.get("items", [])]
        products = await find_by_ids(self.db, "product", product_ids)
        users = await find_by_ids(self.db, "user", [o["user_id"] for o in orders])

        expanded = []
        for order in orders:
            items = []
            for item in order.get("items", []):
                product = products.get(item["product_id"])
                items.append(OrderItemOut(
                    id=item["id"],
                    product_id=item["product_id"],
                    quantity=item["quantity"],
                    price=item["price"],
                    subtotal=item["subtotal"],
                    selected_size=item.get("selected_size"),
                    special_instructions=item.get("special_instructions"),
                    product=ProductOut(**product) if product else None,
                ))
            user = users.get(order["user_id"])
            data = {k: v for k, v in order.items() if k not in ("items", "user")}
            expanded.append(OrderOut(
                **data,
                items=items,
                user=UserSummary(name=user.get("name"), email=user.get("email"), phone=user.get("phone")) if user else None,
            ))
        return expanded

    async def create(self, session: Session, payload: CreateOrderRequest) -> OrderOut:
        if not payload.items:
            raise ValidationError("Cart is empty")

        items = []
        total = 0.0
        for line in payload.items:
            product = await self.db["product"].find_one(id_filter(line.product_id))
            if not product or not product.get("is_available", True):
                raise ValidationError(f"Product {line.product_id} not available")

            price = resolve_unit_price(pricing_for(product), line.selected_size)
            subtotal = line_subtotal(price, line.quantity)
            total += subtotal
            items.append(OrderItem(
                id=str(ObjectId()),
                product_id=str(product["_id"]),
                product_name=product.get("name", "Item"),
                product_unit=product.get("unit"),
                quantity=line.quantity,
                price=price,
                subtotal=subtotal,
                selected_size=line.selected_size or None,
                special_instructions=line.special_instructions or None,
            ))

        info = payload.customer_info or CustomerInfo()
        order = Order(
            user_id=session.user_id,
            items=items,
            total_amount=round(total, 2),
            location=payload.location or None,
            pickup_date=as_naive_utc(payload.pickup_date),
            customer_name=info.name or session.name or None,
            customer_phone=info.phone or session.phone or None,
            customer_email=info.email or session.email or None,
        )
        doc = await create_document(self.db, "order", order.model_dump())
        log.info("order %s created by %s, %d items, total %.2f", doc["id"], session.user_id, len(items), order.total_amount)
        return (await self.expand([doc]))[0]

    async def list_for(self, session: Session) -> list[OrderOut]:
        query = {} if session.is_admin else {"user_id": session.user_id}
        docs = []
        async for d in self.orders.find(query, sort=[("created_at", -1)]):
            docs.append(to_client(d))
        return await self.expand(docs)

    async def update(self, session: Session, order_id: str, payload: OrderUpdate) -> OrderOut:
        existing = await self._get(order_id)
        fields = payload.model_fields_set

        if not session.is_admin:
            if fields & {"item_prices", "total_amount"}:
                raise Unauthorized("Unauthorized - Only admin can modify prices")
            # customers may only cancel their own pending order
            own_cancel = (
                fields == {"status"}
                and payload.status == "cancelled"
                and existing["user_id"] == session.user_id
                and existing["status"] == "pending"
            )
            if not own_cancel:
                raise Unauthorized()

        updates: dict[str, Any] = {}
        if payload.status is not None:
            if payload.status not in ORDER_STATUSES:
                raise ValidationError("Invalid status")
            updates["status"] = payload.status

        if payload.payment_status is not None:
            if payload.payment_status not in PAYMENT_STATUSES:
                raise ValidationError("Invalid payment status")
            updates["payment_status"] = payload.payment_status
            if payload.payment_status == "payment_completed":
                updates["payment_received_date"] = parse_timestamp(payload.payment_received_date) or utcnow()
            else:
                updates["payment_received_date"] = None

        for name in ("admin_timeline", "admin_notes"):
            if name in fields:
                updates[name] = getattr(payload, name)

        if payload.item_prices is not None:
            items = reprice_items(existing.get("items", []), payload.item_prices)
            updates["items"] = items
            updates["total_amount"] = order_total(items)

        # an explicit total wins over one recomputed from item prices
        if payload.total_amount is not None:
            if payload.total_amount < 0:
                raise ValidationError("Total amount must not be negative")
            updates["total_amount"] = round(payload.total_amount, 2)

        if not updates:
            raise ValidationError("No fields to update")

        if session.is_admin:
            guard = self._guard(existing)
        else:
            guard = self._guard(existing, status="pending", user_id=session.user_id)
        doc = await self._write(guard, updates)
        log.info("order %s updated by %s: %s", order_id, session.user_id, sorted(updates))
        return (await self.expand([to_client(doc)]))[0]

    async def confirm(self, order_id: str) -> tuple[OrderOut, bool]:
        """
        Move a pending order to processing and notify the admin on WhatsApp.

        The status change is committed before the message goes out; a failed
        delivery is logged and reported back, never rolled back.
        """
        existing = await self._get(order_id)
        if existing["status"] != "pending":
            raise ValidationError("Order is not in pending status")

        doc = await self.orders.find_one_and_update(
            {"_id": existing["_id"], "status": "pending"},
            {
                "$set": {"status": "processing", "whatsapp_sent": True, "updated_at": utcnow()},
                "$inc": {"revision": 1},
            },
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise ValidationError("Order is not in pending status")
        order = to_client(doc)
        log.info("order %s confirmed", order_id)

        user = await self.db["user"].find_one(id_filter(order["user_id"])) or {}
        message = format_order_message(order, customer_contact(order, user))
        notified = True
        try:
            await self.notifier.send(self.settings.WHATSAPP_ADMIN_NUMBER, message)
        except NotificationError as e:
            notified = False
            log.warning("order %s confirmed but notification failed: %s", order_id, e)
        return (await self.expand([order]))[0], notified

    async def delete_item(self, session: Session, item_id: str, order_id: str, reason: Optional[str] = None) -> ItemDeleteOut:
        existing = await self._get(order_id)
        if existing["status"] not in EDITABLE_STATUSES:
            raise Forbidden("Can only delete items from pending or processing orders")
        if not session.is_admin and existing["user_id"] != session.user_id:
            raise Forbidden("You do not have permission to delete this item")

        items = existing.get("items", [])
        if len(items) == 1:
            # an order never outlives its last item
            result = await self.orders.delete_one(self._guard(existing))
            if result.deleted_count == 0:
                raise ConflictError("Order was modified by another request, please retry")
            log.info("order %s deleted with its last item by %s", order_id, session.user_id)
            return ItemDeleteOut(message="Last item removed. Order deleted.", order_deleted=True)

        target = next((i for i in items if i["id"] == item_id), None)
        if target is None:
            raise NotFoundError("Order item not found")

        remaining = [i for i in items if i["id"] != item_id]
        new_total = order_total(remaining)
        product = await self.db["product"].find_one(id_filter(target["product_id"])) or {}
        name = product.get("name") or target.get("product_name") or "Unknown Item"
        note = deletion_note(name, target.get("selected_size"), reason, utcnow())

        await self._write(self._guard(existing), {
            "items": remaining,
            "total_amount": new_total,
            "admin_notes": append_note(existing.get("admin_notes"), note),
        })
        log.info("item %s removed from order %s by %s", item_id, order_id, session.user_id)
        return ItemDeleteOut(message="Item deleted successfully", order_deleted=False, new_total=new_total)

    async def delete_all(self) -> int:
        result = await self.orders.delete_many({})
        log.info("deleted all orders (%d)", result.deleted_count)
        return result.deleted_count
