# Excel exports for orders and earnings.
from __future__ import annotations
import io
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from .database import find_by_ids, to_client
from .reports import DateBounds

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

ORDER_COLUMNS = [
    ("Order ID", 25),
    ("Date", 20),
    ("Customer Name", 20),
    ("Customer Email", 25),
    ("Customer Phone", 15),
    ("Status", 12),
    ("Payment Status", 15),
    ("Location", 15),
    ("Pickup Date", 15),
    ("Items", 50),
    ("Total Amount", 12),
    ("WhatsApp Sent", 12),
]

EARNINGS_COLUMNS = [
    ("Product Name", 25),
    ("Category", 15),
    ("Total Quantity Sold", 18),
    ("Size Breakdown", 60),
    ("Spending per Unit", 18),
    ("Total Earnings", 15),
    ("Total Spending", 15),
    ("Profit", 15),
    ("Orders", 10),
]

# Larger sizes sort first in the size breakdown
SIZE_RANK = {
    "1kg": 1000,
    "500gm": 500,
    "500g": 500,
    "250gm": 250,
    "250g": 250,
    "full tray": 3,
    "half tray": 2,
    "family pack": 1,
}


def _date_range(bounds: DateBounds) -> dict[str, Any]:
    cond = {}
    if bounds.start is not None:
        cond["$gte"] = bounds.start
    if bounds.end is not None:
        cond["$lte"] = bounds.end
    return cond


def orders_query(bounds: DateBounds, status: Optional[str] = None, payment_status: Optional[str] = None) -> dict[str, Any]:
    query: dict[str, Any] = {}
    if not bounds.unbounded:
        query["payment_received_date"] = _date_range(bounds)
    if status:
        query["status"] = status
    if payment_status:
        query["payment_status"] = payment_status
    return query


def earnings_query(bounds: DateBounds, date_filter_type: str = "payment") -> dict[str, Any]:
    query: dict[str, Any] = {"status": {"$ne": "cancelled"}, "payment_status": "payment_completed"}
    if bounds.unbounded:
        return query
    cond = _date_range(bounds)
    if date_filter_type == "order":
        query["created_at"] = cond
    else:
        # orders paid before payment dates were recorded fall back to creation date
        query["$or"] = [
            {"payment_received_date": cond},
            {"payment_received_date": None, "created_at": cond},
        ]
    return query


async def fetch_orders(db: AsyncIOMotorDatabase, query: dict[str, Any]) -> list[dict[str, Any]]:
    orders = []
    async for d in db["order"].find(query, sort=[("created_at", -1)]):
        orders.append(to_client(d))
    return orders


def build_workbook(title: str, columns: list[tuple[str, int]], rows: Iterable[list[Any]]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = title
    ws.append([name for name, _ in columns])
    for row in rows:
        ws.append(row)
    for idx, (_, width) in enumerate(columns, start=1):
        ws.column_dimensions[get_column_letter(idx)].width = width
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def order_row(order: dict[str, Any], user: dict[str, Any]) -> list[Any]:
    created = order.get("created_at")
    pickup = order.get("pickup_date")
    items = ", ".join(f"{i.get('product_name', 'Item')} ({i['quantity']}x)" for i in order.get("items", []))
    return [
        order["id"],
        created.strftime("%m/%d/%Y, %I:%M:%S %p") if created else "N/A",
        order.get("customer_name") or user.get("name") or "N/A",
        order.get("customer_email") or user.get("email") or "N/A",
        order.get("customer_phone") or user.get("phone") or "N/A",
        order.get("status"),
        "Completed" if order.get("payment_status") == "payment_completed" else "Pending",
        order.get("location") or "N/A",
        pickup.strftime("%m/%d/%Y") if pickup else "N/A",
        items,
        order.get("total_amount", 0),
        "Yes" if order.get("whatsapp_sent") else "No",
    ]


async def export_orders(
    db: AsyncIOMotorDatabase,
    bounds: DateBounds,
    status: Optional[str] = None,
    payment_status: Optional[str] = None,
) -> bytes:
    orders = await fetch_orders(db, orders_query(bounds, status, payment_status))
    users = await find_by_ids(db, "user", [o["user_id"] for o in orders])
    rows = [order_row(o, users.get(o["user_id"], {})) for o in orders]
    return build_workbook("Orders", ORDER_COLUMNS, rows)


@dataclass
class SizeEarnings:
    quantity: int = 0
    earnings: float = 0.0
    spending: float = 0.0


@dataclass
class ProductEarnings:
    product_id: str
    name: str
    category: str
    unit: Optional[str]
    price: float = 0.0
    spending_per_unit: Optional[float] = None
    spending_variants: dict[str, float] = field(default_factory=dict)
    # offered sizes, listed in the JSON breakdown even when unsold
    variant_labels: list[str] = field(default_factory=list)
    quantity: int = 0
    earnings: float = 0.0
    spending: float = 0.0
    orders: int = 0
    sizes: dict[str, SizeEarnings] = field(default_factory=dict)

    @property
    def profit(self) -> float:
        return round(self.earnings - self.spending, 2)

    def size_details(self) -> str:
        ranked = sorted(self.sizes.items(), key=lambda kv: SIZE_RANK.get(kv[0].lower(), 0), reverse=True)
        return "; ".join(
            f"{size}: {s.quantity} units (Earnings: ${s.earnings:.2f}, Spending: ${s.spending:.2f})"
            for size, s in ranked
        )

    def as_row(self) -> list[Any]:
        return [
            self.name,
            self.category,
            self.quantity,
            self.size_details() or "N/A",
            f"${self.spending_per_unit:.2f}" if self.spending_per_unit else "N/A",
            round(self.earnings, 2),
            round(self.spending, 2),
            self.profit,
            self.orders,
        ]

    def as_dict(self) -> dict[str, Any]:
        breakdown = {label: {"quantity": 0, "earnings": 0.0, "spending": 0.0} for label in self.variant_labels}
        for size, s in self.sizes.items():
            breakdown[size] = {"quantity": s.quantity, "earnings": round(s.earnings, 2), "spending": round(s.spending, 2)}
        return {
            "id": self.product_id,
            "name": self.name,
            "category": self.category,
            "price": self.price,
            "unit": self.unit,
            "spending": self.spending_per_unit or 0,
            "spendingVariants": self.spending_variants,
            "totalQuantity": self.quantity,
            "totalEarnings": round(self.earnings, 2),
            "totalSpending": round(self.spending, 2),
            "profit": self.profit,
            "orderCount": self.orders,
            "sizeBreakdown": breakdown,
        }


def summarize_earnings(orders: list[dict[str, Any]], products: dict[str, dict[str, Any]]) -> list[ProductEarnings]:
    by_product: dict[str, ProductEarnings] = {}
    for order in orders:
        for item in order.get("items", []):
            pid = item["product_id"]
            product = products.get(pid, {})
            entry = by_product.get(pid)
            if entry is None:
                entry = ProductEarnings(
                    product_id=pid,
                    name=product.get("name") or item.get("product_name", "Unknown Item"),
                    category=product.get("category", ""),
                    unit=product.get("unit") or item.get("product_unit"),
                    price=product.get("price", item["price"]),
                    spending_per_unit=product.get("spending"),
                    spending_variants=product.get("spending_variants") or {},
                    variant_labels=list(product.get("variants") or {}),
                )
                by_product[pid] = entry
            size = item.get("selected_size") or entry.unit or "default"
            unit_cost = (product.get("spending_variants") or {}).get(size) or product.get("spending") or 0
            cost = unit_cost * item["quantity"]

            bucket = entry.sizes.setdefault(size, SizeEarnings())
            bucket.quantity += item["quantity"]
            bucket.earnings += item["subtotal"]
            bucket.spending += cost
            entry.quantity += item["quantity"]
            entry.earnings += item["subtotal"]
            entry.spending += cost
            entry.orders += 1
    return sorted(by_product.values(), key=lambda p: p.earnings, reverse=True)


def earnings_summary(rows: list[ProductEarnings]) -> dict[str, Any]:
    return {
        "totalQuantity": sum(r.quantity for r in rows),
        "totalEarnings": round(sum(r.earnings for r in rows), 2),
        "totalSpending": round(sum(r.spending for r in rows), 2),
        "totalProfit": round(sum(r.profit for r in rows), 2),
        "orderCount": sum(r.orders for r in rows),
    }


async def earnings_report(
    db: AsyncIOMotorDatabase, bounds: DateBounds, date_filter_type: str = "payment"
) -> tuple[list[ProductEarnings], dict[str, Any]]:
    orders = await fetch_orders(db, earnings_query(bounds, date_filter_type))
    product_ids = [i["product_id"] for o in orders for i in o.get("items", [])]
    # hidden and unavailable products still count, past sales must be reported
    products = await find_by_ids(db, "product", product_ids)
    rows = summarize_earnings(orders, products)
    return rows, earnings_summary(rows)


async def export_earnings(db: AsyncIOMotorDatabase, bounds: DateBounds, date_filter_type: str = "payment") -> bytes:
    rows, summary = await earnings_report(db, bounds, date_filter_type)
    sheet_rows = [r.as_row() for r in rows]
    sheet_rows.append([
        "SUMMARY",
        "",
        summary["totalQuantity"],
        "",
        "",
        summary["totalEarnings"],
        summary["totalSpending"],
        summary["totalProfit"],
        summary["orderCount"],
    ])
    return build_workbook("Earnings Report", EARNINGS_COLUMNS, sheet_rows)
