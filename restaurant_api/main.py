from __future__ import annotations
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError, PyMongoError

from . import export, investments, products as product_store
from .auth import (
    Session,
    authenticate,
    bearer_token,
    create_session,
    create_user,
    current_session,
    end_session,
    optional_session,
    register_user,
    require_admin,
    upsert_admin,
    user_public,
)
from .config import Settings, get_settings
from .database import close_db, get_db, utcnow
from .errors import AppError, InternalError, ValidationError
from .notifications import WhatsAppNotifier
from .orders import OrderService
from .reports import earnings_filename, orders_filename, resolve_date_range
from .schemas import (
    BulkDeleteOut,
    CategoryCreate,
    CategoryOut,
    CategoryUpdate,
    ConfirmOut,
    CreateOrderRequest,
    InvestedItemCreate,
    InvestedItemOut,
    InvestedItemUpdate,
    ItemDeleteOut,
    LoginRequest,
    MessageOut,
    OrderOut,
    OrderUpdate,
    ProductCreate,
    ProductOut,
    ProductUpdate,
    SessionOut,
    SignupRequest,
    UserCreate,
    UserPublic,
)

log = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings)
    db = await get_db()
    await db["user"].create_index("email", unique=True)
    await db["session"].create_index("token", unique=True)
    await db["order"].create_index([("user_id", 1), ("created_at", -1)])
    await db["invested_item"].create_index([("category_id", 1), ("created_at", -1)])
    log.info("connected to %s", settings.DATABASE_NAME)
    yield
    close_db()


app = FastAPI(title="Restaurant Ordering API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Errors

def error_response(exc: AppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return error_response(ValidationError("Duplicate value"))


@app.exception_handler(PyMongoError)
async def store_error_handler(request: Request, exc: PyMongoError):
    log.exception("store error on %s %s", request.method, request.url.path)
    return error_response(InternalError())


# Dependencies

def get_notifier(settings: Settings = Depends(get_settings)) -> WhatsAppNotifier:
    return WhatsAppNotifier(settings)


def get_order_service(
    db: AsyncIOMotorDatabase = Depends(get_db),
    settings: Settings = Depends(get_settings),
    notifier: WhatsAppNotifier = Depends(get_notifier),
) -> OrderService:
    return OrderService(db, settings, notifier)


def xlsx_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type=export.XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/")
async def root():
    return {"message": "Restaurant Ordering API Running"}


@app.get("/test")
async def test(db: AsyncIOMotorDatabase = Depends(get_db), settings: Settings = Depends(get_settings)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": settings.DATABASE_NAME,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        response["collections"] = (await db.list_collection_names())[:10]
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"⚠️  Connected but Error: {str(e)[:80]}"
    return response


@app.post("/seed")
async def seed(db: AsyncIOMotorDatabase = Depends(get_db), settings: Settings = Depends(get_settings)):
    if not settings.ADMIN_EMAIL or not settings.ADMIN_PASSWORD:
        raise ValidationError("ADMIN_EMAIL and ADMIN_PASSWORD must be set")
    admin = await upsert_admin(db, settings.ADMIN_EMAIL, settings.ADMIN_PASSWORD)
    inserted = await product_store.seed_products(db)
    return {"success": True, "adminEmail": admin["email"], "productsInserted": inserted}


# Auth

@app.post("/auth/signup", response_model=SessionOut)
async def signup(
    payload: SignupRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = await register_user(db, payload)
    session = await create_session(db, user["id"], settings)
    return SessionOut(token=session["token"], expires_at=session["expires_at"], user=user_public(user))


@app.post("/auth/login", response_model=SessionOut)
async def login(
    payload: LoginRequest,
    db: AsyncIOMotorDatabase = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    user = await authenticate(db, str(payload.email), payload.password)
    session = await create_session(db, user["id"], settings)
    return SessionOut(token=session["token"], expires_at=session["expires_at"], user=user_public(user))


@app.post("/auth/logout", response_model=MessageOut)
async def logout(
    token: Optional[str] = Depends(bearer_token),
    session: Session = Depends(current_session),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    await end_session(db, token)
    return MessageOut(message="Signed out")


@app.get("/auth/me", response_model=UserPublic)
async def me(session: Session = Depends(current_session)):
    return UserPublic(
        id=session.user_id,
        name=session.name,
        email=session.email,
        phone=session.phone,
        role=session.role,
        email_verified=session.email_verified,
    )


# Users

@app.post("/users", response_model=UserPublic)
async def add_user(
    payload: UserCreate,
    admin: Session = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return user_public(await create_user(db, payload))


# Orders

@app.post("/orders", response_model=OrderOut)
async def create_order(
    payload: CreateOrderRequest,
    session: Session = Depends(current_session),
    service: OrderService = Depends(get_order_service),
):
    return await service.create(session, payload)


@app.get("/orders", response_model=list[OrderOut])
async def list_orders(
    session: Session = Depends(current_session),
    service: OrderService = Depends(get_order_service),
):
    return await service.list_for(session)


@app.delete("/orders", response_model=BulkDeleteOut)
async def delete_all_orders(
    admin: Session = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    count = await service.delete_all()
    return BulkDeleteOut(message=f"Successfully deleted {count} order(s)", deleted_count=count)


@app.delete("/orders/items", response_model=ItemDeleteOut, response_model_exclude_none=True)
async def delete_order_item(
    item_id: Optional[str] = Query(None, alias="id"),
    order_id: Optional[str] = Query(None, alias="orderId"),
    reason: Optional[str] = Query(None),
    session: Session = Depends(current_session),
    service: OrderService = Depends(get_order_service),
):
    if not item_id or not order_id:
        raise ValidationError("Order item ID and order ID are required")
    return await service.delete_item(session, item_id, order_id, reason)


@app.get("/orders/export")
async def export_orders(
    status: Optional[str] = Query(None),
    payment_status: Optional[str] = Query(None, alias="paymentStatus"),
    date_range: Optional[str] = Query(None, alias="dateRange"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    admin: Session = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    now = utcnow()
    bounds = resolve_date_range(date_range, start_date, end_date, now)
    content = await export.export_orders(db, bounds, status or None, payment_status or None)
    return xlsx_response(content, orders_filename(status, date_range, now.date()))


@app.patch("/orders/{order_id}", response_model=OrderOut)
async def update_order(
    order_id: str,
    payload: OrderUpdate,
    session: Session = Depends(current_session),
    service: OrderService = Depends(get_order_service),
):
    return await service.update(session, order_id, payload)


@app.post("/orders/{order_id}/confirm", response_model=ConfirmOut)
async def confirm_order(
    order_id: str,
    admin: Session = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    order, notified = await service.confirm(order_id)
    message = "Order confirmed and moved to processing"
    if not notified:
        message += " (WhatsApp notification failed)"
    return ConfirmOut(order=order, message=message)


# Products

@app.get("/products", response_model=list[ProductOut])
async def get_products(
    session: Optional[Session] = Depends(optional_session),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    include_hidden = session is not None and session.is_admin
    return [ProductOut(**d) for d in await product_store.list_products(db, include_hidden)]


@app.post("/products", response_model=ProductOut)
async def add_product(
    payload: ProductCreate,
    admin: Session = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return ProductOut(**await product_store.create_product(db, payload))


@app.get("/products/earnings")
async def earnings(
    date_range: Optional[str] = Query("all", alias="dateRange"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    date_filter_type: str = Query("payment", alias="dateFilterType"),
    admin: Session = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if date_filter_type not in ("order", "payment"):
        raise ValidationError("dateFilterType must be 'order' or 'payment'")
    bounds = resolve_date_range(date_range, start_date, end_date, utcnow())
    rows, summary = await export.earnings_report(db, bounds, date_filter_type)
    return {"products": [r.as_dict() for r in rows], "dateRange": date_range or "all", "summary": summary}


@app.get("/products/earnings/export")
async def export_earnings(
    date_range: Optional[str] = Query("all", alias="dateRange"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    date_filter_type: str = Query("payment", alias="dateFilterType"),
    admin: Session = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    if date_filter_type not in ("order", "payment"):
        raise ValidationError("dateFilterType must be 'order' or 'payment'")
    now = utcnow()
    bounds = resolve_date_range(date_range, start_date, end_date, now)
    content = await export.export_earnings(db, bounds, date_filter_type)
    return xlsx_response(content, earnings_filename(date_range, bounds, now.date()))


@app.patch("/products/{product_id}", response_model=ProductOut)
async def edit_product(
    product_id: str,
    payload: ProductUpdate,
    admin: Session = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return ProductOut(**await product_store.update_product(db, product_id, payload))


@app.delete("/products/{product_id}")
async def delete_product(
    product_id: str,
    admin: Session = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    deleted, product = await product_store.remove_product(db, product_id)
    if deleted:
        message = "Product deleted"
    else:
        message = "Product has orders. It has been hidden instead of deleted."
    return {"success": True, "message": message, "product": ProductOut(**product)}


# Invested items

@app.get("/invested-items/categories", response_model=list[CategoryOut])
async def get_categories(
    admin: Session = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await investments.list_categories(db)


@app.post("/invested-items/categories", response_model=CategoryOut)
async def add_category(
    payload: CategoryCreate,
    admin: Session = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await investments.create_category(db, payload)


@app.patch("/invested-items/categories/{category_id}", response_model=CategoryOut)
async def edit_category(
    category_id: str,
    payload: CategoryUpdate,
    admin: Session = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await investments.update_category(db, category_id, payload)


@app.delete("/invested-items/categories/{category_id}", response_model=MessageOut)
async def remove_category(
    category_id: str,
    admin: Session = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    await investments.delete_category(db, category_id)
    return MessageOut(message="Category deleted")


@app.get("/invested-items", response_model=list[InvestedItemOut])
async def get_invested_items(
    category_id: Optional[str] = Query(None, alias="categoryId"),
    admin: Session = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await investments.list_items(db, category_id)


@app.post("/invested-items", response_model=InvestedItemOut)
async def add_invested_item(
    payload: InvestedItemCreate,
    admin: Session = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await investments.create_item(db, payload)


@app.patch("/invested-items/{item_id}", response_model=InvestedItemOut)
async def edit_invested_item(
    item_id: str,
    payload: InvestedItemUpdate,
    admin: Session = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    return await investments.update_item(db, item_id, payload)


@app.delete("/invested-items/{item_id}", response_model=MessageOut)
async def remove_invested_item(
    item_id: str,
    admin: Session = Depends(require_admin),
    db: AsyncIOMotorDatabase = Depends(get_db),
):
    await investments.delete_item(db, item_id)
    return MessageOut(message="Item deleted")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().PORT)
