# Collection documents (snake_case, one class per collection) and camelCase API models.
from __future__ import annotations
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

ORDER_STATUSES = ("pending", "processing", "completed", "cancelled")
PAYMENT_STATUSES = ("payment_pending", "payment_completed")
ROLES = ("admin", "customer")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# Collection documents

class User(BaseModel):
    name: Optional[str] = None
    email: EmailStr
    password_hash: str
    phone: Optional[str] = None
    role: str = Field("customer", description="admin | customer")
    email_verified: bool = False


class Product(BaseModel):
    name: str
    category: str
    price: float = Field(ge=0)
    unit: str
    is_available: bool = True
    is_hidden: bool = False
    pre_order_only: bool = False
    image: Optional[str] = None
    description: Optional[str] = None
    variants: Optional[dict[str, float]] = Field(None, description="size label -> price")
    spending: Optional[float] = Field(None, description="unit cost")
    spending_variants: Optional[dict[str, float]] = Field(None, description="size label -> unit cost")


class OrderItem(BaseModel):
    id: str
    product_id: str
    product_name: str = Field(..., description="Snapshot of product name at order time")
    product_unit: Optional[str] = None
    quantity: int = Field(ge=1)
    price: float = Field(..., description="Unit price at order time")
    subtotal: float
    selected_size: Optional[str] = None
    special_instructions: Optional[str] = None


class Order(BaseModel):
    user_id: str
    items: list[OrderItem]
    total_amount: float
    status: str = "pending"
    payment_status: str = "payment_pending"
    payment_received_date: Optional[datetime] = None
    location: Optional[str] = None
    pickup_date: Optional[datetime] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    admin_timeline: Optional[str] = None
    admin_notes: Optional[str] = None
    whatsapp_sent: bool = False
    revision: int = 0


class InvestedCategory(BaseModel):
    name: str
    description: Optional[str] = None
    parent_category_id: Optional[str] = Field(None, description="None for a top-level category")


class InvestedItem(BaseModel):
    name: str
    category_id: str
    custom_fields: Optional[dict[str, Any]] = None


# Requests

class CustomerInfo(CamelModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class CartLine(CamelModel):
    product_id: str
    quantity: int = Field(1, ge=1)
    selected_size: Optional[str] = None
    special_instructions: Optional[str] = None


class CreateOrderRequest(CamelModel):
    items: list[CartLine] = Field(default_factory=list)
    customer_info: Optional[CustomerInfo] = None
    location: Optional[str] = None
    pickup_date: Optional[datetime] = None


class ItemPrice(CamelModel):
    item_id: str
    price: float


class OrderUpdate(CamelModel):
    status: Optional[str] = None
    payment_status: Optional[str] = None
    payment_received_date: Optional[str] = None
    admin_timeline: Optional[str] = None
    admin_notes: Optional[str] = None
    item_prices: Optional[list[ItemPrice]] = None
    total_amount: Optional[float] = None


class ProductCreate(CamelModel):
    name: str
    category: str
    price: float = Field(ge=0)
    unit: str
    description: Optional[str] = None
    image: Optional[str] = None
    pre_order_only: bool = False
    variants: Optional[dict[str, float]] = None
    spending: Optional[float] = Field(None, ge=0)
    spending_variants: Optional[dict[str, float]] = None


class ProductUpdate(CamelModel):
    name: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    unit: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    is_available: Optional[bool] = None
    is_hidden: Optional[bool] = None
    pre_order_only: Optional[bool] = None
    variants: Optional[dict[str, float]] = None
    spending: Optional[float] = None
    spending_variants: Optional[dict[str, float]] = None


class SignupRequest(CamelModel):
    name: str
    email: EmailStr
    password: str = Field(min_length=6)
    phone: Optional[str] = None


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class UserCreate(CamelModel):
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None


class CategoryCreate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    parent_category_id: Optional[str] = None


class CategoryUpdate(CategoryCreate):
    pass


class InvestedItemCreate(CamelModel):
    name: Optional[str] = None
    category_id: Optional[str] = None
    custom_fields: Optional[dict[str, Any]] = None


class InvestedItemUpdate(InvestedItemCreate):
    pass


# Responses

class UserPublic(CamelModel):
    id: str
    name: Optional[str] = None
    email: str
    phone: Optional[str] = None
    role: str
    email_verified: bool = False


class SessionOut(CamelModel):
    token: str
    expires_at: datetime
    user: UserPublic


class ProductOut(CamelModel):
    id: str
    name: str
    category: str
    price: float
    unit: str
    is_available: bool = True
    is_hidden: bool = False
    pre_order_only: bool = False
    image: Optional[str] = None
    description: Optional[str] = None
    variants: Optional[dict[str, float]] = None
    spending: Optional[float] = None
    spending_variants: Optional[dict[str, float]] = None


class UserSummary(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


class OrderItemOut(CamelModel):
    id: str
    product_id: str
    quantity: int
    price: float
    subtotal: float
    selected_size: Optional[str] = None
    special_instructions: Optional[str] = None
    product: Optional[ProductOut] = None


class OrderOut(CamelModel):
    id: str
    user_id: str
    total_amount: float
    status: str
    payment_status: str
    payment_received_date: Optional[datetime] = None
    location: Optional[str] = None
    pickup_date: Optional[datetime] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    admin_timeline: Optional[str] = None
    admin_notes: Optional[str] = None
    whatsapp_sent: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: list[OrderItemOut] = Field(default_factory=list)
    user: Optional[UserSummary] = None


class ConfirmOut(CamelModel):
    success: bool = True
    order: OrderOut
    message: str


class ItemDeleteOut(CamelModel):
    success: bool = True
    message: str
    order_deleted: bool
    new_total: Optional[float] = None


class BulkDeleteOut(CamelModel):
    success: bool = True
    message: str
    deleted_count: int


class MessageOut(CamelModel):
    success: bool = True
    message: str


class CategoryOut(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    parent_category_id: Optional[str] = None
    item_count: int = 0
    sub_categories: list[CategoryOut] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class InvestedCategoryRef(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    parent_category_id: Optional[str] = None
    parent_category: Optional[InvestedCategoryRef] = None


class InvestedItemOut(CamelModel):
    id: str
    name: str
    category_id: str
    custom_fields: Optional[dict[str, Any]] = None
    category: Optional[InvestedCategoryRef] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
