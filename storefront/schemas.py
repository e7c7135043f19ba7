from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class DeliveryDateOption(BaseModel):
    name: str
    days_to_deliver: int = Field(ge=0)
    shipping_price: float = Field(ge=0)
    free_shipping_min_price: float = Field(default=0, ge=0)


class ShippingAddress(BaseModel):
    full_name: str = Field(min_length=1)
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    postal_code: str = Field(min_length=1)
    province: str = Field(min_length=1)
    country: str = Field(min_length=1)
    phone: str = Field(min_length=1)


class CartItemIn(BaseModel):
    product_id: int
    client_id: str = ""
    name: str = Field(min_length=1)
    slug: str = Field(min_length=1)
    image: str = ""
    category: str = Field(min_length=1)
    price: float = Field(ge=0)
    quantity: int = Field(gt=0)
    count_in_stock: int = 0
    size: str | None = None
    color: str | None = None


class CartIn(BaseModel):
    items: list[CartItemIn] = Field(default_factory=list)
    shipping_address: ShippingAddress | None = None
    payment_method: str | None = None
    delivery_date_index: int | None = None


class PriceBreakdown(BaseModel):
    items_price: float
    shipping_price: float | None = None
    tax_price: float | None = None
    total_price: float
    delivery_date_index: int
    available_delivery_dates: list[DeliveryDateOption]
    expected_delivery_date: datetime | None = None


class OrderInput(BaseModel):
    """Server-side order document, validated after prices are recomputed."""

    user_id: int
    items: list[CartItemIn] = Field(min_length=1)
    shipping_address: ShippingAddress
    payment_method: str = Field(min_length=1)
    items_price: float = Field(ge=0)
    shipping_price: float = Field(ge=0)
    tax_price: float = Field(ge=0)
    total_price: float = Field(ge=0)
    expected_delivery_date: datetime


class OrderItemOut(BaseModel):
    product_id: int
    client_id: str
    name: str
    slug: str
    image: str
    category: str
    price: float
    quantity: int
    count_in_stock: int
    size: str | None = None
    color: str | None = None

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: int
    user_id: int
    status: str
    items: list[OrderItemOut]
    shipping_address: ShippingAddress | None = None
    payment_method: str
    items_price: float
    shipping_price: float | None = None
    tax_price: float | None = None
    total_price: float
    expected_delivery_date: datetime | None = None
    is_paid: bool
    paid_at: datetime | None = None
    payment_result: dict[str, Any] | None = None
    is_delivered: bool
    delivered_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class OrderListOut(BaseModel):
    data: list[OrderOut]
    total_pages: int


class PayPalApproveIn(BaseModel):
    order_id: str = Field(min_length=1)


class ProductOut(BaseModel):
    id: int
    name: str
    slug: str
    category: str
    brand: str
    description: str
    images: list[str]
    tags: list[str]
    price: float
    list_price: float
    count_in_stock: int
    is_published: bool
    avg_rating: float
    num_reviews: int
    rating_distribution: list[dict[str, int]]
    num_sales: int

    model_config = ConfigDict(from_attributes=True)


class ProductCardOut(BaseModel):
    name: str
    href: str
    image: str


class ReviewInput(BaseModel):
    product_id: int
    title: str = Field(min_length=1, max_length=200)
    comment: str = Field(min_length=1)
    rating: int = Field(ge=1, le=5)
    is_verified_purchase: bool = False


class ReviewOut(BaseModel):
    id: int
    user_id: int
    user_name: str | None = None
    product_id: int
    title: str
    comment: str
    rating: int
    is_verified_purchase: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ReviewListOut(BaseModel):
    data: list[ReviewOut]
    total_pages: int


class UserNameIn(BaseModel):
    name: str = Field(min_length=2, max_length=50)


class UserOut(BaseModel):
    id: int
    name: str
    email: EmailStr
    role: str

    model_config = ConfigDict(from_attributes=True)


class SettingIn(BaseModel):
    common: dict[str, Any]
    site: dict[str, Any]
    available_delivery_dates: list[DeliveryDateOption] = Field(min_length=1)
    available_payment_methods: list[dict[str, Any]] = Field(min_length=1)
    default_payment_method: str = Field(min_length=1)
    carousels: list[dict[str, Any]] = Field(default_factory=list)


class WebPageOut(BaseModel):
    id: int
    title: str
    slug: str
    content: str
    is_published: bool

    model_config = ConfigDict(from_attributes=True)
