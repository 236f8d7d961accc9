"""
Pydantic models for request/response validation.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional

from domain.enums import OrderStatus, PaymentMethod


class OrderDeskBase(BaseModel):
    """Shared base — allows construction by Python name or camelCase alias."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# ── Order Models ────────────────────────────────────────────────────

class ShippingAddress(OrderDeskBase):
    """
    Shipping address as sent by the storefront.

    state, then division, then city decides the order's region prefix.
    """
    name: Optional[str] = Field(default=None, max_length=200)
    email: Optional[str] = Field(default=None, max_length=200)
    phone: Optional[str] = Field(default=None, max_length=40)
    address: Optional[str] = None
    street: Optional[str] = None
    upazilla: Optional[str] = Field(default=None, alias="Upazilla", max_length=100)
    city: Optional[str] = Field(default=None, max_length=100)
    division: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=100)
    postal_code: Optional[str] = Field(default=None, alias="postalCode", max_length=20)
    zip_code: Optional[str] = Field(default=None, alias="zipCode", max_length=20)
    country: Optional[str] = Field(default=None, max_length=100)


class OrderItemIn(OrderDeskBase):
    product_id: str = Field(..., alias="product", min_length=1, max_length=64)
    name: Optional[str] = Field(default=None, max_length=200)
    quantity: int = Field(1, ge=1)
    image: Optional[str] = None
    price: float = Field(0.0, ge=0)


class PaymentResult(OrderDeskBase):
    id: Optional[str] = None
    status: Optional[str] = None
    update_time: Optional[str] = None
    email_address: Optional[str] = None


class OrderCreateRequest(OrderDeskBase):
    """Body of POST /orders. Prices are computed upstream."""
    user_id: str = Field(..., alias="user", min_length=1, max_length=64)
    order_items: List[OrderItemIn] = Field(..., alias="orderItems", min_length=1)
    shipping_address: ShippingAddress = Field(default_factory=ShippingAddress, alias="shippingAddress")
    payment_method: PaymentMethod = Field(..., alias="paymentMethod")
    items_price: float = Field(0.0, alias="itemsPrice", ge=0)
    shipping_price: float = Field(0.0, alias="shippingPrice", ge=0)
    total_price: float = Field(0.0, alias="totalPrice", ge=0)
    is_paid: bool = Field(False, alias="isPaid")
    is_delivered: bool = Field(False, alias="isDelivered")
    order_status: OrderStatus = Field(OrderStatus.PROCESSING, alias="orderStatus")


class MarkPaidRequest(OrderDeskBase):
    payment_result: Optional[PaymentResult] = Field(default=None, alias="paymentResult")


class RegionCounterResponse(OrderDeskBase):
    region_key: str = Field(..., alias="regionKey")
    sequence_value: int = Field(..., alias="sequenceValue")
    next_identifier: str = Field(..., alias="nextIdentifier")


# ── Upload Models ───────────────────────────────────────────────────

class UploadResponse(BaseModel):
    success: bool = True
    url: str
    public_id: str


class MultiUploadResponse(BaseModel):
    success: bool = True
    url: List[str]
    public_id: List[str]
