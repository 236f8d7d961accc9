"""
Order endpoints — creation, partial updates, pay/deliver actions and reads.

Write endpoints delegate to services/order_service.py, which runs the
consistency pipeline; nothing here touches payment/delivery fields directly.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from domain.constants import SET_OPERATOR
from domain.errors import NotFoundError
from domain.responses import success_response, paginated_response
from middleware.rate_limit import rate_limit
from models import OrderCreateRequest, MarkPaidRequest, RegionCounterResponse
from services import order_service, sequence_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"])

# camelCase field names accepted in PATCH bodies
CHANGE_SET_ALIASES = {
    "isPaid": "is_paid",
    "paidAt": "paid_at",
    "isDelivered": "is_delivered",
    "deliveredAt": "delivered_at",
    "orderStatus": "order_status",
    "paymentMethod": "payment_method",
    "paymentResult": "payment_result",
    "itemsPrice": "items_price",
    "shippingPrice": "shipping_price",
    "totalPrice": "total_price",
    "customOrderId": "custom_order_id",
}


def translate_change_set(update: dict[str, Any]) -> dict[str, Any]:
    """Map camelCase keys to column names, keeping the flat/$set shape."""
    translated = {}
    for key, value in update.items():
        if key == SET_OPERATOR and isinstance(value, dict):
            translated[key] = translate_change_set(value)
        else:
            translated[CHANGE_SET_ALIASES.get(key, key)] = value
    return translated


@router.post("", dependencies=[Depends(rate_limit(30, 60))])
async def create_order(
    request: OrderCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.create_order(
        db,
        user_id=request.user_id,
        items=[item.model_dump() for item in request.order_items],
        shipping_address=request.shipping_address.model_dump(),
        payment_method=request.payment_method.value,
        items_price=request.items_price,
        shipping_price=request.shipping_price,
        total_price=request.total_price,
        is_paid=request.is_paid,
        is_delivered=request.is_delivered,
        order_status=request.order_status.value,
    )
    await db.commit()
    return success_response(data=order_service.serialize_order(order))


@router.get("")
async def list_orders(
    user_id: str | None = Query(None, alias="user"),
    status: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    orders, total = await order_service.list_orders(
        db, user_id=user_id, status=status, limit=limit, offset=offset
    )
    return paginated_response(
        items=[order_service.serialize_order(o) for o in orders],
        limit=limit,
        offset=offset,
        total=total,
    )


@router.get("/code/{custom_order_id}")
async def get_order_by_code(custom_order_id: str, db: AsyncSession = Depends(get_db)):
    order = await order_service.get_order_by_custom_id(db, custom_order_id=custom_order_id)
    if not order:
        raise NotFoundError("Order", custom_order_id)
    return success_response(data=order_service.serialize_order(order))


@router.get("/counters/{region_key}")
async def get_region_counter(region_key: str, db: AsyncSession = Depends(get_db)):
    """Current sequence for a region and the identifier the next order would get."""
    key = region_key.upper()
    value = await sequence_service.peek_sequence(db, key)
    counter = RegionCounterResponse(
        region_key=key,
        sequence_value=value,
        next_identifier=sequence_service.format_identifier(key, value + 1),
    )
    return success_response(data=counter.model_dump())


@router.get("/{order_id}")
async def get_order(order_id: int, db: AsyncSession = Depends(get_db)):
    order = await order_service.get_order(db, order_id=order_id)
    if not order:
        raise NotFoundError("Order", str(order_id))
    return success_response(data=order_service.serialize_order(order))


@router.patch("/{order_id}")
async def update_order(
    order_id: int,
    update: dict[str, Any] = Body(..., description="Flat field map or {\"$set\": {...}}"),
    db: AsyncSession = Depends(get_db),
):
    order = await order_service.update_order(
        db, order_id=order_id, update=translate_change_set(update)
    )
    await db.commit()
    return success_response(data=order_service.serialize_order(order))


@router.put("/{order_id}/pay")
async def mark_order_paid(
    order_id: int,
    request: MarkPaidRequest | None = None,
    db: AsyncSession = Depends(get_db),
):
    payment_result = None
    if request and request.payment_result:
        payment_result = request.payment_result.model_dump()
    order = await order_service.mark_paid(db, order_id=order_id, payment_result=payment_result)
    await db.commit()
    return success_response(data=order_service.serialize_order(order))


@router.put("/{order_id}/deliver")
async def mark_order_delivered(order_id: int, db: AsyncSession = Depends(get_db)):
    order = await order_service.mark_delivered(db, order_id=order_id)
    await db.commit()
    logger.info(f"Order {order.custom_order_id} marked delivered")
    return success_response(data=order_service.serialize_order(order))
