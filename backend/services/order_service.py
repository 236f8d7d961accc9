"""
Order service — the persistence layer for orders.

Every write goes through the consistency pipeline explicitly:

    create_order / save_order   →  order_pipeline.before_create
                                   order_pipeline.check_identifier
                                   flush
    update_order                →  order_pipeline.before_update
                                   single UPDATE statement (last writer wins)

Pricing and cart logic live upstream; the values passed in here are taken
as already correct.
"""
import json
import logging
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, func, select, update as sql_update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db_models import Order, OrderItem
from domain.constants import IMMUTABLE_ORDER_FIELDS, SET_OPERATOR
from domain.enums import OrderStatus, PaymentMethod
from domain.errors import ConflictError, NotFoundError, ValidationError
from services import order_pipeline

logger = logging.getLogger(__name__)

# Shipping address fields, stored as shipping_<field> columns on orders
SHIPPING_FIELDS = (
    "name", "email", "phone", "address", "street", "upazilla",
    "city", "division", "state", "postal_code", "zip_code", "country",
)

# Alternative spellings sent by older clients
SHIPPING_ALIASES = {
    "Upazilla": "upazilla",
    "postalCode": "postal_code",
    "zipCode": "zip_code",
}


def _shipping_columns(shipping_address: dict | None) -> dict:
    columns = {}
    for key, value in (shipping_address or {}).items():
        field = SHIPPING_ALIASES.get(key, key)
        if field in SHIPPING_FIELDS and value is not None:
            columns[f"shipping_{field}"] = value
    return columns


def _enum_value(enum_cls, value, field: str) -> str:
    try:
        return enum_cls(value).value
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(f"'{value}' is not one of: {allowed}", field=field)


async def save_order(db: AsyncSession, order: Order) -> Order:
    """
    Full-document save path (new or existing order).

    Raises:
        AllocationError: new order, identifier could not be allocated.
            Nothing is added to the session in that case.
        ValidationError: existing order without custom_order_id
        ConflictError: custom_order_id collided with another order
    """
    new = order_pipeline.is_new_order(order)
    await order_pipeline.before_create(db, order)
    # New orders carry their identifier by now; both cases are checked as
    # records about to be persisted.
    order_pipeline.check_identifier(order, is_new=False)

    if new:
        db.add(order)
    try:
        await db.flush()
    except IntegrityError as e:
        logger.error(f"Order {order.custom_order_id} violates a unique constraint: {e}")
        raise ConflictError(
            f"Order identifier already in use: {order.custom_order_id}",
            details={"custom_order_id": order.custom_order_id},
        ) from e
    return order


async def create_order(
    db: AsyncSession,
    *,
    user_id: str,
    items: list[dict],
    shipping_address: dict | None,
    payment_method: str,
    items_price: float = 0.0,
    shipping_price: float = 0.0,
    total_price: float = 0.0,
    is_paid: bool = False,
    is_delivered: bool = False,
    order_status: str = OrderStatus.PROCESSING.value,
    payment_result: dict | None = None,
) -> Order:
    """
    Create an order and its line items.

    items: [{product_id:str, name:str, quantity:int, image:str, price:float}]
    """
    order = Order(
        user_id=user_id,
        payment_method=_enum_value(PaymentMethod, payment_method, "payment_method"),
        payment_result=json.dumps(payment_result) if payment_result else None,
        items_price=items_price,
        shipping_price=shipping_price,
        total_price=total_price,
        is_paid=is_paid,
        is_delivered=is_delivered,
        order_status=_enum_value(OrderStatus, order_status, "order_status"),
        **_shipping_columns(shipping_address),
    )
    for item in items:
        order.items.append(
            OrderItem(
                product_id=str(item["product_id"]),
                name=item.get("name"),
                quantity=item.get("quantity", 1),
                image=item.get("image"),
                price=item.get("price", 0.0),
            )
        )

    await save_order(db, order)
    logger.info(f"Order {order.custom_order_id} created for user {user_id}")
    return order


async def get_order(db: AsyncSession, *, order_id: int) -> Order | None:
    res = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def get_order_by_custom_id(db: AsyncSession, *, custom_order_id: str) -> Order | None:
    res = await db.execute(
        select(Order).where(Order.custom_order_id == custom_order_id.upper())
    )
    return res.scalar_one_or_none()


async def list_orders(
    db: AsyncSession,
    *,
    user_id: str | None = None,
    status: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Order], int]:
    """Orders newest first, optionally filtered. Returns (page, total)."""
    filters = []
    if user_id:
        filters.append(Order.user_id == user_id)
    if status:
        filters.append(Order.order_status == _enum_value(OrderStatus, status, "status"))

    total_res = await db.execute(select(func.count(Order.id)).where(*filters))
    total = total_res.scalar_one()

    res = await db.execute(
        select(Order)
        .where(*filters)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(res.scalars().all()), total


# ── Partial updates ─────────────────────────────────────────────────

_UPDATABLE_COLUMNS = {
    name: column
    for name, column in Order.__table__.columns.items()
    if name not in IMMUTABLE_ORDER_FIELDS
}


def _check_shape(update: dict) -> None:
    if SET_OPERATOR not in update:
        return
    if not isinstance(update[SET_OPERATOR], dict):
        raise ValidationError(f"'{SET_OPERATOR}' must be an object", field=SET_OPERATOR)
    extra = sorted(k for k in update if k != SET_OPERATOR)
    if extra:
        raise ValidationError(
            f"Cannot mix '{SET_OPERATOR}' with top-level fields",
            details={"fields": extra},
        )


def _parse_datetime(value, name: str) -> datetime | None:
    """ISO string or datetime to naive UTC. Offsets are converted, not dropped."""
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"Invalid datetime '{value}'", field=name)
    if not isinstance(value, datetime):
        raise ValidationError(f"Expected an ISO datetime, got {value!r}", field=name)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _coerce_fields(fields: dict) -> dict:
    """
    Validate change-set fields against the orders table and coerce values.

    Boolean columns take only true or false; 1 and "true" are rejected.
    """
    values = {}
    for name, value in fields.items():
        if name in IMMUTABLE_ORDER_FIELDS:
            raise ValidationError(f"{name} cannot be changed once set", field=name)
        column = _UPDATABLE_COLUMNS.get(name)
        if column is None:
            raise ValidationError(f"Unknown order field '{name}'", field=name)

        if isinstance(column.type, Boolean):
            if not isinstance(value, bool):
                raise ValidationError(f"Expected true or false, got {value!r}", field=name)
        elif isinstance(column.type, DateTime):
            value = _parse_datetime(value, name)
        elif isinstance(column.type, Float):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(f"Expected a number, got {value!r}", field=name)
        elif name == "order_status":
            value = _enum_value(OrderStatus, value, name)
        elif name == "payment_method":
            value = _enum_value(PaymentMethod, value, name)
        elif name == "payment_result" and isinstance(value, dict):
            value = json.dumps(value)
        values[name] = value
    return values


async def update_order(db: AsyncSession, *, order_id: int, update: dict) -> Order:
    """
    Partial-update path (find-one-and-update semantics).

    update: flat {"field": value} or nested {"$set": {"field": value}}

    Fields are validated and coerced before the pipeline sees them, so the
    delivery rule always runs against the values that will be written.

    Raises:
        ValidationError: mixed shapes, unknown or mistyped fields, or a
            write to custom_order_id
        NotFoundError: no order with this id
    """
    _check_shape(update)
    change_set = order_pipeline.ChangeSet.from_update(update)
    change_set.fields.update(_coerce_fields(change_set.fields))
    values = dict(order_pipeline.before_update(change_set).fields)

    if values:
        values["updated_at"] = datetime.utcnow()
        res = await db.execute(
            sql_update(Order)
            .where(Order.id == order_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            raise NotFoundError("Order", str(order_id))
        await db.flush()

    order = await get_order(db, order_id=order_id)
    if not order:
        raise NotFoundError("Order", str(order_id))
    return order


async def mark_paid(db: AsyncSession, *, order_id: int, payment_result: dict | None = None) -> Order:
    update = {"is_paid": True, "paid_at": datetime.utcnow()}
    if payment_result:
        update["payment_result"] = payment_result
    return await update_order(db, order_id=order_id, update=update)


async def mark_delivered(db: AsyncSession, *, order_id: int) -> Order:
    return await update_order(db, order_id=order_id, update={"is_delivered": True})


# ── Serialization ───────────────────────────────────────────────────


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize_order(order: Order) -> dict:
    return {
        "id": order.id,
        "custom_order_id": order.custom_order_id,
        "user_id": order.user_id,
        "items": [
            {
                "product_id": item.product_id,
                "name": item.name,
                "quantity": item.quantity,
                "image": item.image,
                "price": item.price,
            }
            for item in order.items
        ],
        "shipping_address": {
            field: getattr(order, f"shipping_{field}") for field in SHIPPING_FIELDS
        },
        "payment_method": order.payment_method,
        "payment_result": json.loads(order.payment_result) if order.payment_result else None,
        "items_price": order.items_price,
        "shipping_price": order.shipping_price,
        "total_price": order.total_price,
        "is_paid": order.is_paid,
        "paid_at": _iso(order.paid_at),
        "is_delivered": order.is_delivered,
        "delivered_at": _iso(order.delivered_at),
        "order_status": order.order_status,
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
    }
