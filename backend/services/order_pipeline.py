"""
Order consistency pipeline — the stages every order write passes through.

Two explicit stages, called by the persistence layer (services/order_service.py)
rather than attached as ORM lifecycle hooks:

    before_create(db, order)   new order: allocate custom_order_id, then
                               apply the delivery rule to the record
    before_update(update)      partial update: if it marks the order
                               delivered, rewrite it so payment, timestamps
                               and status follow

Delivery rule (applied on both paths): a delivered order is paid, has
paid_at and delivered_at set, and has order_status "Delivered". The rule
is idempotent.

check_identifier(order, is_new) is the field-level validator guarding
custom_order_id on persisted orders.
"""
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncSession

from domain.constants import SET_OPERATOR
from domain.enums import ChangeSetShape, OrderStatus
from domain.errors import ValidationError
from services import sequence_service

logger = logging.getLogger(__name__)

DELIVERED = OrderStatus.DELIVERED.value


def is_new_order(order) -> bool:
    """True while the order has never been flushed to the database."""
    state = inspect(order, raiseerr=False)
    if state is None:
        return getattr(order, "id", None) is None
    return state.transient or state.pending


def normalize_delivery(order, now: datetime | None = None) -> bool:
    """
    Apply the delivery rule to an in-memory order.

    Returns:
        True if any field was changed.
    """
    if not order.is_delivered:
        return False

    now = now or datetime.utcnow()
    changed = False

    if not order.is_paid:
        logger.info(
            f"Order {order.custom_order_id or order.id}: delivered but unpaid, setting is_paid=True"
        )
        order.is_paid = True
        if not order.paid_at:
            order.paid_at = now
        changed = True

    if not order.delivered_at:
        order.delivered_at = now
        changed = True

    if order.order_status != DELIVERED:
        logger.info(
            f"Order {order.custom_order_id or order.id}: setting order_status to '{DELIVERED}'"
        )
        order.order_status = DELIVERED
        changed = True

    return changed


async def before_create(db: AsyncSession, order):
    """
    Creation stage. Allocates custom_order_id for new orders that lack one.

    Raises:
        AllocationError: propagated from the sequence service; the caller
            must not persist the order.
    """
    if is_new_order(order) and not order.custom_order_id:
        logger.info("Generating custom order ID for new order")
        order.custom_order_id = await sequence_service.allocate_for_order(db, order)

    normalize_delivery(order)
    return order


def check_identifier(order, is_new: bool) -> None:
    """Reject a persisted order without a custom_order_id."""
    if not is_new and not order.custom_order_id:
        raise ValidationError("Custom Order ID is required", field="custom_order_id")


# ── Partial updates ─────────────────────────────────────────────────


@dataclass
class ChangeSet:
    """
    A partial update, classified once.

    `fields` is the mapping the update actually writes: the update itself
    when flat, or update["$set"] when nested. Rewrites go into it in place.
    """
    shape: ChangeSetShape
    fields: dict
    update: dict

    @classmethod
    def from_update(cls, update: dict) -> "ChangeSet":
        nested = update.get(SET_OPERATOR)
        if isinstance(nested, dict):
            return cls(ChangeSetShape.NESTED, nested, update)
        return cls(ChangeSetShape.FLAT, update, update)

    @property
    def sets_delivered(self) -> bool:
        nested = self.update.get(SET_OPERATOR)
        if isinstance(nested, dict) and nested.get("is_delivered") is True:
            return True
        return self.update.get("is_delivered") is True


def before_update(update: "dict | ChangeSet", now: datetime | None = None) -> ChangeSet:
    """
    Update stage. Rewrites the update in place when it marks the order delivered.

    Accepts the raw update or an already classified ChangeSet. Handles flat
    updates ({"is_delivered": True}) and nested ones
    ({"$set": {"is_delivered": True}}) the same way. Never raises.

    Returns:
        The ChangeSet; its `fields` are what the write should apply.
    """
    change_set = update if isinstance(update, ChangeSet) else ChangeSet.from_update(update)
    if not change_set.sets_delivered:
        return change_set

    logger.info(f"{change_set.shape.value} update marks order delivered, setting is_paid=True")
    now = now or datetime.utcnow()
    fields = change_set.fields

    fields["is_paid"] = True
    if not fields.get("paid_at"):
        fields["paid_at"] = now
    if not fields.get("delivered_at"):
        fields["delivered_at"] = now
    if fields.get("order_status") != DELIVERED:
        fields["order_status"] = DELIVERED

    return change_set
