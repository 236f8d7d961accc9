"""
Tests for the order consistency pipeline.

Tests: normalize_delivery, before_create, before_update (flat and $set
shapes), ChangeSet classification, check_identifier.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest

from db_models import Order
from domain.enums import ChangeSetShape
from domain.errors import AllocationError, ValidationError
from services import order_pipeline
from services.order_pipeline import ChangeSet, before_update, check_identifier, normalize_delivery

NOW = datetime(2026, 3, 1, 12, 0, 0)
EARLIER = datetime(2026, 2, 27, 9, 30, 0)


def _order(**kwargs) -> Order:
    fields = {
        "user_id": "u-1",
        "payment_method": "cash",
        "is_paid": False,
        "is_delivered": False,
        "order_status": "Processing",
    }
    fields.update(kwargs)
    return Order(**fields)


class TestNormalizeDelivery:
    """Tests for the delivery rule on in-memory orders."""

    @pytest.mark.unit
    def test_undelivered_order_untouched(self):
        order = _order(order_status="Shipped")
        assert normalize_delivery(order, now=NOW) is False
        assert order.is_paid is False
        assert order.paid_at is None
        assert order.delivered_at is None
        assert order.order_status == "Shipped"

    @pytest.mark.unit
    def test_delivered_unpaid_becomes_paid(self):
        order = _order(is_delivered=True)
        assert normalize_delivery(order, now=NOW) is True
        assert order.is_paid is True
        assert order.paid_at == NOW
        assert order.delivered_at == NOW
        assert order.order_status == "Delivered"

    @pytest.mark.unit
    def test_existing_timestamps_kept(self):
        order = _order(is_delivered=True, paid_at=EARLIER, delivered_at=EARLIER)
        normalize_delivery(order, now=NOW)
        assert order.paid_at == EARLIER
        assert order.delivered_at == EARLIER

    @pytest.mark.unit
    def test_already_paid_keeps_paid_at_unset(self):
        """Payment stamping only happens when the rule flips is_paid."""
        order = _order(is_delivered=True, is_paid=True)
        normalize_delivery(order, now=NOW)
        assert order.is_paid is True
        assert order.paid_at is None
        assert order.delivered_at == NOW

    @pytest.mark.unit
    def test_idempotent(self):
        order = _order(is_delivered=True, order_status="Cancelled")
        assert normalize_delivery(order, now=NOW) is True
        snapshot = (order.is_paid, order.paid_at, order.delivered_at, order.order_status)

        assert normalize_delivery(order, now=datetime(2030, 1, 1)) is False
        assert (order.is_paid, order.paid_at, order.delivered_at, order.order_status) == snapshot

    @pytest.mark.unit
    def test_consistent_order_unchanged(self):
        order = _order(
            is_delivered=True, is_paid=True, paid_at=EARLIER,
            delivered_at=EARLIER, order_status="Delivered",
        )
        assert normalize_delivery(order, now=NOW) is False


class TestChangeSet:
    """Tests for ChangeSet.from_update() classification."""

    @pytest.mark.unit
    def test_flat(self):
        update = {"is_delivered": True}
        cs = ChangeSet.from_update(update)
        assert cs.shape == ChangeSetShape.FLAT
        assert cs.fields is update
        assert cs.sets_delivered is True

    @pytest.mark.unit
    def test_nested(self):
        update = {"$set": {"is_delivered": True}}
        cs = ChangeSet.from_update(update)
        assert cs.shape == ChangeSetShape.NESTED
        assert cs.fields is update["$set"]
        assert cs.sets_delivered is True

    @pytest.mark.unit
    def test_truthy_non_bool_does_not_count(self):
        assert ChangeSet.from_update({"is_delivered": "yes"}).sets_delivered is False
        assert ChangeSet.from_update({"$set": {"is_delivered": 1}}).sets_delivered is False

    @pytest.mark.unit
    def test_false_does_not_count(self):
        assert ChangeSet.from_update({"is_delivered": False}).sets_delivered is False


class TestBeforeUpdate:
    """Tests for before_update() rewrites."""

    @pytest.mark.unit
    def test_flat_rewrite(self):
        update = {"is_delivered": True}
        result = before_update(update, now=NOW)

        assert result.fields is update
        assert result.shape == ChangeSetShape.FLAT
        assert update == {
            "is_delivered": True,
            "is_paid": True,
            "paid_at": NOW,
            "delivered_at": NOW,
            "order_status": "Delivered",
        }

    @pytest.mark.unit
    def test_nested_rewrite_overrides_status(self):
        update = {"$set": {"is_delivered": True, "order_status": "Shipped"}}
        before_update(update, now=NOW)

        assert update == {
            "$set": {
                "is_delivered": True,
                "order_status": "Delivered",
                "is_paid": True,
                "paid_at": NOW,
                "delivered_at": NOW,
            }
        }

    @pytest.mark.unit
    def test_accepts_classified_change_set(self):
        update = {"$set": {"is_delivered": True}}
        change_set = ChangeSet.from_update(update)

        result = before_update(change_set, now=NOW)

        assert result is change_set
        assert result.shape == ChangeSetShape.NESTED
        assert update["$set"]["is_paid"] is True
        assert update["$set"]["order_status"] == "Delivered"

    @pytest.mark.unit
    def test_supplied_timestamps_preserved(self):
        update = {"$set": {"is_delivered": True, "paid_at": EARLIER, "delivered_at": EARLIER}}
        before_update(update, now=NOW)
        assert update["$set"]["paid_at"] == EARLIER
        assert update["$set"]["delivered_at"] == EARLIER

    @pytest.mark.unit
    def test_explicit_delivered_status_kept(self):
        update = {"is_delivered": True, "order_status": "Delivered"}
        before_update(update, now=NOW)
        assert update["order_status"] == "Delivered"

    @pytest.mark.unit
    def test_is_paid_false_is_overridden(self):
        update = {"is_delivered": True, "is_paid": False}
        before_update(update, now=NOW)
        assert update["is_paid"] is True

    @pytest.mark.unit
    def test_no_op_when_not_delivering(self):
        update = {"items_price": 42}
        before_update(update, now=NOW)
        assert update == {"items_price": 42}

    @pytest.mark.unit
    def test_no_op_when_undelivering(self):
        update = {"$set": {"is_delivered": False, "order_status": "Shipped"}}
        before_update(update, now=NOW)
        assert update == {"$set": {"is_delivered": False, "order_status": "Shipped"}}

    @pytest.mark.unit
    def test_default_now_is_used(self):
        update = {"is_delivered": True}
        before_update(update)
        assert isinstance(update["paid_at"], datetime)
        assert update["paid_at"] == update["delivered_at"]


class TestBeforeCreate:
    """Tests for before_create() on new and existing orders."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_assigns_identifier(self, db_session):
        order = _order(shipping_state="Dhaka")
        await order_pipeline.before_create(db_session, order)
        assert order.custom_order_id == "DHA0001"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_normalizes_delivered_order(self, db_session):
        order = _order(shipping_city="Sylhet", is_delivered=True, order_status="Shipped")
        await order_pipeline.before_create(db_session, order)
        assert order.custom_order_id == "SYL0001"
        assert order.is_paid is True
        assert order.paid_at is not None
        assert order.delivered_at is not None
        assert order.order_status == "Delivered"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_preassigned_identifier_skips_allocator(self, db_session):
        order = _order(custom_order_id="DHA0042", shipping_state="Dhaka")
        with patch.object(order_pipeline.sequence_service, "allocate_for_order", AsyncMock()) as allocate:
            await order_pipeline.before_create(db_session, order)
        allocate.assert_not_called()
        assert order.custom_order_id == "DHA0042"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_persisted_order_skips_allocator(self, db_session):
        order = _order(custom_order_id="DHA0001", shipping_state="Dhaka")
        db_session.add(order)
        await db_session.flush()

        with patch.object(order_pipeline.sequence_service, "allocate_for_order", AsyncMock()) as allocate:
            order.is_delivered = True
            await order_pipeline.before_create(db_session, order)

        allocate.assert_not_called()
        assert order.custom_order_id == "DHA0001"
        assert order.order_status == "Delivered"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_allocation_failure_propagates(self, db_session):
        order = _order(shipping_state="Dhaka", is_delivered=True)
        failing = AsyncMock(side_effect=AllocationError("DHA"))
        with patch.object(order_pipeline.sequence_service, "allocate_for_order", failing):
            with pytest.raises(AllocationError):
                await order_pipeline.before_create(db_session, order)

        assert order.custom_order_id is None
        # The write was aborted before the delivery rule ran
        assert order.order_status == "Processing"


class TestCheckIdentifier:
    """Tests for check_identifier()."""

    @pytest.mark.unit
    def test_new_order_without_identifier_passes(self):
        check_identifier(_order(), is_new=True)

    @pytest.mark.unit
    def test_persisted_order_with_identifier_passes(self):
        check_identifier(_order(custom_order_id="DHA0001"), is_new=False)

    @pytest.mark.unit
    @pytest.mark.parametrize("value", [None, ""])
    def test_persisted_order_without_identifier_rejected(self, value):
        with pytest.raises(ValidationError) as exc_info:
            check_identifier(_order(custom_order_id=value), is_new=False)
        assert "custom_order_id" in exc_info.value.message

    @pytest.mark.unit
    def test_is_new_order_tracks_session_state(self):
        order = _order()
        assert order_pipeline.is_new_order(order) is True
