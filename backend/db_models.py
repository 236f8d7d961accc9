"""
SQLAlchemy ORM models for the Order Desk backend.

Tables:
    orders           — customer orders with shipping address, payment and delivery state
    order_items      — line items of an order
    region_counters  — per-region monotonic sequence backing order identifiers
"""
from datetime import datetime

from sqlalchemy import (
    Column, Integer, BigInteger, String, Float, Boolean, DateTime, Text, ForeignKey,
    Index,
)
from sqlalchemy.orm import relationship

from database import Base
from domain.enums import OrderStatus


class Order(Base):
    """
    A customer order.

    custom_order_id is the human-readable identifier (e.g. DHA0007). It is
    assigned once by the creation pipeline and never rewritten.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    custom_order_id = Column(String(32), unique=True, nullable=True, index=True)
    user_id = Column(String(64), nullable=False, index=True)

    # Shipping address
    shipping_name = Column(String(200), nullable=True)
    shipping_email = Column(String(200), nullable=True)
    shipping_phone = Column(String(40), nullable=True)
    shipping_address = Column(Text, nullable=True)
    shipping_street = Column(Text, nullable=True)  # alternative field name
    shipping_upazilla = Column(String(100), nullable=True)
    shipping_city = Column(String(100), nullable=True)
    shipping_division = Column(String(100), nullable=True)
    shipping_state = Column(String(100), nullable=True)
    shipping_postal_code = Column(String(20), nullable=True)
    shipping_zip_code = Column(String(20), nullable=True)  # alternative field name
    shipping_country = Column(String(100), nullable=True)

    payment_method = Column(String(10), nullable=False)  # "cash" | "card"
    payment_result = Column(Text, nullable=True)  # JSON: {id, status, update_time, email_address}

    items_price = Column(Float, nullable=False, default=0.0)
    shipping_price = Column(Float, nullable=False, default=0.0)
    total_price = Column(Float, nullable=False, default=0.0)

    is_paid = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime, nullable=True)
    is_delivered = Column(Boolean, nullable=False, default=False)
    delivered_at = Column(DateTime, nullable=True)
    order_status = Column(String(20), nullable=False, default=OrderStatus.PROCESSING.value, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    items = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        # For customer order history: filter by user_id, order by created_at DESC
        Index("ix_orders_user_created", "user_id", "created_at"),
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String(64), nullable=False, index=True)
    name = Column(String(200), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    image = Column(Text, nullable=True)
    price = Column(Float, nullable=False, default=0.0)

    order = relationship("Order", back_populates="items")


class RegionCounter(Base):
    """
    Persisted sequence for one region key (e.g. "DHA").

    Created lazily by the first allocation in the region and never deleted.
    Only services/sequence_service.py writes to this table, always through
    a single atomic upsert.
    """
    __tablename__ = "region_counters"

    region_key = Column(String(16), primary_key=True)
    sequence_value = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
