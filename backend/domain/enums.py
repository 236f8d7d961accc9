"""
Domain enums (minimal set used for clarity in services).
"""

from enum import Enum


class OrderStatus(str, Enum):
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"


class ChangeSetShape(str, Enum):
    """How a partial update carries its fields: flat, or under "$set"."""
    FLAT = "flat"
    NESTED = "nested"
