"""
Domain constants used across services/routers.
"""

# Partial-update operator wrapping the fields to set
SET_OPERATOR = "$set"

# Order columns a partial update may never write
IMMUTABLE_ORDER_FIELDS = frozenset({"id", "custom_order_id", "created_at"})

# Avatar uploads land under their own pin name prefix
AVATAR_PIN_PREFIX = "avatar_"
PRODUCT_PIN_PREFIX = "product_"
