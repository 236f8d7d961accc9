"""
Sequence service — allocates human-readable order identifiers.

An identifier is a region prefix plus a zero-padded per-region sequence:

    Dhaka, 7th order in the region  →  DHA0007
    Dhaka, 10000th order            →  DHA10000   (width is a minimum)

The region prefix comes from the shipping address: state, then division,
then city, then settings.region_fallback. First three characters, uppercased.

Every allocation is one INSERT ... ON CONFLICT DO UPDATE ... RETURNING
statement against region_counters, so the database row is the only
serialization point. Nothing is cached in-process.
"""
import logging
from collections.abc import Mapping
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db_models import RegionCounter
from domain.errors import AllocationError

logger = logging.getLogger(__name__)

# Address fields tried in order when deriving the region key
REGION_FIELDS = ("state", "division", "city")

REGION_PREFIX_LENGTH = 3


def _address_field(address, field: str) -> str | None:
    if address is None:
        return None
    if isinstance(address, Mapping):
        value = address.get(field)
    else:
        # ORM orders keep the address flattened into shipping_* columns
        value = getattr(address, f"shipping_{field}", None) or getattr(address, field, None)
    if not isinstance(value, str) or not value.strip():
        return None
    return value.strip()


def derive_region_key(address) -> str:
    """
    Derive the region key from a shipping address.

    Args:
        address: Mapping with state/division/city keys, a ShippingAddress
            model, or an Order (read through its shipping_* columns)

    Returns:
        Up to three uppercase characters. Short values ("K") are kept as-is.
    """
    resolved = None
    for field in REGION_FIELDS:
        resolved = _address_field(address, field)
        if resolved:
            break
    if not resolved:
        resolved = settings.region_fallback
    return resolved[:REGION_PREFIX_LENGTH].upper()


def format_identifier(region_key: str, sequence: int, width: int | None = None) -> str:
    """Render region key + sequence, zero-padded to at least `width` digits."""
    width = settings.order_sequence_width if width is None else width
    return f"{region_key}{str(sequence).zfill(width)}"


def _insert_for(db: AsyncSession):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise AllocationError(
        "-",
        message=f"Atomic counter upsert is not supported on dialect '{dialect}'",
    )


async def increment_and_fetch(db: AsyncSession, region_key: str) -> int:
    """
    Atomically bump the counter for `region_key` and return the new value.

    Creates the counter at 1 when the region has never allocated before.
    """
    insert = _insert_for(db)
    now = datetime.utcnow()
    stmt = (
        insert(RegionCounter)
        .values(region_key=region_key, sequence_value=1, updated_at=now)
        .on_conflict_do_update(
            index_elements=[RegionCounter.region_key],
            set_={
                "sequence_value": RegionCounter.sequence_value + 1,
                "updated_at": now,
            },
        )
        .returning(RegionCounter.sequence_value)
    )
    res = await db.execute(stmt)
    return res.scalar_one()


async def allocate(db: AsyncSession, region_key: str) -> str:
    """
    Allocate the next identifier in `region_key`.

    Raises:
        AllocationError: the counter store could not complete the increment
    """
    try:
        sequence = await increment_and_fetch(db, region_key)
    except SQLAlchemyError as e:
        logger.error(f"Counter increment failed for region {region_key}: {e}")
        raise AllocationError(region_key, details={"reason": str(e)}) from e

    identifier = format_identifier(region_key, sequence)
    logger.info(f"Allocated order identifier {identifier}")
    return identifier


async def allocate_for_order(db: AsyncSession, order) -> str:
    return await allocate(db, derive_region_key(order))


async def peek_sequence(db: AsyncSession, region_key: str) -> int:
    """Current counter value for a region (0 if it never allocated). Read-only."""
    res = await db.execute(
        select(RegionCounter.sequence_value).where(RegionCounter.region_key == region_key)
    )
    value = res.scalar_one_or_none()
    return value or 0
