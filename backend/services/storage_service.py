"""
Storage service — pins uploaded product and avatar images to Pinata (IPFS).

The upload routes only see this module's interface:

    upload_image(bytes, filename, mimetype, pin_name)  → {public_id, url, size}
    unpin(public_id)                                   → bool
    get_pin(public_id)                                 → dict | None

public_id is the IPFS CID; url is the gateway URL for it.
"""
import json
import logging
from typing import Optional

import httpx

from config import settings
from domain.errors import StorageError

logger = logging.getLogger(__name__)

PINATA_BASE = "https://api.pinata.cloud"


def _get_headers() -> dict:
    """Build Pinata authentication headers."""
    if not settings.pinata_api_key or not settings.pinata_secret:
        raise StorageError(
            "Pinata API key and secret must be set in .env "
            "(PINATA_API_KEY, PINATA_SECRET)"
        )
    return {
        "pinata_api_key": settings.pinata_api_key,
        "pinata_secret_api_key": settings.pinata_secret,
    }


def image_format(filename: str | None) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].lower()


def is_allowed_image(filename: str | None) -> bool:
    """Check the file extension against settings.upload_allowed_formats."""
    return image_format(filename) in settings.upload_allowed_formats_list


def gateway_url(cid: str) -> str:
    return f"{settings.pinata_gateway}/{cid}"


async def upload_image(
    file_bytes: bytes,
    filename: str,
    mimetype: str = "image/jpeg",
    pin_name: Optional[str] = None,
) -> dict:
    """
    Upload an image file to Pinata IPFS.

    Args:
        file_bytes: Raw image bytes
        filename: Original filename (e.g., 'shirt.jpg')
        mimetype: MIME type (default: 'image/jpeg')
        pin_name: Optional Pinata pin name for the dashboard

    Returns:
        dict: {public_id, url, size}
    """
    headers = _get_headers()

    pinata_options = json.dumps({"cidVersion": 1})
    pinata_metadata = json.dumps({
        "name": pin_name or filename,
    })

    try:
        async with httpx.AsyncClient(timeout=60.0) as client:
            response = await client.post(
                f"{PINATA_BASE}/pinning/pinFileToIPFS",
                headers=headers,
                files={"file": (filename, file_bytes, mimetype)},
                data={
                    "pinataOptions": pinata_options,
                    "pinataMetadata": pinata_metadata,
                },
            )
            response.raise_for_status()
            result = response.json()
    except httpx.HTTPError as e:
        logger.error(f"Pinata upload failed for {filename}: {e}")
        raise StorageError(f"Image upload failed: {filename}") from e

    cid = result["IpfsHash"]
    size = result.get("PinSize", 0)

    logger.info(f"Image pinned to IPFS: {cid} ({size} bytes)")

    return {
        "public_id": cid,
        "url": gateway_url(cid),
        "size": size,
    }


async def unpin(public_id: str) -> bool:
    """
    Unpin an image from Pinata.

    Returns:
        True if the pin was removed, False if Pinata did not know it
    """
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.delete(
                f"{PINATA_BASE}/pinning/unpin/{public_id}",
                headers=_get_headers(),
            )
    except httpx.HTTPError as e:
        logger.error(f"Failed to unpin {public_id}: {e}")
        raise StorageError(f"Error deleting image: {public_id}") from e

    if response.status_code == 200:
        logger.info(f"Image unpinned: {public_id}")
        return True
    logger.warning(f"Unpin {public_id} returned HTTP {response.status_code}")
    return False


async def get_pin(public_id: str) -> dict | None:
    """
    Look up pin details for an image.

    Returns:
        dict: {public_id, url, name, size, created_at}, or None if not pinned
    """
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(
                f"{PINATA_BASE}/data/pinList",
                headers=_get_headers(),
                params={"hashContains": public_id, "status": "pinned"},
            )
            response.raise_for_status()
            rows = response.json().get("rows", [])
    except httpx.HTTPError as e:
        logger.error(f"Pin lookup failed for {public_id}: {e}")
        raise StorageError(f"Error retrieving image details: {public_id}") from e

    for row in rows:
        if row.get("ipfs_pin_hash") == public_id:
            return {
                "public_id": public_id,
                "url": gateway_url(public_id),
                "name": (row.get("metadata") or {}).get("name"),
                "size": row.get("size", 0),
                "created_at": row.get("date_pinned"),
            }
    return None
