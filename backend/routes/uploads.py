"""
Upload endpoints — product and avatar images pinned through storage_service.

Response shape: {success, url, public_id} (lists for multi-file uploads).
"""
import logging

from fastapi import APIRouter, Depends, File, UploadFile

from config import settings
from domain.errors import NotFoundError, ValidationError
from domain.constants import AVATAR_PIN_PREFIX, PRODUCT_PIN_PREFIX
from domain.responses import success_response
from middleware.rate_limit import rate_limit
from models import MultiUploadResponse, UploadResponse
from services import storage_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/upload", tags=["uploads"])


async def _pin(upload: UploadFile, prefix: str) -> dict:
    if not storage_service.is_allowed_image(upload.filename):
        raise ValidationError(
            f"Unsupported image format. Allowed: {', '.join(settings.upload_allowed_formats_list)}",
            field="image",
        )
    data = await upload.read()
    if not data:
        raise ValidationError("Empty image file", field="image")
    return await storage_service.upload_image(
        data,
        upload.filename,
        mimetype=upload.content_type or "image/jpeg",
        pin_name=f"{prefix}{upload.filename}",
    )


@router.post("/product", dependencies=[Depends(rate_limit(20, 60))])
async def upload_product_image(image: UploadFile | None = File(None)):
    if image is None:
        raise ValidationError("No image file provided")
    pinned = await _pin(image, PRODUCT_PIN_PREFIX)
    return UploadResponse(url=pinned["url"], public_id=pinned["public_id"])


@router.post("/product/multiple", dependencies=[Depends(rate_limit(10, 60))])
async def upload_product_images(images: list[UploadFile] | None = File(None)):
    if not images:
        raise ValidationError("No image files provided")
    if len(images) > settings.upload_max_files:
        raise ValidationError(
            f"Too many files: at most {settings.upload_max_files} images per upload",
            field="images",
        )
    pinned = [await _pin(image, PRODUCT_PIN_PREFIX) for image in images]
    return MultiUploadResponse(
        url=[p["url"] for p in pinned],
        public_id=[p["public_id"] for p in pinned],
    )


@router.post("/avatar", dependencies=[Depends(rate_limit(10, 60))])
async def upload_avatar(avatar: UploadFile | None = File(None)):
    if avatar is None:
        raise ValidationError("No avatar image file provided")
    pinned = await _pin(avatar, AVATAR_PIN_PREFIX)
    return UploadResponse(url=pinned["url"], public_id=pinned["public_id"])


@router.delete("/image/{public_id}")
async def delete_image(public_id: str):
    removed = await storage_service.unpin(public_id)
    if not removed:
        raise NotFoundError("Image", public_id, details={"public_id": public_id})
    return success_response(data={"public_id": public_id, "message": "Image deleted successfully"})


@router.get("/image/{public_id}")
async def get_image(public_id: str):
    details = await storage_service.get_pin(public_id)
    if not details:
        raise NotFoundError("Image", public_id)
    return success_response(data=details)
