from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from snapforge.core.settings import settings
from snapforge.models.gallery import Gallery
from snapforge.models.image import Image
from snapforge.services import image_processing
from snapforge.services.errors import (
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
)
from snapforge.services.image_options import (
    ImageOptions,
    gallery_overrides,
    has_encode_overrides,
    needs_transform,
    resolve_options,
    system_defaults,
)
from snapforge.services.mime_utils import (
    extension_for_mime,
    is_allowed_mime,
    mime_for_pil_format,
    normalize_mime,
)
from snapforge.services.storage import BlobStorage

logger = logging.getLogger(__name__)
audit = logging.getLogger("audit")

MAX_PER_PAGE = 100


@dataclass(frozen=True)
class ImageBytes:
    data: bytes
    mime_type: str


def image_to_dict(image: Image) -> Dict[str, Any]:
    return {
        "id": image.ImageID,
        "galleryId": image.GalleryID,
        "filename": image.FileName,
        "originalFilename": image.OriginalFileName,
        "mimeType": image.MimeType,
        "sizeBytes": image.SizeBytes,
        "width": image.Width,
        "height": image.Height,
        "latitude": image.Latitude,
        "longitude": image.Longitude,
        "altitude": image.Altitude,
        "locationName": image.LocationName,
        "takenAt": image.TakenAt.isoformat() if image.TakenAt else None,
        "createdAt": image.CreatedAt.isoformat() if image.CreatedAt else None,
        "urls": {
            "original": f"/i/{image.ImageID}",
            "thumb": f"/i/{image.ImageID}?thumb",
        },
    }


def upload_image(
    db: Session,
    storage: BlobStorage,
    gallery: Gallery,
    filename: Optional[str],
    content_type: Optional[str],
    data: bytes,
    image_settings,
) -> Image:
    """Validate, optionally re-encode and persist one uploaded image.

    The blob and the row are written together: if the row cannot be stored
    the blob is removed again.
    """
    if not is_allowed_mime(content_type, settings.ALLOWED_UPLOAD_MIME_TYPES):
        raise ValidationError("File type not allowed")
    max_bytes = image_settings.max_upload_bytes
    if len(data) > max_bytes:
        raise ValidationError(f"File too large (max {image_settings.max_upload_size_mb}MB)")
    if not data:
        raise ValidationError("Empty file")

    width, height, pil_format = image_processing.probe(data)
    mime_type = mime_for_pil_format(pil_format) if pil_format else normalize_mime(content_type)
    if not is_allowed_mime(mime_type, settings.ALLOWED_UPLOAD_MIME_TYPES):
        raise ValidationError("File type not allowed")

    if has_encode_overrides(gallery):
        options = resolve_options(
            system_defaults(image_settings), gallery_overrides(gallery), ImageOptions()
        )
        rendered = image_processing.render(data, options)
        data, width, height, mime_type = (
            rendered.data,
            rendered.width,
            rendered.height,
            rendered.mime_type,
        )

    image_id = uuid.uuid4().hex
    stored_name = f"{image_id}.{extension_for_mime(mime_type)}"
    storage_path = f"{gallery.GalleryID}/{stored_name}"

    storage.save(storage_path, data, content_type=mime_type)
    image = Image(
        ImageID=image_id,
        GalleryID=gallery.GalleryID,
        FileName=stored_name,
        OriginalFileName=(filename or stored_name)[:255],
        MimeType=mime_type,
        SizeBytes=len(data),
        Width=width,
        Height=height,
        StoragePath=storage_path,
    )
    try:
        db.add(image)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to record upload; removing blob %s", storage_path)
        storage.delete(storage_path)
        raise
    db.refresh(image)
    audit.info(
        "image.uploaded",
        extra={"gallery_id": gallery.GalleryID, "image_id": image_id, "size": len(data)},
    )
    return image


def get_image(db: Session, image_id: str) -> Optional[Image]:
    return db.get(Image, image_id)


def require_image(db: Session, image_id: str, gallery_id: Optional[str] = None) -> Image:
    """Load an image, optionally requiring it to belong to ``gallery_id``."""
    image = db.get(Image, image_id)
    if image is None:
        raise NotFoundError("Image not found")
    if gallery_id is not None and image.GalleryID != gallery_id:
        raise PermissionDeniedError()
    return image


def get_image_bytes(
    db: Session,
    storage: BlobStorage,
    image: Image,
    request_layer: ImageOptions,
    image_settings,
) -> ImageBytes:
    data = storage.read(image.StoragePath)
    if not needs_transform(request_layer):
        return ImageBytes(data=data, mime_type=image.MimeType)

    gallery = db.get(Gallery, image.GalleryID)
    options = resolve_options(
        system_defaults(image_settings), gallery_overrides(gallery), request_layer
    )
    rendered = image_processing.render(data, options)
    return ImageBytes(data=rendered.data, mime_type=rendered.mime_type)


def delete_image(db: Session, storage: BlobStorage, image: Image) -> None:
    """Remove the blob, then the row.

    A missing blob counts as deleted. Any other storage failure propagates and
    the row is kept.
    """
    storage.delete(image.StoragePath)
    image_id, gallery_id = image.ImageID, image.GalleryID
    db.delete(image)
    db.commit()
    audit.info("image.deleted", extra={"gallery_id": gallery_id, "image_id": image_id})


def delete_images(db: Session, storage: BlobStorage, images: Iterable[Image]) -> List[str]:
    """Delete each image independently; returns the ids that failed."""
    failed: List[str] = []
    for image in images:
        try:
            delete_image(db, storage, image)
        except StorageError:
            failed.append(image.ImageID)
    return failed


def _coerce_float(value: Any, name: str, low: Optional[float] = None, high: Optional[float] = None):
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValidationError(f"Invalid {name}")
    try:
        number = float(value)
    except ValueError:
        raise ValidationError(f"Invalid {name}") from None
    if low is not None and not low <= number <= high:
        raise ValidationError(f"{name} must be between {low:g} and {high:g}")
    return number


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValidationError("Invalid takenAt")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError("Invalid takenAt; expected an ISO 8601 timestamp") from None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def update_image_metadata(db: Session, image: Image, payload: Dict[str, Any]) -> Image:
    """Apply location / capture-time fields present in ``payload``."""
    if "latitude" in payload:
        image.Latitude = _coerce_float(payload["latitude"], "latitude", -90, 90)
    if "longitude" in payload:
        image.Longitude = _coerce_float(payload["longitude"], "longitude", -180, 180)
    if "altitude" in payload:
        image.Altitude = _coerce_float(payload["altitude"], "altitude")
    if "locationName" in payload:
        name = payload["locationName"]
        if name is not None and not isinstance(name, str):
            raise ValidationError("Invalid locationName")
        image.LocationName = (name or "").strip()[:255] or None
    if "takenAt" in payload:
        image.TakenAt = _parse_timestamp(payload["takenAt"])
    db.commit()
    db.refresh(image)
    return image


def list_gallery_images(
    db: Session, gallery_id: str, page: int = 1, per_page: int = 50
) -> Dict[str, Any]:
    page = max(1, int(page or 1))
    per_page = min(MAX_PER_PAGE, max(1, int(per_page or 50)))
    total = db.query(func.count(Image.ImageID)).filter(Image.GalleryID == gallery_id).scalar() or 0
    rows = (
        db.query(Image)
        .filter(Image.GalleryID == gallery_id)
        .order_by(Image.CreatedAt.desc(), Image.ImageID)
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "images": [image_to_dict(i) for i in rows],
        "pagination": {
            "page": page,
            "perPage": per_page,
            "total": int(total),
            "totalPages": (int(total) + per_page - 1) // per_page,
        },
    }
