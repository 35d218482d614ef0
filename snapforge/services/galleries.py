from __future__ import annotations

import logging
import secrets
import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from snapforge.models.gallery import Gallery
from snapforge.models.image import Image
from snapforge.models.user import User, utc_now_naive_utc
from snapforge.services.errors import NotFoundError, QuotaExceededError, ValidationError
from snapforge.services.image_options import (
    CHROMA_SUBSAMPLING_CHOICES,
    OUTPUT_FORMAT_CHOICES,
    RESIZE_METHODS,
    avif_supported,
)
from snapforge.services.storage import BlobStorage

logger = logging.getLogger(__name__)
audit = logging.getLogger("audit")

MAX_NAME_LENGTH = 255


def generate_access_token() -> str:
    return secrets.token_urlsafe(24)


def _int_range(low: int, high: int) -> Callable[[str, Any], int]:
    def check(name: str, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{name} must be an integer")
        if not low <= value <= high:
            raise ValidationError(f"{name} must be between {low} and {high}")
        return value

    return check


def _choice(choices: Tuple[str, ...]) -> Callable[[str, Any], str]:
    def check(name: str, value: Any) -> str:
        if not isinstance(value, str) or value not in choices:
            raise ValidationError(f"{name} must be one of: {', '.join(choices)}")
        return value

    return check


def _boolean(name: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{name} must be true or false")
    return value


# API field -> (column attribute, validator); null always resets to the default
SETTINGS_FIELDS: Dict[str, Tuple[str, Callable[[str, Any], Any]]] = {
    "thumbSize": ("ThumbSize", _int_range(16, 1024)),
    "thumbQuality": ("ThumbQuality", _int_range(1, 100)),
    "outputFormat": ("OutputFormat", _choice(OUTPUT_FORMAT_CHOICES)),
    "resizeMethod": ("ResizeMethod", _choice(RESIZE_METHODS)),
    "jpegQuality": ("JpegQuality", _int_range(1, 100)),
    "webpQuality": ("WebpQuality", _int_range(1, 100)),
    "avifQuality": ("AvifQuality", _int_range(1, 100)),
    "pngCompressionLevel": ("PngCompressionLevel", _int_range(0, 9)),
    "effort": ("Effort", _int_range(0, 9)),
    "chromaSubsampling": ("ChromaSubsampling", _choice(CHROMA_SUBSAMPLING_CHOICES)),
    "stripMetadata": ("StripMetadata", _boolean),
    "autoOrient": ("AutoOrient", _boolean),
}


def gallery_settings_dict(gallery: Gallery) -> Dict[str, Any]:
    return {key: getattr(gallery, column) for key, (column, _) in SETTINGS_FIELDS.items()}


def gallery_to_dict(
    gallery: Gallery, permissions=None, include_token: bool = True
) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": gallery.GalleryID,
        "name": gallery.Name,
        "ownerId": gallery.UserID,
        "settings": gallery_settings_dict(gallery),
        "createdAt": gallery.CreatedAt.isoformat() if gallery.CreatedAt else None,
        "updatedAt": gallery.UpdatedAt.isoformat() if gallery.UpdatedAt else None,
    }
    if include_token:
        data["accessToken"] = gallery.AccessToken
    if permissions is not None:
        data["permissions"] = permissions.as_dict()
    return data


def _clean_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Gallery name is required")
    name = name.strip()
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Gallery name must be at most {MAX_NAME_LENGTH} characters")
    return name


def count_owned_galleries(db: Session, user_id: int) -> int:
    return int(
        db.query(func.count(Gallery.GalleryID)).filter(Gallery.UserID == user_id).scalar() or 0
    )


def create_gallery(db: Session, user_id: int, name: Any) -> Gallery:
    name = _clean_name(name)
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    if count_owned_galleries(db, user_id) >= int(user.MaxGalleries or 0):
        raise QuotaExceededError(f"Maximum of {user.MaxGalleries} galleries reached")

    gallery = Gallery(
        GalleryID=uuid.uuid4().hex,
        UserID=user_id,
        Name=name,
        AccessToken=generate_access_token(),
    )
    db.add(gallery)
    db.commit()
    db.refresh(gallery)
    audit.info("gallery.created", extra={"user_id": user_id, "gallery_id": gallery.GalleryID})
    return gallery


def get_gallery(db: Session, gallery_id: str) -> Gallery:
    gallery = db.get(Gallery, gallery_id)
    if gallery is None:
        raise NotFoundError("Gallery not found")
    return gallery


def list_owned_galleries(db: Session, user_id: int) -> List[Gallery]:
    return (
        db.query(Gallery)
        .filter(Gallery.UserID == user_id)
        .order_by(Gallery.CreatedAt.desc())
        .all()
    )


def update_gallery_settings(db: Session, gallery: Gallery, payload: Dict[str, Any]) -> Gallery:
    """Validate every present field first, then apply them together."""
    if not isinstance(payload, dict):
        raise ValidationError("Settings must be an object")
    unknown = sorted(set(payload) - set(SETTINGS_FIELDS))
    if unknown:
        raise ValidationError(f"Unknown setting: {unknown[0]}")

    changes: Dict[str, Optional[Any]] = {}
    for key, value in payload.items():
        column, check = SETTINGS_FIELDS[key]
        changes[column] = None if value is None else check(key, value)
    if changes.get("OutputFormat") == "avif" and not avif_supported():
        raise ValidationError("AVIF output is not available on this server")

    for column, value in changes.items():
        setattr(gallery, column, value)
    gallery.UpdatedAt = utc_now_naive_utc()
    db.commit()
    db.refresh(gallery)
    return gallery


def rename_gallery(db: Session, gallery: Gallery, name: Any) -> Gallery:
    gallery.Name = _clean_name(name)
    gallery.UpdatedAt = utc_now_naive_utc()
    db.commit()
    db.refresh(gallery)
    return gallery


def regenerate_access_token(db: Session, gallery: Gallery) -> str:
    """Replace the access token; the previous one stops working immediately."""
    gallery.AccessToken = generate_access_token()
    gallery.UpdatedAt = utc_now_naive_utc()
    db.commit()
    audit.info("gallery.token_regenerated", extra={"gallery_id": gallery.GalleryID})
    return gallery.AccessToken


def delete_gallery(db: Session, storage: BlobStorage, gallery: Gallery) -> None:
    """Remove all blobs under the gallery prefix, then the gallery and its rows."""
    gallery_id = gallery.GalleryID
    storage.delete_prefix(gallery_id)
    db.delete(gallery)
    db.commit()
    audit.info("gallery.deleted", extra={"gallery_id": gallery_id})


def get_gallery_stats(db: Session, gallery_id: str) -> Dict[str, int]:
    count, total = (
        db.query(func.count(Image.ImageID), func.coalesce(func.sum(Image.SizeBytes), 0))
        .filter(Image.GalleryID == gallery_id)
        .one()
    )
    return {"imageCount": int(count or 0), "totalSize": int(total or 0)}
