from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from snapforge.models.image import Image, ImageTag, ImageTagAssignment
from snapforge.services.errors import ConflictError, NotFoundError, ValidationError

MAX_TAG_NAME_LENGTH = 64
_COLOR_RE = re.compile(r"^#?[0-9a-fA-F]{6}$")


def tag_to_dict(tag: ImageTag, image_count: Optional[int] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": tag.TagID,
        "galleryId": tag.GalleryID,
        "name": tag.Name,
        "color": tag.Color,
    }
    if image_count is not None:
        data["imageCount"] = image_count
    return data


def _clean_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Tag name is required")
    name = name.strip()
    if len(name) > MAX_TAG_NAME_LENGTH:
        raise ValidationError(f"Tag name must be at most {MAX_TAG_NAME_LENGTH} characters")
    return name


def _clean_color(color: Any) -> Optional[str]:
    if color is None or color == "":
        return None
    if not isinstance(color, str) or not _COLOR_RE.match(color.strip()):
        raise ValidationError("Color must be a hex value like #aabbcc")
    color = color.strip()
    return color if color.startswith("#") else f"#{color}"


def _ensure_unique_name(db: Session, gallery_id: str, name: str, exclude_id: Optional[int] = None) -> None:
    query = db.query(ImageTag).filter(
        ImageTag.GalleryID == gallery_id, func.lower(ImageTag.Name) == name.lower()
    )
    if exclude_id is not None:
        query = query.filter(ImageTag.TagID != exclude_id)
    if query.first() is not None:
        raise ConflictError("A tag with this name already exists")


def create_tag(db: Session, gallery_id: str, name: Any, color: Any = None) -> ImageTag:
    name = _clean_name(name)
    _ensure_unique_name(db, gallery_id, name)
    tag = ImageTag(GalleryID=gallery_id, Name=name, Color=_clean_color(color))
    db.add(tag)
    db.commit()
    db.refresh(tag)
    return tag


def get_tag(db: Session, gallery_id: str, tag_id: int) -> ImageTag:
    tag = db.get(ImageTag, tag_id)
    if tag is None or tag.GalleryID != gallery_id:
        raise NotFoundError("Tag not found")
    return tag


def list_gallery_tags(db: Session, gallery_id: str) -> List[Dict[str, Any]]:
    rows = (
        db.query(ImageTag, func.count(ImageTagAssignment.ImageID))
        .outerjoin(ImageTagAssignment, ImageTagAssignment.TagID == ImageTag.TagID)
        .filter(ImageTag.GalleryID == gallery_id)
        .group_by(ImageTag.TagID)
        .order_by(ImageTag.Name)
        .all()
    )
    return [tag_to_dict(tag, int(count)) for tag, count in rows]


def update_tag(db: Session, tag: ImageTag, payload: Dict[str, Any]) -> ImageTag:
    if "name" not in payload and "color" not in payload:
        raise ValidationError("Nothing to update")
    if "name" in payload:
        name = _clean_name(payload["name"])
        _ensure_unique_name(db, tag.GalleryID, name, exclude_id=tag.TagID)
        tag.Name = name
    if "color" in payload:
        tag.Color = _clean_color(payload["color"])
    db.commit()
    db.refresh(tag)
    return tag


def delete_tag(db: Session, tag: ImageTag) -> None:
    db.delete(tag)
    db.commit()


def get_image_tags(db: Session, image_id: str) -> List[ImageTag]:
    return (
        db.query(ImageTag)
        .join(ImageTagAssignment, ImageTagAssignment.TagID == ImageTag.TagID)
        .filter(ImageTagAssignment.ImageID == image_id)
        .order_by(ImageTag.Name)
        .all()
    )


def set_image_tags(db: Session, image: Image, tag_ids: Iterable[Any]) -> List[ImageTag]:
    """Replace the image's tags; every tag must belong to the image's gallery."""
    if isinstance(tag_ids, (str, bytes)) or not isinstance(tag_ids, (list, tuple)):
        raise ValidationError("tagIds must be an array")
    wanted = set()
    for raw in tag_ids:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ValidationError("tagIds must contain tag ids")
        wanted.add(raw)

    if wanted:
        found = {
            t.TagID
            for t in db.query(ImageTag).filter(
                ImageTag.TagID.in_(wanted), ImageTag.GalleryID == image.GalleryID
            )
        }
        if found != wanted:
            raise ValidationError("Unknown tag for this gallery")

    db.query(ImageTagAssignment).filter(ImageTagAssignment.ImageID == image.ImageID).delete()
    for tag_id in sorted(wanted):
        db.add(ImageTagAssignment(ImageID=image.ImageID, TagID=tag_id))
    db.commit()
    return get_image_tags(db, image.ImageID)
