"""Programmatic image API.

Authenticated with ``Authorization: Bearer <gallery access token>``. The
metadata and tag endpoints also accept a session cookie, in which case the
caller's gallery role decides.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, File, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from db import get_db
from snapforge.core.dependencies import get_api_gallery, get_current_user, get_storage
from snapforge.models.gallery import Gallery
from snapforge.models.image import Image
from snapforge.services import images as image_service
from snapforge.services import tags as tag_service
from snapforge.services.api_auth import authenticate_api_request
from snapforge.services.errors import AuthenticationError, NotFoundError, ValidationError
from snapforge.services.permissions import require_permission
from snapforge.services.settings_store import get_image_settings
from snapforge.services.storage import BlobStorage

router = APIRouter(prefix="/api/images")


class BulkDeleteBody(BaseModel):
    ids: List[str]


class ImageTagsBody(BaseModel):
    tagIds: List[Any]


def _image_for_request(request: Request, db: Session, image_id: str, flag: str) -> Image:
    authorization = request.headers.get("Authorization")
    if authorization is not None:
        gallery = authenticate_api_request(db, authorization)
        return image_service.require_image(db, image_id, gallery.GalleryID)
    user = get_current_user(request)
    if user is None:
        raise AuthenticationError()
    image = image_service.require_image(db, image_id)
    try:
        require_permission(db, user.id, image.GalleryID, flag)
    except NotFoundError:
        # The image exists but its gallery is not visible to this user
        raise NotFoundError("Image not found") from None
    return image


@router.get("")
def list_images(
    page: int = 1,
    perPage: int = 50,
    db: Session = Depends(get_db),
    gallery: Gallery = Depends(get_api_gallery),
):
    return image_service.list_gallery_images(db, gallery.GalleryID, page, perPage)


@router.delete("", status_code=204)
def delete_images(
    body: BulkDeleteBody,
    db: Session = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
    gallery: Gallery = Depends(get_api_gallery),
):
    if not body.ids:
        raise ValidationError("ids array required")
    images = []
    for image_id in dict.fromkeys(body.ids):
        image = image_service.get_image(db, image_id)
        if image is None:
            continue
        # Checked for every id before anything is deleted
        images.append(image_service.require_image(db, image_id, gallery.GalleryID))
    failed = image_service.delete_images(db, storage, images)
    if failed:
        return JSONResponse(
            {"error": "Some images could not be deleted", "failed": failed}, status_code=500
        )
    return Response(status_code=204)


@router.post("/upload", status_code=201)
async def upload_image(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
    gallery: Gallery = Depends(get_api_gallery),
):
    image_settings = await run_in_threadpool(get_image_settings, db)
    data = await file.read(image_settings.max_upload_bytes + 1)
    image = await run_in_threadpool(
        image_service.upload_image,
        db,
        storage,
        gallery,
        file.filename,
        file.content_type,
        data,
        image_settings,
    )
    return {"image": image_service.image_to_dict(image)}


@router.get("/{image_id}")
def get_image(
    image_id: str, db: Session = Depends(get_db), gallery: Gallery = Depends(get_api_gallery)
):
    image = image_service.require_image(db, image_id, gallery.GalleryID)
    return image_service.image_to_dict(image)


@router.delete("/{image_id}", status_code=204)
def delete_image(
    image_id: str,
    db: Session = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
    gallery: Gallery = Depends(get_api_gallery),
):
    image = image_service.require_image(db, image_id, gallery.GalleryID)
    image_service.delete_image(db, storage, image)
    return Response(status_code=204)


@router.patch("/{image_id}/metadata")
def update_metadata(
    image_id: str,
    request: Request,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
):
    image = _image_for_request(request, db, image_id, "can_upload")
    image = image_service.update_image_metadata(db, image, payload)
    return {"image": image_service.image_to_dict(image)}


@router.get("/{image_id}/tags")
def get_tags(image_id: str, request: Request, db: Session = Depends(get_db)):
    image = _image_for_request(request, db, image_id, "can_view")
    return {"tags": [tag_service.tag_to_dict(t) for t in tag_service.get_image_tags(db, image.ImageID)]}


@router.post("/{image_id}/tags")
def set_tags(
    image_id: str, body: ImageTagsBody, request: Request, db: Session = Depends(get_db)
):
    image = _image_for_request(request, db, image_id, "can_upload")
    tags = tag_service.set_image_tags(db, image, body.tagIds)
    return {"tags": [tag_service.tag_to_dict(t) for t in tags]}
