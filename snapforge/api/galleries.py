"""Session-authenticated gallery management (owner and collaborators)."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, File, Request, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from db import get_db
from snapforge.core.dependencies import get_storage, require_user
from snapforge.services import galleries as gallery_service
from snapforge.services import images as image_service
from snapforge.services import tags as tag_service
from snapforge.services.collaboration import list_accessible_galleries
from snapforge.services.permissions import permissions_for_role, require_permission
from snapforge.services.sessions import SessionUser
from snapforge.services.settings_store import get_image_settings
from snapforge.services.storage import BlobStorage

router = APIRouter(prefix="/api/galleries")


class GalleryNameBody(BaseModel):
    name: str


class TagBody(BaseModel):
    name: str
    color: Optional[str] = None


@router.get("")
def list_galleries(db: Session = Depends(get_db), user: SessionUser = Depends(require_user)):
    out = []
    for entry in list_accessible_galleries(db, user.id):
        perms = permissions_for_role(entry["role"])
        out.append(
            gallery_service.gallery_to_dict(
                entry["gallery"], perms, include_token=perms.can_edit_settings
            )
        )
    return {"galleries": out}


@router.post("", status_code=201)
def create_gallery(
    body: GalleryNameBody, db: Session = Depends(get_db), user: SessionUser = Depends(require_user)
):
    gallery = gallery_service.create_gallery(db, user.id, body.name)
    return {
        "gallery": gallery_service.gallery_to_dict(gallery, permissions_for_role("owner"))
    }


@router.get("/{gallery_id}")
def get_gallery(
    gallery_id: str, db: Session = Depends(get_db), user: SessionUser = Depends(require_user)
):
    perms = require_permission(db, user.id, gallery_id, "can_view")
    gallery = gallery_service.get_gallery(db, gallery_id)
    return {
        "gallery": gallery_service.gallery_to_dict(
            gallery, perms, include_token=perms.can_edit_settings
        )
    }


@router.patch("/{gallery_id}")
def rename_gallery(
    gallery_id: str,
    body: GalleryNameBody,
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    perms = require_permission(db, user.id, gallery_id, "can_edit_settings")
    gallery = gallery_service.rename_gallery(db, gallery_service.get_gallery(db, gallery_id), body.name)
    return {"gallery": gallery_service.gallery_to_dict(gallery, perms)}


@router.delete("/{gallery_id}", status_code=204)
def delete_gallery(
    gallery_id: str,
    db: Session = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
    user: SessionUser = Depends(require_user),
):
    require_permission(db, user.id, gallery_id, "can_delete_gallery")
    gallery_service.delete_gallery(db, storage, gallery_service.get_gallery(db, gallery_id))
    return Response(status_code=204)


@router.patch("/{gallery_id}/settings")
def update_settings(
    gallery_id: str,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    require_permission(db, user.id, gallery_id, "can_edit_settings")
    gallery = gallery_service.update_gallery_settings(
        db, gallery_service.get_gallery(db, gallery_id), payload
    )
    return {"settings": gallery_service.gallery_settings_dict(gallery)}


@router.post("/{gallery_id}/token")
def regenerate_token(
    gallery_id: str, db: Session = Depends(get_db), user: SessionUser = Depends(require_user)
):
    require_permission(db, user.id, gallery_id, "can_edit_settings")
    token = gallery_service.regenerate_access_token(db, gallery_service.get_gallery(db, gallery_id))
    return {"accessToken": token}


@router.get("/{gallery_id}/stats")
def gallery_stats(
    gallery_id: str, db: Session = Depends(get_db), user: SessionUser = Depends(require_user)
):
    require_permission(db, user.id, gallery_id, "can_view")
    return gallery_service.get_gallery_stats(db, gallery_id)


@router.get("/{gallery_id}/images")
def list_images(
    gallery_id: str,
    page: int = 1,
    perPage: int = 50,
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    require_permission(db, user.id, gallery_id, "can_view")
    return image_service.list_gallery_images(db, gallery_id, page, perPage)


@router.post("/{gallery_id}/images", status_code=201)
async def upload_image(
    gallery_id: str,
    request: Request,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
    user: SessionUser = Depends(require_user),
):
    await run_in_threadpool(require_permission, db, user.id, gallery_id, "can_upload")
    gallery = await run_in_threadpool(gallery_service.get_gallery, db, gallery_id)
    image_settings = await run_in_threadpool(get_image_settings, db)
    # One byte past the limit is enough to reject the upload
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


@router.delete("/{gallery_id}/images/{image_id}", status_code=204)
def delete_image(
    gallery_id: str,
    image_id: str,
    db: Session = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
    user: SessionUser = Depends(require_user),
):
    require_permission(db, user.id, gallery_id, "can_delete")
    image = image_service.require_image(db, image_id, gallery_id)
    image_service.delete_image(db, storage, image)
    return Response(status_code=204)


@router.get("/{gallery_id}/tags")
def list_tags(
    gallery_id: str, db: Session = Depends(get_db), user: SessionUser = Depends(require_user)
):
    require_permission(db, user.id, gallery_id, "can_view")
    return {"tags": tag_service.list_gallery_tags(db, gallery_id)}


@router.post("/{gallery_id}/tags", status_code=201)
def create_tag(
    gallery_id: str,
    body: TagBody,
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    require_permission(db, user.id, gallery_id, "can_upload")
    tag = tag_service.create_tag(db, gallery_id, body.name, body.color)
    return {"tag": tag_service.tag_to_dict(tag, 0)}


@router.patch("/{gallery_id}/tags/{tag_id}")
def update_tag(
    gallery_id: str,
    tag_id: int,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    require_permission(db, user.id, gallery_id, "can_upload")
    tag = tag_service.update_tag(db, tag_service.get_tag(db, gallery_id, tag_id), payload)
    return {"tag": tag_service.tag_to_dict(tag)}


@router.delete("/{gallery_id}/tags/{tag_id}", status_code=204)
def delete_tag(
    gallery_id: str,
    tag_id: int,
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    require_permission(db, user.id, gallery_id, "can_delete")
    tag_service.delete_tag(db, tag_service.get_tag(db, gallery_id, tag_id))
    return Response(status_code=204)
