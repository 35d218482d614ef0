"""Gallery access control.

``ROLE_PERMISSIONS`` is the only place a role is translated into capabilities;
every gallery-scoped endpoint checks one of its flags through
``require_permission``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional

from sqlalchemy.orm import Session

from snapforge.models.gallery import Gallery, GalleryCollaborator
from snapforge.services.errors import NotFoundError, PermissionDeniedError

COLLABORATOR_ROLES = ("viewer", "editor", "manager")


@dataclass(frozen=True)
class GalleryPermissions:
    role: str
    can_view: bool
    can_upload: bool
    can_delete: bool
    can_manage_collaborators: bool
    can_edit_settings: bool
    can_delete_gallery: bool

    @property
    def is_owner(self) -> bool:
        return self.role == "owner"

    def as_dict(self) -> dict:
        return {
            "role": self.role,
            "isOwner": self.is_owner,
            "canView": self.can_view,
            "canUpload": self.can_upload,
            "canDelete": self.can_delete,
            "canManageCollaborators": self.can_manage_collaborators,
            "canEditSettings": self.can_edit_settings,
            "canDeleteGallery": self.can_delete_gallery,
        }


ROLE_PERMISSIONS: Dict[str, GalleryPermissions] = {
    "owner": GalleryPermissions("owner", True, True, True, True, True, True),
    "manager": GalleryPermissions("manager", True, True, True, True, False, False),
    "editor": GalleryPermissions("editor", True, True, True, False, False, False),
    "viewer": GalleryPermissions("viewer", True, False, False, False, False, False),
}


def permissions_for_role(role: str) -> GalleryPermissions:
    try:
        return ROLE_PERMISSIONS[role]
    except KeyError:
        raise ValueError(f"Unknown gallery role: {role!r}") from None


def get_permissions(db: Session, user_id: int, gallery_id: str) -> Optional[GalleryPermissions]:
    """Effective permissions of ``user_id`` on ``gallery_id``.

    Returns None when the gallery does not exist or the user has no relation
    to it.
    """
    gallery = db.get(Gallery, gallery_id)
    if gallery is None:
        return None
    if gallery.UserID == user_id:
        return ROLE_PERMISSIONS["owner"]
    collaborator = (
        db.query(GalleryCollaborator)
        .filter(
            GalleryCollaborator.GalleryID == gallery_id,
            GalleryCollaborator.UserID == user_id,
        )
        .first()
    )
    if collaborator is None:
        return None
    return permissions_for_role(collaborator.Role)


def require_permission(db: Session, user_id: int, gallery_id: str, flag: str) -> GalleryPermissions:
    """Return the caller's permissions or raise if ``flag`` is not granted.

    A gallery the caller cannot see is reported as missing so its existence
    does not leak.
    """
    perms = get_permissions(db, user_id, gallery_id)
    if perms is None:
        raise NotFoundError("Gallery not found")
    if not getattr(perms, flag):
        raise PermissionDeniedError()
    return perms
