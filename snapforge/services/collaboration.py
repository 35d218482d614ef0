"""Gallery collaborators and the invitation lifecycle.

An invitation is pending until it is accepted (turned into a collaborator
row), cancelled, or found expired on a mutating path. Each (gallery, email)
pair has at most one pending invitation; a new invite supersedes the old one.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from snapforge.core.settings import settings
from snapforge.models.gallery import Gallery, GalleryCollaborator, GalleryInvitation
from snapforge.models.user import User, utc_now_naive_utc
from snapforge.services.email_utils import normalize_email, validate_email
from snapforge.services.errors import (
    ConflictError,
    InvitationExpiredError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from snapforge.services.permissions import (
    COLLABORATOR_ROLES,
    get_permissions,
    require_permission,
)

logger = logging.getLogger(__name__)
audit = logging.getLogger("audit")

INVITATION_TTL = timedelta(days=settings.INVITATION_TTL_DAYS)


@dataclass(frozen=True)
class InviteResult:
    invitation: GalleryInvitation
    invite_url: str
    # Decides between the "join gallery" and "register to join" e-mail
    existing_user: bool


def generate_invite_token() -> str:
    return secrets.token_urlsafe(24)


def _check_role(role: Any) -> str:
    if role not in COLLABORATOR_ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(COLLABORATOR_ROLES)}")
    return role


def _find_collaborator(db: Session, gallery_id: str, user_id: int) -> Optional[GalleryCollaborator]:
    return (
        db.query(GalleryCollaborator)
        .filter(GalleryCollaborator.GalleryID == gallery_id, GalleryCollaborator.UserID == user_id)
        .first()
    )


def _is_expired(invitation: GalleryInvitation) -> bool:
    return invitation.ExpiresAt <= utc_now_naive_utc()


def invite_to_gallery(
    db: Session, gallery_id: str, email: Any, role: Any, inviter_id: int
) -> InviteResult:
    require_permission(db, inviter_id, gallery_id, "can_manage_collaborators")
    role = _check_role(role)
    email = validate_email(normalize_email(email))

    gallery = db.get(Gallery, gallery_id)
    existing_user = db.query(User).filter(User.Email == email).first()
    if existing_user is not None:
        if existing_user.UserID == gallery.UserID:
            raise ValidationError("Cannot invite the gallery owner")
        if _find_collaborator(db, gallery_id, existing_user.UserID) is not None:
            raise ConflictError("User is already a collaborator")

    # Supersede any pending invitation for the same address
    db.query(GalleryInvitation).filter(
        GalleryInvitation.GalleryID == gallery_id, GalleryInvitation.Email == email
    ).delete(synchronize_session=False)

    now = utc_now_naive_utc()
    token = generate_invite_token()
    invitation = GalleryInvitation(
        InvitationID=uuid.uuid4().hex,
        GalleryID=gallery_id,
        Email=email,
        Role=role,
        InvitedBy=inviter_id,
        Token=token,
        ExpiresAt=now + INVITATION_TTL,
        CreatedAt=now,
    )
    db.add(invitation)
    db.commit()
    db.refresh(invitation)
    audit.info(
        "invitation.created",
        extra={"gallery_id": gallery_id, "invited_by": inviter_id, "role": role},
    )
    return InviteResult(
        invitation=invitation,
        invite_url=f"/invitations/{token}",
        existing_user=existing_user is not None,
    )


def accept_invitation(db: Session, token: str, user_id: int) -> GalleryCollaborator:
    """Turn a pending invitation into a collaborator row.

    Inserting the collaborator and deleting the invitation commit together.
    """
    invitation = db.query(GalleryInvitation).filter(GalleryInvitation.Token == token).first()
    if invitation is None:
        raise NotFoundError("Invitation not found")

    if _is_expired(invitation):
        db.delete(invitation)
        db.commit()
        raise InvitationExpiredError()

    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    if user.Email.lower() != invitation.Email.lower():
        audit.warning(
            "invitation.email_mismatch",
            extra={"user_id": user_id, "gallery_id": invitation.GalleryID},
        )
        raise PermissionDeniedError()

    if _find_collaborator(db, invitation.GalleryID, user_id) is not None:
        db.delete(invitation)
        db.commit()
        raise ConflictError("Already a collaborator")

    collaborator = GalleryCollaborator(
        GalleryID=invitation.GalleryID,
        UserID=user_id,
        Role=invitation.Role,
        InvitedBy=invitation.InvitedBy,
        InvitedAt=invitation.CreatedAt,
        AcceptedAt=utc_now_naive_utc(),
    )
    try:
        db.add(collaborator)
        db.delete(invitation)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(collaborator)
    audit.info(
        "invitation.accepted",
        extra={"user_id": user_id, "gallery_id": collaborator.GalleryID, "role": collaborator.Role},
    )
    return collaborator


def get_invitation_by_token(db: Session, token: str) -> Optional[GalleryInvitation]:
    """Read-only lookup; expired invitations read as missing but are left in place."""
    invitation = db.query(GalleryInvitation).filter(GalleryInvitation.Token == token).first()
    if invitation is None or _is_expired(invitation):
        return None
    return invitation


def cancel_invitation(db: Session, gallery_id: str, invitation_id: str, requester_id: int) -> None:
    require_permission(db, requester_id, gallery_id, "can_manage_collaborators")
    invitation = db.get(GalleryInvitation, invitation_id)
    if invitation is None or invitation.GalleryID != gallery_id:
        raise NotFoundError("Invitation not found")
    db.delete(invitation)
    db.commit()
    audit.info("invitation.cancelled", extra={"gallery_id": gallery_id, "by": requester_id})


def update_collaborator_role(
    db: Session, gallery_id: str, user_id: int, role: Any, requester_id: int
) -> GalleryCollaborator:
    require_permission(db, requester_id, gallery_id, "can_manage_collaborators")
    role = _check_role(role)
    collaborator = _find_collaborator(db, gallery_id, user_id)
    if collaborator is None:
        raise NotFoundError("Collaborator not found")
    collaborator.Role = role
    db.commit()
    db.refresh(collaborator)
    audit.info(
        "collaborator.role_changed",
        extra={"gallery_id": gallery_id, "user_id": user_id, "role": role, "by": requester_id},
    )
    return collaborator


def remove_collaborator(db: Session, gallery_id: str, user_id: int, requester_id: int) -> None:
    """Remove a collaborator; anyone may remove themselves."""
    if requester_id != user_id:
        require_permission(db, requester_id, gallery_id, "can_manage_collaborators")
    elif get_permissions(db, requester_id, gallery_id) is None:
        raise NotFoundError("Gallery not found")
    collaborator = _find_collaborator(db, gallery_id, user_id)
    if collaborator is None:
        raise NotFoundError("Collaborator not found")
    db.delete(collaborator)
    db.commit()
    audit.info(
        "collaborator.removed",
        extra={"gallery_id": gallery_id, "user_id": user_id, "by": requester_id},
    )


def list_collaborators(db: Session, gallery_id: str) -> List[GalleryCollaborator]:
    return (
        db.query(GalleryCollaborator)
        .filter(GalleryCollaborator.GalleryID == gallery_id)
        .order_by(GalleryCollaborator.AcceptedAt)
        .all()
    )


def list_pending_invitations(db: Session, gallery_id: str) -> List[GalleryInvitation]:
    return (
        db.query(GalleryInvitation)
        .filter(
            GalleryInvitation.GalleryID == gallery_id,
            GalleryInvitation.ExpiresAt > utc_now_naive_utc(),
        )
        .order_by(GalleryInvitation.CreatedAt.desc())
        .all()
    )


def list_user_pending_invitations(db: Session, email: str) -> List[GalleryInvitation]:
    return (
        db.query(GalleryInvitation)
        .filter(
            GalleryInvitation.Email == normalize_email(email),
            GalleryInvitation.ExpiresAt > utc_now_naive_utc(),
        )
        .order_by(GalleryInvitation.CreatedAt.desc())
        .all()
    )


def list_accessible_galleries(db: Session, user_id: int) -> List[Dict[str, Any]]:
    """Owned galleries followed by those shared with the user, each with its role."""
    owned = (
        db.query(Gallery)
        .filter(Gallery.UserID == user_id)
        .order_by(Gallery.CreatedAt.desc())
        .all()
    )
    shared = (
        db.query(Gallery, GalleryCollaborator.Role)
        .join(GalleryCollaborator, GalleryCollaborator.GalleryID == Gallery.GalleryID)
        .filter(GalleryCollaborator.UserID == user_id)
        .order_by(Gallery.CreatedAt.desc())
        .all()
    )
    return [{"gallery": g, "role": "owner"} for g in owned] + [
        {"gallery": g, "role": role} for g, role in shared
    ]


def collaborator_to_dict(collaborator: GalleryCollaborator) -> Dict[str, Any]:
    user = collaborator.user
    return {
        "userId": collaborator.UserID,
        "email": user.Email if user is not None else None,
        "role": collaborator.Role,
        "invitedBy": collaborator.InvitedBy,
        "invitedAt": collaborator.InvitedAt.isoformat() if collaborator.InvitedAt else None,
        "acceptedAt": collaborator.AcceptedAt.isoformat() if collaborator.AcceptedAt else None,
    }


def invitation_to_dict(invitation: GalleryInvitation, include_token: bool = False) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": invitation.InvitationID,
        "galleryId": invitation.GalleryID,
        "email": invitation.Email,
        "role": invitation.Role,
        "invitedBy": invitation.InvitedBy,
        "expiresAt": invitation.ExpiresAt.isoformat(),
        "createdAt": invitation.CreatedAt.isoformat() if invitation.CreatedAt else None,
    }
    gallery = invitation.gallery
    if gallery is not None:
        data["gallery"] = {"id": gallery.GalleryID, "name": gallery.Name}
    inviter = invitation.inviter
    if inviter is not None:
        data["inviter"] = {"email": inviter.Email}
    if include_token:
        data["token"] = invitation.Token
    return data
