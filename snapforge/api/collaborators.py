import logging

import aiosmtplib
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from db import get_db
from snapforge.core.dependencies import require_user
from snapforge.services import collaboration
from snapforge.services.email_utils import send_invitation_email, send_registration_invite_email
from snapforge.services.errors import NotFoundError
from snapforge.services.permissions import require_permission
from snapforge.services.sessions import SessionUser
from snapforge.services.settings_store import get_smtp_settings, is_smtp_configured

logger = logging.getLogger(__name__)

router = APIRouter()


class InviteBody(BaseModel):
    email: str
    role: str


class RoleBody(BaseModel):
    role: str


@router.get("/api/galleries/{gallery_id}/collaborators")
def list_collaborators(
    gallery_id: str, db: Session = Depends(get_db), user: SessionUser = Depends(require_user)
):
    require_permission(db, user.id, gallery_id, "can_view")
    return {
        "collaborators": [
            collaboration.collaborator_to_dict(c)
            for c in collaboration.list_collaborators(db, gallery_id)
        ]
    }


async def _invite(request: Request, gallery_id: str, body: InviteBody, db: Session, user: SessionUser):
    result = await run_in_threadpool(
        collaboration.invite_to_gallery, db, gallery_id, body.email, body.role, user.id
    )
    invitation = result.invitation
    invitation_data = await run_in_threadpool(collaboration.invitation_to_dict, invitation)
    smtp_configured = await run_in_threadpool(is_smtp_configured, db)
    email_sent = False
    if smtp_configured:
        smtp = await run_in_threadpool(get_smtp_settings, db)
        send = send_invitation_email if result.existing_user else send_registration_invite_email
        try:
            email_sent = await send(
                smtp,
                invitation.Email,
                user.email,
                invitation_data["gallery"]["name"],
                result.invite_url,
            )
        except (aiosmtplib.SMTPException, OSError):
            logger.warning(
                "Invitation e-mail could not be sent",
                extra={"gallery_id": gallery_id},
                exc_info=True,
            )
    base_url = str(request.base_url).rstrip("/")
    return JSONResponse(
        {
            "success": True,
            "invitation": invitation_data,
            "inviteUrl": f"{base_url}{result.invite_url}",
            "existingUser": result.existing_user,
            "emailSent": email_sent,
            "smtpConfigured": smtp_configured,
        },
        status_code=201,
    )


@router.post("/api/galleries/{gallery_id}/collaborators", status_code=201)
async def add_collaborator(
    gallery_id: str,
    body: InviteBody,
    request: Request,
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    # Collaborators are only ever added through an invitation the invitee accepts
    return await _invite(request, gallery_id, body, db, user)


@router.patch("/api/galleries/{gallery_id}/collaborators/{user_id}")
def update_collaborator(
    gallery_id: str,
    user_id: int,
    body: RoleBody,
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    collaborator = collaboration.update_collaborator_role(db, gallery_id, user_id, body.role, user.id)
    return {"collaborator": collaboration.collaborator_to_dict(collaborator)}


@router.delete("/api/galleries/{gallery_id}/collaborators/{user_id}", status_code=204)
def remove_collaborator(
    gallery_id: str,
    user_id: int,
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    collaboration.remove_collaborator(db, gallery_id, user_id, user.id)
    return Response(status_code=204)


@router.get("/api/galleries/{gallery_id}/invite")
def list_invitations(
    gallery_id: str, db: Session = Depends(get_db), user: SessionUser = Depends(require_user)
):
    require_permission(db, user.id, gallery_id, "can_manage_collaborators")
    return {
        "invitations": [
            collaboration.invitation_to_dict(i)
            for i in collaboration.list_pending_invitations(db, gallery_id)
        ]
    }


@router.post("/api/galleries/{gallery_id}/invite", status_code=201)
async def invite(
    gallery_id: str,
    body: InviteBody,
    request: Request,
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    return await _invite(request, gallery_id, body, db, user)


@router.delete("/api/galleries/{gallery_id}/invite/{invite_id}", status_code=204)
def cancel_invitation(
    gallery_id: str,
    invite_id: str,
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    collaboration.cancel_invitation(db, gallery_id, invite_id, user.id)
    return Response(status_code=204)


@router.get("/api/invitations/{token}")
def get_invitation(token: str, db: Session = Depends(get_db)):
    invitation = collaboration.get_invitation_by_token(db, token)
    if invitation is None:
        raise NotFoundError("Invitation not found or expired")
    return {"invitation": collaboration.invitation_to_dict(invitation)}


@router.post("/api/invitations/{token}/accept")
def accept_invitation(
    token: str, db: Session = Depends(get_db), user: SessionUser = Depends(require_user)
):
    collaborator = collaboration.accept_invitation(db, token, user.id)
    return {"success": True, "galleryId": collaborator.GalleryID, "role": collaborator.Role}
