from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from db import get_db
from snapforge.core.dependencies import require_user
from snapforge.core.middleware_session import (
    SESSION_COOKIE_NAME,
    clear_session_cookie,
    set_session_cookie,
)
from snapforge.services import auth as auth_service
from snapforge.services.collaboration import invitation_to_dict, list_user_pending_invitations
from snapforge.services.sessions import SessionUser

router = APIRouter()


class RegisterBody(BaseModel):
    email: str
    password: str
    inviteToken: Optional[str] = None


class LoginBody(BaseModel):
    email: str
    password: str


class PasswordChangeBody(BaseModel):
    currentPassword: str
    newPassword: str


def client_ip(request: Request) -> Optional[str]:
    if request.app.state.settings.TRUST_PROXY_HEADERS:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


@router.post("/auth/register", status_code=201)
def register(body: RegisterBody, request: Request, db: Session = Depends(get_db)):
    result = auth_service.register(db, body.email, body.password, body.inviteToken)
    payload = {"user": auth_service.user_to_dict(result.user)}
    if result.collaborator is not None:
        payload["joinedGalleryId"] = result.collaborator.GalleryID
    resp = JSONResponse(payload, status_code=201)
    set_session_cookie(resp, request, result.token)
    return resp


@router.post("/auth/login")
def login(body: LoginBody, request: Request, db: Session = Depends(get_db)):
    result = auth_service.login(db, body.email, body.password, client_ip(request))
    resp = JSONResponse({"user": auth_service.user_to_dict(result.user)})
    set_session_cookie(resp, request, result.token)
    return resp


@router.post("/auth/logout", status_code=204)
def logout(request: Request, db: Session = Depends(get_db)):
    auth_service.logout(db, request.cookies.get(SESSION_COOKIE_NAME))
    resp = Response(status_code=204)
    clear_session_cookie(resp, request)
    return resp


@router.get("/auth/me")
def me(user: SessionUser = Depends(require_user)):
    return {"user": auth_service.user_to_dict(user)}


@router.post("/auth/password")
def change_password(
    body: PasswordChangeBody,
    request: Request,
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    token = auth_service.change_password(db, user.id, body.currentPassword, body.newPassword)
    resp = JSONResponse({"success": True})
    set_session_cookie(resp, request, token)
    return resp


@router.get("/auth/invitations")
def my_invitations(db: Session = Depends(get_db), user: SessionUser = Depends(require_user)):
    invitations = list_user_pending_invitations(db, user.email)
    return {"invitations": [invitation_to_dict(i, include_token=True) for i in invitations]}
