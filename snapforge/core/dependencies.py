"""Dependencies for FastAPI routes."""
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from db import get_db
from snapforge.models.gallery import Gallery
from snapforge.services.api_auth import authenticate_api_request
from snapforge.services.errors import AuthenticationError, PermissionDeniedError
from snapforge.services.sessions import SessionUser
from snapforge.services.storage import BlobStorage


def get_storage(request: Request) -> BlobStorage:
    """The blob backend selected when the app was built."""
    return request.app.state.storage


def get_current_user(request: Request) -> Optional[SessionUser]:
    """User resolved from the session cookie by the session middleware, if any."""
    return getattr(request.state, "user", None)


def require_user(user: Optional[SessionUser] = Depends(get_current_user)) -> SessionUser:
    if user is None:
        raise AuthenticationError()
    return user


def require_admin(user: SessionUser = Depends(require_user)) -> SessionUser:
    if not user.is_admin:
        raise PermissionDeniedError()
    return user


def get_api_gallery(request: Request, db: Session = Depends(get_db)) -> Gallery:
    return authenticate_api_request(db, request.headers.get("Authorization"))
