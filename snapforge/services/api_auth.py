"""Bearer-token access to a single gallery.

The token is the gallery's AccessToken, compared directly; rotating it
(``galleries.regenerate_access_token``) cuts off the old value at once.
"""

from typing import Optional

from sqlalchemy.orm import Session

from snapforge.models.gallery import Gallery
from snapforge.services.errors import AuthenticationError


def parse_bearer(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthenticationError("Missing Authorization header")
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise AuthenticationError("Invalid Authorization format (expected Bearer token)")
    return parts[1]


def authenticate_api_request(db: Session, authorization: Optional[str]) -> Gallery:
    token = parse_bearer(authorization)
    gallery = db.query(Gallery).filter(Gallery.AccessToken == token).first()
    if gallery is None:
        raise AuthenticationError("Invalid access token")
    return gallery
