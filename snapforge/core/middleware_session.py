"""Cookie sessions.

Resolves the ``session`` cookie on every request and exposes the user as
``request.state.user``. A valid cookie is re-issued so its max-age slides with
the server-side expiry; an invalid one is cleared.
"""

import logging

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from snapforge.services.sessions import SESSION_DURATION, validate_session

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "session"


def is_secure_request(request: Request) -> bool:
    settings = request.app.state.settings
    if settings.COOKIE_SECURE or request.url.scheme == "https":
        return True
    if settings.TRUST_PROXY_HEADERS:
        proto = request.headers.get("x-forwarded-proto", "")
        return proto.split(",")[0].strip().lower() == "https"
    return False


def set_session_cookie(response: Response, request: Request, token: str) -> None:
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=int(SESSION_DURATION.total_seconds()),
        path="/",
        httponly=True,
        samesite="lax",
        secure=is_secure_request(request),
    )


def clear_session_cookie(response: Response, request: Request) -> None:
    response.delete_cookie(
        SESSION_COOKIE_NAME,
        path="/",
        httponly=True,
        samesite="lax",
        secure=is_secure_request(request),
    )


def _sets_session_cookie(response: Response) -> bool:
    prefix = f"{SESSION_COOKIE_NAME}="
    return any(
        value.startswith(prefix) for value in response.headers.getlist("set-cookie")
    )


def _resolve(session_factory, token: str):
    db = session_factory()
    try:
        _, user = validate_session(db, token)
        return user
    finally:
        db.close()


class SessionMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, exempt_prefixes=("/i/", "/health")):
        super().__init__(app)
        # Publicly cached responses must never carry Set-Cookie
        self.exempt_prefixes = tuple(exempt_prefixes)

    async def dispatch(self, request: Request, call_next):
        request.state.user = None
        if request.url.path.startswith(self.exempt_prefixes):
            return await call_next(request)
        token = request.cookies.get(SESSION_COOKIE_NAME)
        if token:
            request.state.user = await run_in_threadpool(
                _resolve, request.app.state.session_factory, token
            )
        response = await call_next(request)

        # Endpoints that log in or out manage the cookie themselves
        if token and not _sets_session_cookie(response):
            if request.state.user is not None:
                set_session_cookie(response, request, token)
            else:
                clear_session_cookie(response, request)
        return response
