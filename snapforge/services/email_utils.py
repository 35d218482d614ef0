import logging
from email.message import EmailMessage
from email.utils import formataddr
from urllib.parse import quote

import aiosmtplib
from email_validator import EmailNotValidError
from email_validator import validate_email as check_email_syntax

from snapforge.core.settings import settings
from snapforge.services.errors import ValidationError

logger = logging.getLogger(__name__)


def normalize_email(email) -> str:
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("Email is required")
    return email.strip().lower()


def validate_email(email: str) -> str:
    """Syntax-check ``email``; no DNS lookups are made."""
    if len(email) > 255:
        raise ValidationError("Invalid email address")
    try:
        return check_email_syntax(email, check_deliverability=False).normalized
    except EmailNotValidError as e:
        raise ValidationError("Invalid email address") from e


async def send_email(smtp, to_email: str, subject: str, body: str) -> bool:
    """Send a plain-text message through the configured relay.

    ``smtp`` is the effective ``smtp`` setting. Returns False (and sends
    nothing) when mail is not configured.
    """
    if not smtp.enabled or not smtp.host or not smtp.from_email:
        return False
    msg = EmailMessage()
    msg["From"] = formataddr((smtp.from_name, smtp.from_email))
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    await aiosmtplib.send(
        msg,
        hostname=smtp.host,
        port=smtp.port,
        use_tls=smtp.secure,
        start_tls=None if smtp.secure else True,
        username=smtp.username or None,
        password=smtp.password or None,
    )
    return True


async def send_invitation_email(
    smtp, to_email: str, inviter_email: str, gallery_name: str, invite_url: str
) -> bool:
    """Invite someone who already has an account."""
    full_url = f"{settings.BASE_URL.rstrip('/')}{invite_url}"
    body = (
        "Gallery Invitation\n\n"
        f'{inviter_email} has invited you to collaborate on the gallery "{gallery_name}".\n\n'
        "Accept the invitation by visiting:\n"
        f"{full_url}\n\n"
        f"This invitation expires in {settings.INVITATION_TTL_DAYS} days.\n\n"
        f"Sent from {settings.APP_NAME}\n"
    )
    return await send_email(smtp, to_email, f'You\'ve been invited to "{gallery_name}"', body)


async def send_registration_invite_email(
    smtp, to_email: str, inviter_email: str, gallery_name: str, invite_url: str
) -> bool:
    """Invite someone without an account; the link registers them with the token."""
    base = settings.BASE_URL.rstrip("/")
    token = invite_url.rstrip("/").rsplit("/", 1)[-1]
    body = (
        "Gallery Invitation\n\n"
        f'{inviter_email} has invited you to collaborate on the gallery "{gallery_name}" '
        f"on {settings.APP_NAME}.\n\n"
        "Create your account to join:\n"
        f"{base}/register?invite={quote(token)}\n\n"
        "Already registered with this address? Accept here instead:\n"
        f"{base}{invite_url}\n\n"
        f"This invitation expires in {settings.INVITATION_TTL_DAYS} days.\n"
    )
    return await send_email(
        smtp, to_email, f'Join "{gallery_name}" on {settings.APP_NAME}', body
    )
