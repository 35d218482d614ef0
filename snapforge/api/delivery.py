"""CDN-style image delivery: ``GET /i/{image_id}``.

Query parameters: ``size`` (WxH, Wx, xH), ``w``, ``h``, ``q`` (1-100),
``f``/``format``, ``thumb`` and ``auto`` (presence flags). Without any of
them the stored bytes are returned untouched.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session

from db import get_db
from snapforge.core.dependencies import get_storage
from snapforge.services import images as image_service
from snapforge.services.image_options import parse_request_options
from snapforge.services.settings_store import get_image_settings
from snapforge.services.storage import BlobStorage

router = APIRouter()

# Content under an image id never changes
CACHE_CONTROL = "public, max-age=31536000, immutable"


@router.get("/i/{image_id}")
def deliver_image(
    image_id: str,
    request: Request,
    db: Session = Depends(get_db),
    storage: BlobStorage = Depends(get_storage),
):
    image = image_service.require_image(db, image_id)
    requested = parse_request_options(request.query_params, request.headers.get("accept"))
    result = image_service.get_image_bytes(
        db, storage, image, requested.options, get_image_settings(db)
    )
    headers = {
        "Content-Length": str(len(result.data)),
        "Cache-Control": CACHE_CONTROL,
        "X-Content-Type-Options": "nosniff",
    }
    if requested.negotiated:
        headers["Vary"] = "Accept"
    return Response(content=result.data, media_type=result.mime_type, headers=headers)
