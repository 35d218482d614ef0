import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from db import get_db
from snapforge.core.dependencies import require_admin
from snapforge.services.errors import NotFoundError
from snapforge.services.sessions import SessionUser
from snapforge.services.settings_store import (
    SECRET_FIELDS,
    SETTING_MODELS,
    get_all_settings,
    update_setting,
)

router = APIRouter(prefix="/api/admin")

audit = logging.getLogger("audit")


@router.get("/settings")
def read_settings(db: Session = Depends(get_db), user: SessionUser = Depends(require_admin)):
    return {"settings": get_all_settings(db)}


@router.put("/settings/{key}")
def write_setting(
    key: str,
    value: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_admin),
):
    if key not in SETTING_MODELS:
        raise NotFoundError(f"Unknown setting: {key}")
    updated = update_setting(db, key, value).model_dump()
    for field in SECRET_FIELDS.get(key, ()):
        updated[field] = bool(updated.get(field))
    audit.info("settings.updated", extra={"key": key, "user_id": user.id})
    # Storage changes take effect on the next process start
    return {"key": key, "value": updated, "restartRequired": key == "storage"}
