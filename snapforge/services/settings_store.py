"""Process-wide settings persisted as JSON rows.

Each key holds one JSON object. Readers merge the stored object over defaults
taken from the environment configuration, so a missing row or a missing field
falls back to the compiled-in value.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from snapforge.core.settings import settings
from snapforge.models.setting import Setting
from snapforge.services.errors import ValidationError


class GeneralSettings(BaseModel):
    default_max_galleries: int = Field(default=settings.DEFAULT_MAX_GALLERIES, ge=0)
    allow_registration: bool = settings.ALLOW_REGISTRATION


class StorageSettings(BaseModel):
    type: str = Field(default=settings.STORAGE_TYPE, pattern="^(local|s3)$")
    local_path: str = settings.STORAGE_PATH
    s3_bucket: str = settings.S3_BUCKET
    s3_region: str = settings.S3_REGION
    s3_access_key: str = settings.S3_ACCESS_KEY
    s3_secret_key: str = settings.S3_SECRET_KEY
    s3_endpoint: str = settings.S3_ENDPOINT


class ImageSettings(BaseModel):
    thumb_size: int = Field(default=settings.THUMB_SIZE, ge=16, le=1024)
    thumb_quality: int = Field(default=settings.THUMB_QUALITY, ge=1, le=100)
    max_upload_size_mb: int = Field(
        default=max(1, round(settings.MAX_UPLOAD_BYTES / (1024 * 1024))), ge=1
    )

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024


class SmtpSettings(BaseModel):
    enabled: bool = settings.SMTP_ENABLED
    host: str = settings.SMTP_HOST
    port: int = Field(default=settings.SMTP_PORT, ge=1, le=65535)
    secure: bool = settings.SMTP_SECURE
    username: str = settings.SMTP_USERNAME
    password: str = settings.SMTP_PASSWORD
    from_email: str = settings.SMTP_FROM_EMAIL
    from_name: str = settings.SMTP_FROM_NAME


SETTING_MODELS: Dict[str, Type[BaseModel]] = {
    "general": GeneralSettings,
    "storage": StorageSettings,
    "images": ImageSettings,
    "smtp": SmtpSettings,
}

# Never returned by the admin API
SECRET_FIELDS = {"storage": ("s3_secret_key",), "smtp": ("password",)}

M = TypeVar("M", bound=BaseModel)


def get_setting(db: Session, key: str) -> Optional[Any]:
    row = db.get(Setting, key)
    return row.Value if row is not None else None


def set_setting(db: Session, key: str, value: Any) -> None:
    """Write ``value`` wholesale under ``key`` (insert or replace)."""
    row = db.get(Setting, key)
    if row is None:
        db.add(Setting(Key=key, Value=value))
    else:
        row.Value = value
    db.commit()


def _load(db: Session, key: str, model: Type[M]) -> M:
    stored = get_setting(db, key)
    if not isinstance(stored, dict):
        return model()
    merged = model().model_dump()
    merged.update({k: v for k, v in stored.items() if k in merged})
    return model.model_validate(merged)


def get_general_settings(db: Session) -> GeneralSettings:
    return _load(db, "general", GeneralSettings)


def get_storage_settings(db: Session) -> StorageSettings:
    return _load(db, "storage", StorageSettings)


def get_image_settings(db: Session) -> ImageSettings:
    return _load(db, "images", ImageSettings)


def get_smtp_settings(db: Session) -> SmtpSettings:
    return _load(db, "smtp", SmtpSettings)


def get_all_settings(db: Session, include_secrets: bool = False) -> Dict[str, Dict[str, Any]]:
    out: Dict[str, Dict[str, Any]] = {}
    for key, model in SETTING_MODELS.items():
        data = _load(db, key, model).model_dump()
        if not include_secrets:
            for field in SECRET_FIELDS.get(key, ()):
                data[field] = bool(data.get(field))
        out[key] = data
    return out


def update_setting(db: Session, key: str, value: Dict[str, Any]) -> BaseModel:
    """Validate ``value`` against the model for ``key`` and persist it."""
    model = SETTING_MODELS.get(key)
    if model is None:
        raise ValidationError(f"Unknown setting: {key}")
    if not isinstance(value, dict):
        raise ValidationError("Setting value must be an object")
    current = _load(db, key, model).model_dump()
    # Secrets omitted (or masked as booleans) by the client keep their stored value
    for field in SECRET_FIELDS.get(key, ()):
        if not isinstance(value.get(field), str):
            value = {**value, field: current[field]}
    try:
        validated = model.model_validate({**current, **value})
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(p) for p in first.get("loc", ()))
        raise ValidationError(f"Invalid value for {key}.{location}: {first.get('msg')}") from exc
    set_setting(db, key, validated.model_dump())
    return validated


def is_registration_allowed(db: Session) -> bool:
    return get_general_settings(db).allow_registration


def is_smtp_configured(db: Session) -> bool:
    smtp = get_smtp_settings(db)
    return bool(smtp.enabled and smtp.host and smtp.from_email)
