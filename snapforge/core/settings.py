from typing import Tuple

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "SnapForge"
    # Used for absolute links in notification e-mails
    BASE_URL: str = "http://localhost:8000"

    # Database
    DATABASE_URL: str = "sqlite:///./data/snapforge.db"
    # Create missing tables on startup (use Alembic for real deployments)
    DB_CREATE_ALL: bool = True

    # Blob storage
    STORAGE_TYPE: str = "local"  # local | s3
    STORAGE_PATH: str = "./data/uploads"
    S3_BUCKET: str = ""
    S3_REGION: str = ""
    S3_ACCESS_KEY: str = ""  # Optional; falls back to the default boto3 credential chain
    S3_SECRET_KEY: str = ""
    S3_ENDPOINT: str = ""  # For S3-compatible services (MinIO, R2, ...)

    # Image defaults
    THUMB_SIZE: int = 150
    THUMB_QUALITY: int = 60
    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024  # 50 MB
    ALLOWED_UPLOAD_MIME_TYPES: Tuple[str, ...] = (
        "image/jpeg",
        "image/png",
        "image/webp",
        "image/gif",
    )

    # Users
    DEFAULT_MAX_GALLERIES: int = 10
    ALLOW_REGISTRATION: bool = False

    # Sessions / invitations
    SESSION_TTL_DAYS: int = 30
    INVITATION_TTL_DAYS: int = 7
    COOKIE_SECURE: bool = False  # force Secure cookies regardless of scheme detection
    TRUST_PROXY_HEADERS: bool = True  # honour X-Forwarded-Proto behind a reverse proxy
    SESSION_CLEANUP_INTERVAL_SECONDS: int = 3600  # 0 disables the background sweep

    # Auth rate-limiting
    RATE_LIMIT_LOGIN_ATTEMPTS: int = 5
    RATE_LIMIT_LOGIN_WINDOW_SECONDS: int = 15 * 60  # 15 minutes

    # SMTP (defaults for the persisted "smtp" setting)
    SMTP_ENABLED: bool = False
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_SECURE: bool = False  # implicit TLS; STARTTLS is used otherwise
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM_EMAIL: str = ""
    SMTP_FROM_NAME: str = "SnapForge"

    # Logging
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    LOG_JSON: bool = True
    LOG_FILE: str = "logs/app.log"
    LOG_MAX_BYTES: int = 5_000_000  # 5 MB
    LOG_BACKUP_COUNT: int = 5

    # Sentry
    SENTRY_DSN: str = ""
    SENTRY_TRACES_SAMPLE_RATE: float = 0.0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()

# Auto-detect secure cookies when the public URL is HTTPS
if not settings.COOKIE_SECURE and settings.BASE_URL.lower().startswith("https"):
    settings.COOKIE_SECURE = True
