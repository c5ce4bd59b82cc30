"""
Process-wide configuration for the portal backend.

Settings are read from the environment once at startup (``load_settings``)
and then passed explicitly to the services that need them. Nothing outside
this module reads ``os.environ``.
"""

import os
from typing import List, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field


DEFAULT_FOLDER = "documents"


class Settings(BaseModel):
    """Typed, read-only view of the environment."""

    model_config = ConfigDict(frozen=True)

    app_name: str = "Customer Portal"
    app_env: str = "development"
    log_level: str = "INFO"
    cors_origins: List[str] = Field(default_factory=list)

    # Object storage
    storage_backend: str = "s3"  # "s3" or "supabase"
    docs_bucket: str = "pm-customer-documents"
    docs_folder: str = DEFAULT_FOLDER
    aws_region: str = "eu-central-1"
    s3_endpoint_url: Optional[str] = None
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    max_file_size_bytes: int = 0  # 0 = no limit
    allowed_mime_types: List[str] = Field(default_factory=list)  # empty = allow all
    default_sse: Optional[str] = None  # e.g. "AES256" or "aws:kms"
    default_kms_key_id: Optional[str] = None
    signed_url_expiry_seconds: int = 300
    list_page_size: int = 50
    store_connect_timeout: float = 5.0
    store_read_timeout: float = 60.0

    # Supabase (auth, optional storage backend)
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    supabase_service_key: Optional[str] = None
    supabase_public_url: Optional[str] = None
    supabase_jwt_secret: Optional[str] = None

    # Transactional email
    sendgrid_api_key: Optional[str] = None
    sendgrid_api_url: str = "https://api.sendgrid.com/v3/mail/send"
    mail_from: str = "noreply@mutevazipeynircilik.com"
    mail_reply_to: Optional[str] = None
    mail_max_attempts: int = 3
    mail_retry_delay_seconds: float = 0.5
    mail_retry_jitter_seconds: float = 0.15
    mail_timeout_seconds: float = 10.0


def _int(value: Optional[str], default: int, minimum: Optional[int] = None) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    if minimum is not None and number < minimum:
        return default
    return number


def _float(value: Optional[str], default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build a Settings instance from environment variables.

    When ``env`` is omitted, a ``.env`` file (if any) is loaded first and the
    process environment is used. Malformed or out-of-range numbers fall back
    to defaults instead of failing startup.
    """
    if env is None:
        load_dotenv()
        env = os.environ

    defaults = Settings()

    return Settings(
        app_name=env.get("APP_NAME", defaults.app_name),
        app_env=(env.get("APP_ENV") or defaults.app_env).lower(),
        log_level=(env.get("LOG_LEVEL") or defaults.log_level).upper(),
        cors_origins=_list(env.get("CORS_ORIGINS")),
        storage_backend=(env.get("STORAGE_BACKEND") or defaults.storage_backend).lower(),
        docs_bucket=env.get("DOCS_BUCKET") or defaults.docs_bucket,
        docs_folder=env.get("DOCS_FOLDER") or defaults.docs_folder,
        aws_region=env.get("AWS_REGION") or env.get("AWS_DEFAULT_REGION") or defaults.aws_region,
        s3_endpoint_url=_optional(env.get("S3_ENDPOINT_URL")),
        aws_access_key_id=_optional(env.get("AWS_ACCESS_KEY_ID")),
        aws_secret_access_key=_optional(env.get("AWS_SECRET_ACCESS_KEY")),
        max_file_size_bytes=_int(env.get("DOCS_MAX_FILE_SIZE_BYTES"), 0),
        allowed_mime_types=_list(env.get("DOCS_ALLOWED_MIME_TYPES")),
        default_sse=_optional(env.get("DOCS_SSE")),
        default_kms_key_id=_optional(env.get("DOCS_KMS_KEY_ID")),
        signed_url_expiry_seconds=_int(
            env.get("DOCS_SIGNED_URL_EXPIRY_SECONDS"), defaults.signed_url_expiry_seconds
        ),
        list_page_size=_int(env.get("DOCS_LIST_PAGE_SIZE"), defaults.list_page_size),
        store_connect_timeout=_float(
            env.get("STORE_CONNECT_TIMEOUT"), defaults.store_connect_timeout
        ),
        store_read_timeout=_float(env.get("STORE_READ_TIMEOUT"), defaults.store_read_timeout),
        supabase_url=_optional(env.get("SUPABASE_URL")),
        supabase_key=_optional(env.get("SUPABASE_KEY")),
        supabase_service_key=_optional(env.get("SUPABASE_SERVICE_KEY")),
        supabase_public_url=_optional(env.get("SUPABASE_PUBLIC_URL")),
        supabase_jwt_secret=_optional(env.get("SUPABASE_JWT_SECRET")),
        sendgrid_api_key=_optional(env.get("SENDGRID_API_KEY")),
        sendgrid_api_url=env.get("SENDGRID_API_URL") or defaults.sendgrid_api_url,
        mail_from=env.get("MAIL_FROM") or defaults.mail_from,
        mail_reply_to=_optional(env.get("MAIL_REPLY_TO")),
        mail_max_attempts=_int(env.get("MAIL_MAX_RETRIES"), defaults.mail_max_attempts, minimum=1),
        mail_retry_delay_seconds=_int(env.get("MAIL_RETRY_DELAY_MS"), 500, minimum=0) / 1000.0,
        mail_retry_jitter_seconds=_int(env.get("MAIL_RETRY_JITTER_MS"), 150, minimum=0) / 1000.0,
        mail_timeout_seconds=_float(
            env.get("MAIL_TIMEOUT_SECONDS"), defaults.mail_timeout_seconds
        ),
    )
