import os
from functools import lru_cache
from pydantic_settings import BaseSettings
from pydantic import Field, validator
from typing import List, Optional, Union


DEFAULT_BLOCKED_EXTENSIONS = (
    ".exe,.bat,.cmd,.msi,.scr,.pif,.com,.vbs,.vbe,.js,.jse,.ws,"
    ".wsf,.wsc,.wsh,.ps1,.ps2,.reg,.inf,.lnk,.dll,.sys"
)


class Settings(BaseSettings):
    """
    Application settings with Pydantic validation.
    Loads from environment variables with type checking and validation.
    """
    app_name: str = Field(default="LinkVault", env="APP_NAME")
    environment: str = Field(default="development", env="ENVIRONMENT")

    backend_cors_origins: str = Field(
        default="http://localhost:5173,http://127.0.0.1:5173",
        env="BACKEND_CORS_ORIGINS"
    )
    backend_cors_origins_regex: Optional[str] = Field(
        default=None, env="BACKEND_CORS_ORIGINS_REGEX"
    )

    database_url: str = Field(
        default="sqlite:///./linkvault.db",
        env="DATABASE_URL"
    )

    # Bearer tokens are issued by the account service; we only verify them.
    jwt_secret_key: str = Field(default="dev-secret-key-change-in-production-d8f7g6h5j4k3l2m1n0", env="JWT_SECRET_KEY", min_length=32)
    jwt_algorithm: str = Field(default="HS256", env="JWT_ALGORITHM")

    # Upload policy
    default_expiry_minutes: int = Field(default=10, env="DEFAULT_EXPIRY_MINUTES", ge=1)
    max_expiry_minutes: int = Field(default=7 * 24 * 60, env="MAX_EXPIRY_MINUTES", ge=1)
    max_text_chars: int = Field(default=500_000, env="MAX_TEXT_CHARS", ge=1)
    max_blob_bytes: int = Field(default=50 * 1024 * 1024, env="MAX_BLOB_BYTES", ge=1)
    blocked_extensions: str = Field(default=DEFAULT_BLOCKED_EXTENSIONS, env="BLOCKED_EXTENSIONS")
    max_password_length: int = Field(default=128, env="MAX_PASSWORD_LENGTH", ge=1)
    bcrypt_rounds: int = Field(default=10, env="BCRYPT_ROUNDS", ge=4, le=31)
    slug_length: int = Field(default=12, env="SLUG_LENGTH", ge=12, le=30)

    # Signed blob URLs only need to cover a single download.
    signed_url_ttl_seconds: int = Field(default=120, env="SIGNED_URL_TTL_SECONDS", ge=1)

    # Expiry sweeper
    sweeper_enabled: bool = Field(default=True, env="SWEEPER_ENABLED")
    sweep_interval_seconds: float = Field(default=60.0, env="SWEEP_INTERVAL_SECONDS", gt=0)
    sweep_batch_size: int = Field(default=500, env="SWEEP_BATCH_SIZE", ge=1)

    # Blob backend: local | supabase
    blob_backend: str = Field(default="local", env="BLOB_BACKEND")
    blob_local_dir: str = Field(default="./data/blobs", env="BLOB_LOCAL_DIR")
    blob_signing_key: Optional[str] = Field(default=None, env="BLOB_SIGNING_KEY")
    public_base_url: str = Field(default="http://localhost:8000", env="PUBLIC_BASE_URL")
    supabase_url: Optional[str] = Field(default=None, env="SUPABASE_URL")
    supabase_service_key: Optional[str] = Field(default=None, env="SUPABASE_SERVICE_KEY")
    supabase_bucket: str = Field(default="uploads", env="SUPABASE_BUCKET")
    supabase_timeout_seconds: float = Field(default=15.0, env="SUPABASE_TIMEOUT_SECONDS", gt=0)

    # Sentry
    sentry_dsn: Union[str, None] = Field(default=None, env="SENTRY_DSN")
    sentry_env: str = Field(default="development", env="SENTRY_ENV")

    metrics_token: Optional[str] = Field(default=None, env="METRICS_TOKEN")

    debug: bool = Field(default=True, env="DEBUG")

    @validator("jwt_secret_key")
    def validate_jwt_secret(cls, v: str, values: dict) -> str:
        """Ensure JWT secret is strong in production"""
        env = values.get("environment")
        if env == "production":
            if len(v) < 32 or "dev-secret" in v or "change" in v.lower():
                raise ValueError(
                    "JWT_SECRET_KEY must be a strong, unique secret (min 32 chars) in production. "
                    "Generate with: python3 -c \"import secrets; print(secrets.token_urlsafe(64))\""
                )
        return v

    @validator("database_url")
    def validate_database_url(cls, v: str, values: dict) -> str:
        """Validate database URL; disallow SQLite in production."""
        env = values.get("environment")
        if env == "production" and v.startswith("sqlite"):
            raise ValueError("SQLite is not allowed for DATABASE_URL in production. Use PostgreSQL.")
        return v

    @validator("blob_backend")
    def validate_blob_backend(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v not in {"local", "supabase"}:
            raise ValueError("BLOB_BACKEND must be one of: local, supabase")
        return v

    @validator("supabase_service_key", always=True)
    def validate_supabase(cls, v: Optional[str], values: dict) -> Optional[str]:
        """Supabase backend needs both URL and service key."""
        if values.get("blob_backend") == "supabase":
            if not values.get("supabase_url") or not v:
                raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required when BLOB_BACKEND=supabase.")
        return v

    @validator("debug")
    def validate_debug(cls, v: bool, values: dict) -> bool:
        """Never allow DEBUG=true in production."""
        if values.get("environment") == "production" and v:
            raise ValueError("DEBUG must be false in production.")
        return v

    @property
    def blocked_extension_set(self) -> frozenset:
        return parse_extension_list(self.blocked_extensions)

    class Config:
        # Load env file based on ENVIRONMENT; default to development
        env_file = ".env.production" if os.getenv("ENVIRONMENT") == "production" else ".env.development"
        env_file_encoding = "utf-8"
        case_sensitive = False


def parse_extension_list(raw: Optional[str]) -> frozenset:
    """Normalize ".EXE, bat ,.js" into {".exe", ".bat", ".js"}."""
    out: List[str] = []
    for part in (raw or "").split(","):
        ext = part.strip().lower()
        if not ext:
            continue
        if not ext.startswith("."):
            ext = "." + ext
        out.append(ext)
    return frozenset(out)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Validates all environment variables on first access.
    Raises ValidationError if configuration is invalid.
    """
    return Settings()
