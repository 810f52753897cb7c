"""
Configuration for TAL Hub
=========================

Environment variables (case-insensitive):
- DATABASE_URL: SQLAlchemy URL (default: sqlite:///./talhub.db)
- JWT_SECRET_KEY: Secret used to sign access/refresh/magic-link tokens
- STORAGE_BACKEND: local|s3 (default: local)
- STORAGE_PATH: Base directory for the local backend (default: ./storage)
- STORAGE_BUCKET: Bucket name for the s3 backend (default: talhub-docs)
- MAX_UPLOAD_BYTES: Largest accepted upload (default: 50 MiB)
- INVITATION_EXPIRE_DAYS: Lifetime of a case invitation (default: 7)
- APP_URL: Public URL used in invitation and magic links
- SMTP_HOST / SMTP_PORT / SMTP_USER / SMTP_PASSWORD / SMTP_FROM / SMTP_USE_TLS
- SEED_DEMO_DATA: Create demo profiles and a demo case at startup
"""

from typing import Optional, List
from pydantic_settings import BaseSettings
from functools import lru_cache


DEV_SECRET_KEY = "dev-secret-key-change-in-production"


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # Database
    database_url: str = "sqlite:///./talhub.db"
    sql_echo: bool = False
    db_connect_timeout: int = 5

    # Tokens
    jwt_secret_key: str = DEV_SECRET_KEY
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60
    jwt_refresh_token_expire_days: int = 7
    magic_link_expire_minutes: int = 15

    # Blob storage
    storage_backend: str = "local"  # local | s3
    storage_path: str = "./storage"
    storage_bucket: str = "talhub-docs"
    s3_endpoint: Optional[str] = None
    s3_region: Optional[str] = None
    signed_url_expire_seconds: int = 3600
    max_upload_bytes: int = 50 * 1024 * 1024

    # Invitations
    invitation_expire_days: int = 7
    app_url: str = "http://localhost:3000"

    # Email (optional - links are logged when SMTP is not configured)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = "noreply@talhub.app"
    smtp_use_tls: bool = True

    # HTTP
    cors_allow_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    seed_demo_data: bool = False

    # Service info
    service_version: str = "1.0.0"

    class Config:
        env_prefix = ""
        case_sensitive = False
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def cors_origins(self) -> List[str]:
        origins: List[str] = []
        for item in self.cors_allow_origins.split(","):
            origin = item.strip().strip('"').strip("'").rstrip("/")
            if origin:
                origins.append(origin)
        return origins

    @property
    def email_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password)

    def validate_config(self) -> List[str]:
        """Validate configuration, return list of warnings"""
        warnings = []

        if self.jwt_secret_key == DEV_SECRET_KEY:
            warnings.append("JWT_SECRET_KEY not set - using the development secret")

        if self.storage_backend == "s3":
            if not self.storage_bucket:
                warnings.append("STORAGE_BACKEND=s3 but STORAGE_BUCKET not set")
        elif self.storage_backend != "local":
            warnings.append(f"Unknown STORAGE_BACKEND={self.storage_backend!r}, falling back to local")

        if self.smtp_host and not self.email_configured:
            warnings.append("SMTP_HOST set but SMTP_USER/SMTP_PASSWORD missing - emails will only be logged")

        return warnings


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
