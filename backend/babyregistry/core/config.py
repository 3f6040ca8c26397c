import json
import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Baby Registry API"
    frontend_url: str = "http://localhost:3000"
    environment: str = "local"
    backend_cors_origins_raw: str = ""  # Comma-separated or JSON array

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "allow",
    }

    @property
    def backend_cors_origins(self) -> list[str]:
        """Parse CORS origins from raw string."""
        raw = os.getenv("BACKEND_CORS_ORIGINS", self.backend_cors_origins_raw).strip()
        if not raw:
            return ["http://localhost:3000", "http://127.0.0.1:3000"]
        if raw.startswith("["):
            try:
                parsed = json.loads(raw)
                if isinstance(parsed, list):
                    return [str(item).strip() for item in parsed if str(item).strip()]
            except ValueError:
                pass
        return [item.strip() for item in raw.split(",") if item.strip()]

    # Database: sqlite+aiosqlite:///./babyregistry.db (dev) | postgresql+asyncpg://... (prod)
    database_dsn: str = "sqlite+aiosqlite:///./babyregistry.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_recycle: int = 1800
    db_pool_timeout: int = 30
    # seconds a SQLite writer waits on a locked database before failing
    sqlite_busy_timeout_seconds: float = 5.0

    access_token_expire_minutes: int = 60 * 24 * 7
    # SECURITY: override via JWT_SECRET_KEY env var
    jwt_secret_key: str = "CHANGE_ME"
    jwt_algorithm: str = "HS256"

    # SMTP settings (optional)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_from_email: str = "noreply@babyregistry.local"
    smtp_from_name: str = "Lista de Regalos"
    smtp_use_tls: bool = True
    email_notifications_enabled: bool = True

    # Best-effort delivery: each attempt is bounded, failures are only logged
    notification_timeout_seconds: float = 20.0
    notification_max_attempts: int = 2
    notification_retry_backoff_seconds: float = 0.5

    slug_max_attempts: int = 5
    activity_feed_limit: int = 20

    rate_limit_enabled: bool = True
    rate_limit_requests: int = 10
    rate_limit_window_seconds: int = 60
    rate_limit_login_requests: int = 5
    rate_limit_reservation_requests: int = 10

    log_level: str = "INFO"
    log_file: str = ""


settings = Settings()
