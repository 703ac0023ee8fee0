import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parents[2]

load_dotenv(ROOT / ".env")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_env: str
    database_url: str
    jwt_secret_key: str
    jwt_algorithm: str
    jwt_access_expire_minutes: int
    cors_origins: str
    log_level: str
    log_dir: str | None
    smtp_host: str | None
    smtp_port: int
    smtp_user: str | None
    smtp_password: str | None
    smtp_from: str
    smtp_start_tls: bool
    email_workers: int
    email_queue_capacity: int
    email_max_attempts: int
    email_retry_delay_seconds: float

    def parsed_cors_origins(self) -> list[str]:
        return [item.strip() for item in self.cors_origins.split(",") if item.strip()]

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host)


@lru_cache
def get_settings() -> Settings:
    return Settings(
        app_name=os.getenv("APP_NAME", "Taskflow API"),
        app_env=os.getenv("APP_ENV", "dev"),
        database_url=os.getenv("DATABASE_URL", f"sqlite:///{ROOT / 'taskflow.db'}"),
        jwt_secret_key=os.getenv("JWT_SECRET_KEY", "change_me_in_env"),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
        jwt_access_expire_minutes=int(os.getenv("JWT_ACCESS_EXPIRE_MINUTES", "480")),
        cors_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        log_dir=os.getenv("LOG_DIR") or None,
        smtp_host=os.getenv("SMTP_HOST") or None,
        smtp_port=int(os.getenv("SMTP_PORT", "587")),
        smtp_user=os.getenv("SMTP_USER") or None,
        smtp_password=os.getenv("SMTP_PASSWORD") or None,
        smtp_from=os.getenv("SMTP_FROM", "noreply@taskflow.local"),
        smtp_start_tls=_env_bool("SMTP_START_TLS", True),
        # Pool never grows past 10 workers.
        email_workers=min(int(os.getenv("EMAIL_WORKERS", "5")), 10),
        email_queue_capacity=int(os.getenv("EMAIL_QUEUE_CAPACITY", "25")),
        email_max_attempts=int(os.getenv("EMAIL_MAX_ATTEMPTS", "3")),
        email_retry_delay_seconds=float(os.getenv("EMAIL_RETRY_DELAY_SECONDS", "2")),
    )
