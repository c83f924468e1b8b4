import os
import secrets
from datetime import timedelta
from pathlib import Path

from pydantic import BaseModel, ConfigDict, model_validator

# Base directory of the project (parent of 'app')
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Database Directory
DB_DIR = BASE_DIR / "db"

APP_ENV = os.getenv("APP_ENV", "development").lower()
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite+aiosqlite:///{DB_DIR / 'trynet.db'}")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Token signing
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "10"))
REFRESH_TOKEN_EXPIRE_HOURS = int(os.getenv("REFRESH_TOKEN_EXPIRE_HOURS", "24"))

# Bootstrap admin
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")

HISTORY_PAGE_LIMIT_MAX = int(os.getenv("HISTORY_PAGE_LIMIT_MAX", "100"))


def is_production() -> bool:
    return APP_ENV == "production"


def get_cors_allow_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS", "*")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def get_trusted_hosts() -> list[str]:
    raw = os.getenv("TRUSTED_HOSTS", "*")
    return [host.strip() for host in raw.split(",") if host.strip()]


class Settings(BaseModel):
    """Runtime settings snapshot, exposed on the health endpoint and app state."""

    app_name: str = "trynet maintenance API"
    app_env: str = APP_ENV
    database_url: str = DATABASE_URL
    log_level: str = LOG_LEVEL
    access_token_expire_hours: int = ACCESS_TOKEN_EXPIRE_HOURS
    refresh_token_expire_hours: int = REFRESH_TOKEN_EXPIRE_HOURS
    history_page_limit_max: int = HISTORY_PAGE_LIMIT_MAX


settings = Settings()


class SigningConfig(BaseModel):
    """
    Secrets and lifetimes for the three token classes.

    Built once at startup and passed into the TokenIssuer. The three secrets
    must be pairwise distinct so a token of one class never validates as
    another.
    """

    model_config = ConfigDict(frozen=True)

    access_secret: str
    refresh_secret: str
    decoy_secret: str
    algorithm: str = JWT_ALGORITHM
    access_ttl: timedelta = timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS)
    refresh_ttl: timedelta = timedelta(hours=REFRESH_TOKEN_EXPIRE_HOURS)

    @model_validator(mode="after")
    def check_secrets(self) -> "SigningConfig":
        secrets_ = [self.access_secret, self.refresh_secret, self.decoy_secret]
        if not all(secrets_):
            raise ValueError("Signing secrets must be non-empty")
        if len(set(secrets_)) != 3:
            raise ValueError("Access, refresh and decoy secrets must be distinct")
        return self

    @classmethod
    def from_env(cls) -> "SigningConfig":
        """
        Read JWT_SECRET, JWT_REFRESH and JWT_BAIT from the environment.

        Missing secrets are replaced by random ones (development only). Use
        missing_env_secrets() to report which ones were generated.
        """
        return cls(
            access_secret=os.getenv("JWT_SECRET") or secrets.token_urlsafe(32),
            refresh_secret=os.getenv("JWT_REFRESH") or secrets.token_urlsafe(32),
            decoy_secret=os.getenv("JWT_BAIT") or secrets.token_urlsafe(32),
        )

    @staticmethod
    def missing_env_secrets() -> list[str]:
        return [name for name in ("JWT_SECRET", "JWT_REFRESH", "JWT_BAIT") if not os.getenv(name)]


# Ensure DB directory exists
os.makedirs(DB_DIR, exist_ok=True)
