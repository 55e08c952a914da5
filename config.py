import os
from dataclasses import dataclass
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, read from the environment (and a local .env)."""

    APP_ENV: str = os.environ.get("APP_ENV", "development").strip().lower()

    DATABASE_URL: str = os.environ.get("DATABASE_URL", "mongodb://localhost:27017")
    DATABASE_NAME: str = os.environ.get("DATABASE_NAME", "marketplace")

    # In production SECRET_KEY must be set to a strong random value.
    SECRET_KEY: str = os.environ.get("SECRET_KEY", "supersecretkey")
    ALGORITHM: str = "HS256"
    ADMIN_TOKEN_TTL_HOURS: int = _env_int("ADMIN_TOKEN_TTL_HOURS", 24)
    USER_TOKEN_TTL_HOURS: int = _env_int("USER_TOKEN_TTL_HOURS", 7 * 24)
    BCRYPT_ROUNDS: int = _env_int("BCRYPT_ROUNDS", 12)

    # Seed admin, created on startup when both are set
    ADMIN_EMAIL: str = os.environ.get("ADMIN_EMAIL", "")
    ADMIN_PASS: str = os.environ.get("ADMIN_PASS", "")

    CLIENT_ORIGIN: str = os.environ.get("CLIENT_ORIGIN", "http://localhost:5173")

    UPLOAD_DIR: str = os.environ.get("UPLOAD_DIR", os.path.join("public", "images"))
    MAX_IMAGE_BYTES: int = _env_int("MAX_IMAGE_BYTES", 3 * 1024 * 1024)
    MAX_IMAGES: int = _env_int("MAX_IMAGES", 3)

    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO").upper()

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

    @property
    def cors_origins(self) -> List[str]:
        return [o.strip() for o in self.CLIENT_ORIGIN.split(",") if o.strip()]


settings = Settings()
