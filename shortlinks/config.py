import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Explicitly load .env from project root (parent of shortlinks/)
ENV_PATH = Path(__file__).parent.parent / ".env"

logger = logging.getLogger("shortlinks.config")

DEV_SECRET_KEY = "dev-secret-key-change-in-production"
DEV_ADMIN_USERNAME = "admin"
DEV_ADMIN_PASSWORD = "admin123"


@dataclass
class Settings:
    environment: str = "dev"
    database_url: str = ""
    public_base_url: str = "http://localhost:8000"
    secret_key: str = DEV_SECRET_KEY
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    admin_username: str = DEV_ADMIN_USERNAME
    admin_password: str = DEV_ADMIN_PASSWORD
    store_timeout: float = 10.0
    max_allocation_attempts: int = 1000
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000

    def __post_init__(self):
        if not self.database_url:
            # SQLite for local dev, stored next to the package folder
            db_path = Path(__file__).parent.parent / "shortlinks_dev.db"
            self.database_url = f"sqlite+aiosqlite:///{db_path}"
        self.public_base_url = self.public_base_url.rstrip("/")

    @property
    def is_prod(self) -> bool:
        return self.environment == "prod"


def load_settings() -> Settings:
    load_dotenv(ENV_PATH)
    environment = os.getenv("ENVIRONMENT", "dev")

    database_url = os.getenv("DATABASE_URL", "")
    secret_key = (os.getenv("SECRET_KEY") or "").strip()
    # Accept USERNAME/PASSWORD or ADMIN_* (either works)
    admin_username = (os.getenv("ADMIN_USERNAME") or os.getenv("USERNAME") or "").strip()
    admin_password = (os.getenv("ADMIN_PASSWORD") or os.getenv("PASSWORD") or "").strip()

    if environment == "prod":
        if not database_url:
            raise RuntimeError("DATABASE_URL must be set in production")
        if not secret_key:
            raise RuntimeError("SECRET_KEY is not set")
        if not admin_username or not admin_password:
            raise RuntimeError("Set ADMIN_USERNAME/ADMIN_PASSWORD in .env")
    else:
        if not secret_key:
            logger.warning("SECRET_KEY not set, using the development default")
            secret_key = DEV_SECRET_KEY
        if not admin_password:
            logger.warning('ADMIN_PASSWORD not set, using default password "%s"', DEV_ADMIN_PASSWORD)
            admin_username = admin_username or DEV_ADMIN_USERNAME
            admin_password = DEV_ADMIN_PASSWORD
        admin_username = admin_username or DEV_ADMIN_USERNAME

    return Settings(
        environment=environment,
        database_url=database_url,
        public_base_url=os.getenv("PUBLIC_BASE_URL", "http://localhost:8000"),
        secret_key=secret_key,
        algorithm=os.getenv("ALGORITHM", "HS256"),
        access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60)),
        admin_username=admin_username,
        admin_password=admin_password,
        store_timeout=float(os.getenv("STORE_TIMEOUT", 10)),
        max_allocation_attempts=int(os.getenv("MAX_ALLOCATION_ATTEMPTS", 1000)),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", 8000)),
    )
