import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_path: str,
        jwt_secret: str,
        jwt_algorithm: str = "HS256",
        jwt_expires_hours: int = 24,
        cors_origins: Optional[list[str]] = None,
        cors_methods: Optional[list[str]] = None,
        cors_headers: Optional[list[str]] = None,
        uploads_dir: str = "uploads/profiles",
        max_file_size: int = 5 * 1024 * 1024,
        log_level: str = "INFO",
    ) -> None:
        self.database_path = database_path
        self.jwt_secret = jwt_secret
        self.jwt_algorithm = jwt_algorithm
        self.jwt_expires_hours = jwt_expires_hours
        self.cors_origins = cors_origins or ["*"]
        self.cors_methods = cors_methods or ["GET", "POST", "PUT", "DELETE"]
        self.cors_headers = cors_headers or ["Content-Type", "Authorization"]
        self.uploads_dir = uploads_dir
        self.max_file_size = max_file_size
        self.log_level = log_level


def _split(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("EXPENSES_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "expense_tracker.db"
    return Settings(
        database_path=os.getenv("EXPENSES_DATABASE_PATH", str(default_db)),
        jwt_secret=os.getenv(
            "EXPENSES_JWT_SECRET",
            "your-secret-key-change-in-production-use-openssl-rand-hex-32",
        ),
        jwt_algorithm=os.getenv("EXPENSES_JWT_ALGORITHM", "HS256"),
        jwt_expires_hours=int(os.getenv("EXPENSES_JWT_EXPIRES_HOURS", "24")),
        cors_origins=_split(os.getenv("EXPENSES_CORS_ORIGINS", "*")),
        cors_methods=_split(os.getenv("EXPENSES_CORS_METHODS", "GET,POST,PUT,DELETE")),
        cors_headers=_split(
            os.getenv("EXPENSES_CORS_HEADERS", "Content-Type,Authorization")
        ),
        uploads_dir=os.getenv("EXPENSES_UPLOADS_DIR", str(data_dir / "uploads" / "profiles")),
        max_file_size=int(os.getenv("EXPENSES_MAX_FILE_SIZE", str(5 * 1024 * 1024))),
        log_level=os.getenv("EXPENSES_LOG_LEVEL", "INFO"),
    )
