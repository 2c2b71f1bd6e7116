from dataclasses import dataclass
import os
from dotenv import load_dotenv


load_dotenv()


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    firebase_project_id: str = os.getenv("FIREBASE_PROJECT_ID", "")
    firebase_web_api_key: str = os.getenv("FIREBASE_WEB_API_KEY", "")

    storage_backend: str = os.getenv("STORAGE_BACKEND", "sqlite").strip().lower()
    sqlite_path: str = os.getenv("SQLITE_PATH", "studenthub.db")

    admin_api_key: str = os.getenv("ADMIN_API_KEY", "")
    stats_default_method: str = os.getenv("STATS_DEFAULT_METHOD", "accumulated")
    log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

    cors_allowed_origins: tuple[str, ...] = _split_csv(
        os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
    )
    cors_allow_origin_regex: str = os.getenv(
        "CORS_ALLOW_ORIGIN_REGEX",
        r"^https?:\/\/(localhost|127\.0\.0\.1)(:\d+)?$",
    )


settings = Settings()
