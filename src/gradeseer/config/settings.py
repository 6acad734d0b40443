from dataclasses import dataclass
import logging
import os
from dotenv import load_dotenv


load_dotenv()


def _split_csv(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _float_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, ""))
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    app_env: str = os.getenv("GRADESEER_ENV", "production")
    log_level: str = os.getenv("GRADESEER_LOG_LEVEL", "INFO")
    database_path: str = os.getenv("GRADESEER_DB_PATH", "gradeseer.db")

    gemini_api_key: str = os.getenv("GEMINI_API_KEY", "")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")
    gemini_endpoint: str = os.getenv("GEMINI_ENDPOINT", "https://generativelanguage.googleapis.com/v1beta")
    gemini_timeout: float = _float_env("GEMINI_TIMEOUT", 30.0)
    gemini_discover_models: bool = os.getenv("GEMINI_DISCOVER_MODELS", "true").strip().lower() in {"1", "true", "yes"}

    resend_api_key: str = os.getenv("RESEND_API_KEY", "")
    email_from: str = os.getenv("GRADESEER_EMAIL_FROM", "GradeSeer <onboarding@resend.dev>")

    cors_allowed_origins: tuple[str, ...] = _split_csv(
        os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    )

    @property
    def is_development(self) -> bool:
        return self.app_env.strip().lower() == "development"


settings = Settings()


def configure_logging(level: str = settings.log_level) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
