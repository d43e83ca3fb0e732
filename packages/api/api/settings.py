"""Environment-driven configuration for the API.

Values are read once at startup (after ``load_dotenv()``) into an immutable
:class:`Settings` instance stored on ``app.state``.
"""

import os
from dataclasses import dataclass, field


DEFAULT_OWNER_NAME = "Anmol Baruwal"
DEFAULT_RESUME_URL = "https://anmolbaruwal.vercel.app/AnmolBaruwal__Resume.pdf"


def _get_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _get_float(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


def _get_optional(name: str) -> str | None:
    value = os.environ.get(name, "").strip()
    return value or None


def _get_list(name: str, sep: str = ",") -> list[str]:
    raw = os.environ.get(name, "")
    return [item.strip() for item in raw.split(sep) if item.strip()]


@dataclass(frozen=True)
class Settings:
    """Application settings.  See ``.env.example`` for every variable."""

    environment: str = "production"
    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    admin_api_keys: list[str] = field(default_factory=list)

    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    chat_max_tokens: int = 800
    chat_temperature: float = 0.3
    stream_timeout_seconds: float = 60.0

    chat_rate_limit: int = 5
    chat_rate_window_seconds: int = 5 * 60
    note_rate_limit: int = 1
    note_rate_window_seconds: int = 10 * 60

    context_paths: list[str] = field(default_factory=list)
    context_refresh: str = "ttl"
    context_cache_ttl_seconds: float = 5 * 60

    owner_name: str = DEFAULT_OWNER_NAME
    resume_url: str = DEFAULT_RESUME_URL

    notes_backend: str = "supabase"
    supabase_url: str | None = None
    supabase_service_key: str | None = None
    notes_db_path: str | None = None

    resend_api_key: str | None = None
    notify_email: str | None = None
    notify_from: str = "Portfolio <onboarding@resend.dev>"
    sheet_id: str | None = None
    google_service_account_file: str | None = None

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        return cls(
            environment=os.environ.get("ENVIRONMENT", "production"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            cors_origins=_get_list("CORS_ORIGINS") or ["*"],
            admin_api_keys=_get_list("ADMIN_API_KEYS"),
            openai_api_key=_get_optional("OPENAI_API_KEY"),
            openai_model=os.environ.get("OPENAI_MODEL", "gpt-4o-mini"),
            chat_max_tokens=_get_int("CHAT_MAX_TOKENS", 800),
            chat_temperature=_get_float("CHAT_TEMPERATURE", 0.3),
            stream_timeout_seconds=_get_float("STREAM_TIMEOUT_SECONDS", 60.0),
            chat_rate_limit=_get_int("CHAT_RATE_LIMIT", 5),
            chat_rate_window_seconds=_get_int("CHAT_RATE_WINDOW_SECONDS", 5 * 60),
            note_rate_limit=_get_int("NOTE_RATE_LIMIT", 1),
            note_rate_window_seconds=_get_int("NOTE_RATE_WINDOW_SECONDS", 10 * 60),
            context_paths=_get_list("CONTEXT_PATHS", os.pathsep),
            context_refresh=os.environ.get("CONTEXT_REFRESH", "ttl"),
            context_cache_ttl_seconds=_get_float("CONTEXT_CACHE_TTL_SECONDS", 5 * 60),
            owner_name=os.environ.get("OWNER_NAME", DEFAULT_OWNER_NAME),
            resume_url=os.environ.get("RESUME_URL", DEFAULT_RESUME_URL),
            notes_backend=os.environ.get("NOTES_BACKEND", "supabase").lower(),
            supabase_url=_get_optional("SUPABASE_URL"),
            supabase_service_key=_get_optional("SUPABASE_SERVICE_KEY"),
            notes_db_path=_get_optional("NOTES_DB_PATH"),
            resend_api_key=_get_optional("RESEND_API_KEY"),
            notify_email=_get_optional("NOTIFY_EMAIL"),
            notify_from=os.environ.get("NOTIFY_FROM", "Portfolio <onboarding@resend.dev>"),
            sheet_id=_get_optional("SHEET_ID"),
            google_service_account_file=_get_optional("GOOGLE_SERVICE_ACCOUNT_FILE"),
        )
