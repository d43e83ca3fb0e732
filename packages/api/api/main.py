"""FastAPI application entry point."""

import asyncio
import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from google.auth.exceptions import GoogleAuthError  # type: ignore

from chatbot.ChatBot import ChatBot
from chatbot.ContextLoader import ContextLoader, default_context_paths
from chatbot.errors import ConfigurationError
from chatbot.prompts import get_fallback_context
from notes.NoteService import NoteService, Notifier, NoteStore
from notes.notifiers import EmailNotifier, SheetsNotifier, load_sheets_credentials
from notes.SQLiteNoteStore import SQLiteNoteStore
from notes.SupabaseNoteStore import SupabaseNoteStore

from api.errors import register_exception_handlers
from api.logging_config import configure_logging
from api.rate_limit import FixedWindowRateLimiter, RateLimitPolicy
from api.routes import router
from api.settings import Settings

logger = logging.getLogger(__name__)

# Middleware is configured at import time, so .env must be loaded first.
load_dotenv()


def build_rate_limit_policies(settings: Settings) -> dict[str, RateLimitPolicy]:
    """Independent policies for the chat and note endpoints."""
    return {
        "chat": RateLimitPolicy(
            name="chat",
            max_requests=settings.chat_rate_limit,
            window_seconds=settings.chat_rate_window_seconds,
            message="Too many chat requests, please try again later.",
        ),
        "note": RateLimitPolicy(
            name="note",
            max_requests=settings.note_rate_limit,
            window_seconds=settings.note_rate_window_seconds,
            message="Too many note submissions, please try again later.",
        ),
    }


def build_context_loader(settings: Settings) -> ContextLoader:
    return ContextLoader(
        settings.context_paths or default_context_paths(),
        get_fallback_context(settings.owner_name),
        ttl_seconds=settings.context_cache_ttl_seconds,
        policy=settings.context_refresh,
    )


def build_bot(settings: Settings, context_loader: ContextLoader) -> ChatBot | None:
    """Create the chat relay, or ``None`` if no OpenAI key is configured."""
    try:
        return ChatBot(
            context_loader,
            settings.openai_api_key,
            owner_name=settings.owner_name,
            resume_url=settings.resume_url,
            model=settings.openai_model,
            max_tokens=settings.chat_max_tokens,
            temperature=settings.chat_temperature,
            stream_timeout=settings.stream_timeout_seconds,
            expose_details=settings.is_development,
        )
    except ConfigurationError as e:
        logger.warning("Chat disabled: %s", e)
        return None


async def warm_up_bot(bot: ChatBot) -> None:
    """Load the tokenizer in a worker thread so no request has to."""
    try:
        await asyncio.to_thread(bot.warm_up)
    except Exception as e:  # noqa: BLE001
        logger.warning("Tokenizer warm-up failed, will retry on demand: %s", e)


def build_note_store(settings: Settings) -> NoteStore | None:
    """Create the configured note store, or ``None`` if it is not configured."""
    try:
        if settings.notes_backend == "sqlite":
            if not settings.notes_db_path:
                logger.warning("Notes disabled: NOTES_DB_PATH is not set")
                return None
            return SQLiteNoteStore(settings.notes_db_path)

        if not settings.supabase_url or not settings.supabase_service_key:
            logger.warning("Notes disabled: SUPABASE_URL or SUPABASE_SERVICE_KEY missing")
            return None
        return SupabaseNoteStore(settings.supabase_url, settings.supabase_service_key)
    except Exception as e:  # noqa: BLE001
        logger.error("Failed to initialise %s note store: %s", settings.notes_backend, e)
        return None


def build_notifiers(settings: Settings, http: httpx.AsyncClient) -> list[Notifier]:
    """Create the optional notifiers that have credentials configured."""
    notifiers: list[Notifier] = []
    if settings.resend_api_key and settings.notify_email:
        notifiers.append(
            EmailNotifier(
                http,
                settings.resend_api_key,
                settings.notify_email,
                sender=settings.notify_from,
            )
        )
    if settings.sheet_id:
        try:
            credentials = load_sheets_credentials(settings.google_service_account_file)
        except (GoogleAuthError, OSError, ValueError) as e:
            logger.warning("Google Sheets copy disabled: %s", e)
        else:
            notifiers.append(SheetsNotifier(http, settings.sheet_id, credentials))
    return notifiers


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Set up and tear down application-wide resources."""
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    context_loader = build_context_loader(settings)
    http = httpx.AsyncClient(timeout=10.0)

    store = build_note_store(settings)
    note_service = None
    if store is not None:
        note_service = NoteService(store, build_notifiers(settings, http))

    app.state.settings = settings
    app.state.rate_limiter = FixedWindowRateLimiter()
    app.state.rate_limit_policies = build_rate_limit_policies(settings)
    app.state.context_loader = context_loader
    app.state.bot = build_bot(settings, context_loader)
    if app.state.bot is not None:
        await warm_up_bot(app.state.bot)
    app.state.note_service = note_service

    logger.info(
        "Portfolio API ready (environment=%s, chat=%s, notes=%s)",
        settings.environment,
        "on" if app.state.bot else "off",
        settings.notes_backend if note_service else "off",
    )

    yield

    await http.aclose()
    close = getattr(store, "close", None)
    if close is not None:
        close()


app = FastAPI(
    title="Portfolio Assistant API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=Settings.from_env().cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[
        "Retry-After",
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "X-RateLimit-Reset",
    ],
)

register_exception_handlers(app)
app.include_router(router)


def serve() -> None:
    """Start the uvicorn server using environment configuration."""
    host = os.environ.get("API_HOST", "0.0.0.0")
    port = int(os.environ.get("API_PORT", "3000"))
    uvicorn.run("api.main:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    serve()
