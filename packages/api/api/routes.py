"""API route definitions."""

import logging
from contextlib import aclosing
from datetime import datetime, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, Request, status
from fastapi.responses import RedirectResponse, StreamingResponse

from api.auth import require_admin_key
from api.errors import ApiError
from api.rate_limit import rate_limit
from api.schemas import (
    ChatRequest,
    ChatResponse,
    HealthStatus,
    NoteRecord,
    NoteRequest,
    NoteResponse,
)
from api.settings import Settings
from api.sse import SSE_HEADERS, encode_event
from chatbot.ChatBot import ChatBot, validate_message
from chatbot.errors import (
    GENERIC_ERROR_MESSAGE,
    InvalidMessageError,
    RelayTimeoutError,
    UpstreamError,
)
from notes.errors import (
    READ_FAILED_MESSAGE,
    SAVE_FAILED_MESSAGE,
    STORE_UNREACHABLE_MESSAGE,
    NoteStoreError,
    StoreUnreachableError,
)
from notes.models import NoteSubmission
from notes.NoteService import NoteService, validate_note_fields

logger = logging.getLogger(__name__)

SERVICE_NAME = "Portfolio Assistant API"

router = APIRouter(prefix="/api")


# ---------------------------------------------------------------------------
# Health check and résumé
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthStatus)
async def health_check():
    """Basic liveness probe."""
    return HealthStatus(
        timestamp=datetime.now(timezone.utc).isoformat(),
        service=SERVICE_NAME,
    )


@router.get("/resume")
async def resume(request: Request):
    """Redirect to the hosted résumé PDF."""
    settings: Settings = request.app.state.settings
    return RedirectResponse(
        settings.resume_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_bot(request: Request) -> ChatBot:
    """Return the shared ChatBot, or fail if no OpenAI key was configured."""
    bot = request.app.state.bot
    if bot is None:
        raise ApiError(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="OpenAI API key is not configured",
        )
    return bot


def _get_note_service(request: Request) -> NoteService:
    """Return the shared NoteService, or fail if no store was configured."""
    service = request.app.state.note_service
    if service is None:
        raise ApiError(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database configuration missing",
        )
    return service


def _details(request: Request, exc: BaseException) -> dict:
    """Technical detail for the error body, only in development."""
    settings: Settings = request.app.state.settings
    return {"details": str(exc)} if settings.is_development else {}


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


@router.post("/chat", response_model=None)
async def chat(
    body: ChatRequest,
    request: Request,
    client_ip: str = Depends(rate_limit("chat")),
):
    """Answer a question about the portfolio owner.

    Streams Server-Sent Events by default; ``{"stream": false}`` returns a
    single JSON reply instead.  This endpoint is rate-limited.

    A body that is not valid JSON is rejected with 400 while the request is
    parsed, before the rate limit is consulted, so it is not counted.
    """
    try:
        message = validate_message(body.message)
    except InvalidMessageError as e:
        raise ApiError(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    bot = _get_bot(request)
    turn = bot.start_turn(message)

    if not body.stream:
        try:
            reply = await bot.complete(turn)
        except RelayTimeoutError as e:
            raise ApiError(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=str(e),
                extra=_details(request, e),
            ) from e
        except UpstreamError as e:
            raise ApiError(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=GENERIC_ERROR_MESSAGE,
                extra=_details(request, e),
            ) from e
        return ChatResponse(response=reply)

    async def _event_generator():
        # Headers are committed once the first chunk goes out, so every
        # failure from here on has to travel as an event.
        try:
            async with aclosing(bot.stream(turn)) as events:
                async for event in events:
                    yield encode_event(event)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Error in chat stream for %s", client_ip)
            yield encode_event(bot.error_event(GENERIC_ERROR_MESSAGE, str(exc)))

    return StreamingResponse(
        _event_generator(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------


@router.post("/leave-note", response_model=NoteResponse)
async def leave_note(
    body: NoteRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    client_ip: str = Depends(rate_limit("note")),
):
    """Save a contact-form note and send optional copies in the background.

    This endpoint is rate-limited.
    """
    if not validate_note_fields(body.name, body.email, body.message):
        raise ApiError(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name, email, and message are required",
        )

    service = _get_note_service(request)
    note = NoteSubmission(
        name=body.name,
        email=body.email,
        message=body.message,
        contact_info=body.contact_info or "",
        ip_address=client_ip,
    )

    try:
        await service.submit(note)
    except NoteStoreError as e:
        logger.error("Error saving note: %s", e)
        raise ApiError(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=SAVE_FAILED_MESSAGE,
        ) from e
    except StoreUnreachableError as e:
        raise ApiError(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=STORE_UNREACHABLE_MESSAGE,
            extra=_details(request, e),
        ) from e
    except Exception as e:  # noqa: BLE001
        logger.exception("Error in leave-note endpoint")
        raise ApiError(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=GENERIC_ERROR_MESSAGE,
            extra=_details(request, e),
        ) from e

    background_tasks.add_task(service.notify, note)
    return NoteResponse(note_id=note.id)


@router.get("/notes", response_model=list[NoteRecord])
async def list_notes(
    request: Request,
    _: str = Depends(require_admin_key),
):
    """List every stored note, newest first.  Requires an admin API key."""
    service = _get_note_service(request)
    try:
        rows = await service.list_notes()
    except StoreUnreachableError as e:
        raise ApiError(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=STORE_UNREACHABLE_MESSAGE,
            extra=_details(request, e),
        ) from e
    except Exception as e:  # noqa: BLE001
        logger.exception("Error reading notes")
        raise ApiError(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=READ_FAILED_MESSAGE,
            extra=_details(request, e),
        ) from e
    return [NoteRecord(**row) for row in rows]
