"""
Pytest configuration and fixtures for testing.

This module provides:
- Test client for the FastAPI app
- Fake OpenAI client that replays fixed chunks
- Fake note stores and notifiers
- Factory fixtures wiring fakes into app state
"""

import asyncio
import dataclasses
import os
from collections.abc import Generator
from types import SimpleNamespace

import pytest

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "test"
os.environ["NOTES_BACKEND"] = "sqlite"
os.environ.pop("NOTES_DB_PATH", None)
os.environ.pop("OPENAI_API_KEY", None)
os.environ.pop("SHEET_ID", None)
os.environ.pop("ADMIN_API_KEYS", None)
os.environ["CONTEXT_PATHS"] = "/nonexistent/context.md"

from fastapi.testclient import TestClient

from api.main import app
from chatbot.ChatBot import ChatBot
from chatbot.ContextLoader import ContextLoader
from notes.models import NoteSubmission
from notes.NoteService import NoteService

TEST_CONTEXT = "Ada Lovelace wrote the first published algorithm for a computing machine."


# =============================================================================
# FAKE OPENAI CLIENT
# =============================================================================


def _chunk(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(delta=SimpleNamespace(content=content))]
    )


class FakeCompletions:
    """Stands in for ``client.chat.completions``.

    Args:
        chunks: Tokens yielded by a streaming call.
        reply: Content of a non-streaming call.
        delays: Seconds to sleep before each chunk.
        error: Raised by ``create`` itself.
        error_after: Raised by the stream after all chunks.
    """

    def __init__(
        self,
        chunks=(),
        reply="Hello, world",
        delays=None,
        error=None,
        error_after=None,
        reply_delay=0.0,
    ):
        self.chunks = list(chunks)
        self.reply = reply
        self.delays = list(delays or [])
        self.error = error
        self.error_after = error_after
        self.reply_delay = reply_delay
        self.calls: list[dict] = []
        self.yielded: list[str] = []
        self.streams: list[FakeStream] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        if kwargs.get("stream"):
            stream = FakeStream(self._stream())
            self.streams.append(stream)
            return stream
        if self.reply_delay:
            await asyncio.sleep(self.reply_delay)
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=self.reply))]
        )

    async def _stream(self):
        yield SimpleNamespace(choices=[])
        for i, text in enumerate(self.chunks):
            if i < len(self.delays) and self.delays[i]:
                await asyncio.sleep(self.delays[i])
            self.yielded.append(text)
            yield _chunk(text)
        yield _chunk(None)
        if self.error_after is not None:
            raise self.error_after


class FakeStream:
    """Async-iterable, closable stand-in for ``openai.AsyncStream``."""

    def __init__(self, chunks) -> None:
        self._chunks = chunks
        self.closed = False

    def __aiter__(self):
        return self._chunks

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        self.closed = True
        await self._chunks.aclose()


class FakeOpenAI:
    def __init__(self, **kwargs):
        self.chat = SimpleNamespace(completions=FakeCompletions(**kwargs))

    @property
    def completions(self) -> FakeCompletions:
        return self.chat.completions


# =============================================================================
# FAKE NOTE COLLABORATORS
# =============================================================================


class FakeNoteStore:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.saved: list[NoteSubmission] = []

    async def save(self, note: NoteSubmission) -> None:
        if self.error is not None:
            raise self.error
        self.saved.append(note)

    async def list_notes(self) -> list[dict]:
        if self.error is not None:
            raise self.error
        return [
            {**note.to_record(), "created_at": note.created_at}
            for note in reversed(self.saved)
        ]


class FakeNotifier:
    def __init__(self, name: str = "fake", error: Exception | None = None) -> None:
        self.name = name
        self.error = error
        self.notified: list[NoteSubmission] = []

    async def notify(self, note: NoteSubmission) -> None:
        if self.error is not None:
            raise self.error
        self.notified.append(note)


# =============================================================================
# FACTORY FIXTURES
# =============================================================================


@pytest.fixture
def make_bot():
    """Build a ChatBot around a FakeOpenAI client."""

    def _make(stream_timeout: float = 5.0, expose_details: bool = False, **fake_kwargs):
        fake = FakeOpenAI(**fake_kwargs)
        bot = ChatBot(
            ContextLoader([], TEST_CONTEXT),
            None,
            owner_name="Ada Lovelace",
            resume_url="https://example.com/resume.pdf",
            stream_timeout=stream_timeout,
            expose_details=expose_details,
            client=fake,
        )
        return bot, fake

    return _make


@pytest.fixture
def note_store() -> FakeNoteStore:
    return FakeNoteStore()


@pytest.fixture
def sample_note() -> NoteSubmission:
    return NoteSubmission(
        name="Ada",
        email="a@b.com",
        message="hi",
        ip_address="203.0.113.7",
    )


# =============================================================================
# TEST CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """Create a synchronous test client for the FastAPI app."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def install_bot(client: TestClient, make_bot):
    """Put a fake-backed ChatBot on app state and return ``(bot, fake)``."""

    def _install(**kwargs):
        bot, fake = make_bot(**kwargs)
        app.state.bot = bot
        return bot, fake

    return _install


@pytest.fixture
def install_notes(client: TestClient):
    """Put a NoteService around the given fakes on app state."""

    def _install(store=None, notifiers=()):
        store = store or FakeNoteStore()
        app.state.note_service = NoteService(store, notifiers)
        return store

    return _install


@pytest.fixture
def development_mode(client: TestClient):
    """Switch the running app to development settings."""
    original = app.state.settings
    app.state.settings = dataclasses.replace(original, environment="development")
    yield
    app.state.settings = original


@pytest.fixture
def admin_key(client: TestClient) -> str:
    """Configure a single admin API key on the running app."""
    original = app.state.settings
    app.state.settings = dataclasses.replace(original, admin_api_keys=["admin-secret"])
    yield "admin-secret"
    app.state.settings = original
