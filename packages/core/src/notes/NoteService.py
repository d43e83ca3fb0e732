"""Save contact-form notes, list them for the owner, and fan out
best-effort notifications."""

import logging
from collections.abc import Sequence
from typing import Protocol

from notes.errors import NoteStoreError, StoreUnreachableError, is_unreachable
from notes.models import NoteSubmission

logger = logging.getLogger(__name__)


class NoteStore(Protocol):
    async def save(self, note: NoteSubmission) -> None: ...

    async def list_notes(self) -> list[dict]: ...


class Notifier(Protocol):
    name: str

    async def notify(self, note: NoteSubmission) -> None: ...


def validate_note_fields(name: object, email: object, message: object) -> bool:
    """Return True if all required fields are non-blank strings."""
    return all(
        isinstance(value, str) and value.strip()
        for value in (name, email, message)
    )


class NoteService:
    """Persist a note exactly once, then notify without risking the result."""

    def __init__(
        self, store: NoteStore, notifiers: Sequence[Notifier] = ()
    ) -> None:
        self._store = store
        self._notifiers = list(notifiers)

    async def submit(self, note: NoteSubmission) -> NoteSubmission:
        """Write ``note`` through the store.

        Raises:
            NoteStoreError: If the store rejected the write.
            StoreUnreachableError: If the store could not be reached.
        """
        try:
            await self._store.save(note)
        except NoteStoreError:
            raise
        except Exception as e:
            if is_unreachable(e):
                logger.error("Note store unreachable: %s", e)
                raise StoreUnreachableError(str(e)) from e
            raise

        logger.info(
            "New note received: id=%s name=%s email=%s ip=%s",
            note.id,
            note.name,
            note.email,
            note.ip_address,
        )
        return note

    async def list_notes(self) -> list[dict]:
        """Return every stored note, newest first.

        Raises:
            NoteStoreError: If the store rejected the query.
            StoreUnreachableError: If the store could not be reached.
        """
        try:
            return await self._store.list_notes()
        except NoteStoreError:
            raise
        except Exception as e:
            if is_unreachable(e):
                logger.error("Note store unreachable: %s", e)
                raise StoreUnreachableError(str(e)) from e
            raise

    async def notify(self, note: NoteSubmission) -> None:
        """Run every notifier; failures are logged and never re-raised."""
        for notifier in self._notifiers:
            await run_best_effort(notifier.name, notifier.notify(note))


async def run_best_effort(label: str, awaitable) -> bool:
    """Await a side task, logging instead of raising if it fails.

    Returns:
        True if the task finished without error.
    """
    try:
        await awaitable
    except Exception as e:  # noqa: BLE001
        logger.error("Best-effort task '%s' failed: %s", label, e)
        return False
    return True
