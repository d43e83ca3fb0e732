"""Supabase-backed note store writing to the ``notes`` table."""

import asyncio
import logging

from postgrest.exceptions import APIError  # type: ignore
from supabase import Client, create_client  # type: ignore

from notes.errors import NoteStoreError
from notes.models import NoteSubmission

logger = logging.getLogger(__name__)

NOTES_TABLE = "notes"


class SupabaseNoteStore:
    """Insert notes through the Supabase service-role client."""

    def __init__(
        self,
        url: str,
        service_key: str,
        *,
        client: Client | None = None,
        table: str = NOTES_TABLE,
    ) -> None:
        self._client = client or create_client(url, service_key)
        self._table = table
        logger.info("[Supabase] Note store ready for %s", url)

    async def save(self, note: NoteSubmission) -> None:
        """Insert ``note`` as a single row.

        Network failures propagate unchanged so the caller can tell an
        unreachable project apart from a rejected write.

        Raises:
            NoteStoreError: If Supabase rejects the insert.
        """
        await asyncio.to_thread(self._insert, note)

    def _insert(self, note: NoteSubmission) -> None:
        try:
            self._client.table(self._table).insert([note.to_record()]).execute()
        except APIError as e:
            logger.error("[Supabase] Error saving note %s: %s", note.id, e.message)
            raise NoteStoreError(f"Supabase rejected note: {e.message}") from e

    async def list_notes(self) -> list[dict]:
        """Return all stored notes, newest first.

        Raises:
            NoteStoreError: If Supabase rejects the query.
        """
        return await asyncio.to_thread(self._select_all)

    def _select_all(self) -> list[dict]:
        try:
            response = (
                self._client.table(self._table)
                .select("*")
                .order("created_at", desc=True)
                .execute()
            )
        except APIError as e:
            logger.error("[Supabase] Error reading notes: %s", e.message)
            raise NoteStoreError(f"Supabase rejected query: {e.message}") from e
        return response.data
