"""SQLite note store for local development.

Opens (and if needed creates) a SQLite database file holding a ``notes``
table with the same columns as the hosted store.
"""

import asyncio
import sqlite3
import threading
from pathlib import Path

from notes.errors import NoteStoreError
from notes.models import NoteSubmission

_CREATE_TABLE = """\
CREATE TABLE IF NOT EXISTS notes (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL,
    message TEXT NOT NULL,
    contact_info TEXT NOT NULL DEFAULT '',
    ip_address TEXT NOT NULL,
    created_at TEXT NOT NULL
)
"""

_INSERT_NOTE = """\
INSERT INTO notes (id, name, email, message, contact_info, ip_address, created_at)
VALUES (:id, :name, :email, :message, :contact_info, :ip_address, :created_at)
"""

_SELECT_NOTES = """\
SELECT id, name, email, message, contact_info, ip_address, created_at
FROM notes ORDER BY created_at DESC
"""


class SQLiteNoteStore:
    """Persist notes to a single SQLite connection.

    Writes run in a worker thread so the event loop never blocks on disk;
    a lock serializes them on the shared connection.
    """

    def __init__(self, db_path: str) -> None:
        """Open a connection to the given database file.

        Args:
            db_path: Filesystem path to the SQLite database.  Parent
                directories must already exist.

        Raises:
            FileNotFoundError: If the parent directory does not exist.
            ConnectionError: If SQLite cannot open the file.
        """
        resolved = Path(db_path).expanduser().resolve()
        if not resolved.parent.is_dir():
            raise FileNotFoundError(
                f"Could not resolve database path '{db_path}': "
                f"directory '{resolved.parent}' does not exist"
            )

        try:
            self._connection = sqlite3.connect(str(resolved), check_same_thread=False)
            self._connection.execute(_CREATE_TABLE)
            self._connection.commit()
        except sqlite3.Error as e:
            raise ConnectionError(
                f"Failed to connect to database at '{resolved}': {e}"
            ) from e

        self._lock = threading.Lock()

    async def save(self, note: NoteSubmission) -> None:
        """Insert ``note`` as a new row.

        Raises:
            NoteStoreError: If SQLite rejects the insert.
        """
        await asyncio.to_thread(self._insert, note)

    async def list_notes(self) -> list[dict]:
        """Return all stored notes, newest first.

        Raises:
            NoteStoreError: If SQLite rejects the query.
        """
        return await asyncio.to_thread(self._select_all)

    def close(self) -> None:
        self._connection.close()

    def _select_all(self) -> list[dict]:
        with self._lock:
            try:
                cursor = self._connection.execute(_SELECT_NOTES)
            except sqlite3.Error as e:
                raise NoteStoreError(f"Query failed: {e}") from e
            columns = [c[0] for c in cursor.description]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]

    def _insert(self, note: NoteSubmission) -> None:
        params = {**note.to_record(), "created_at": note.created_at}
        with self._lock:
            try:
                self._connection.execute(_INSERT_NOTE, params)
                self._connection.commit()
            except sqlite3.Error as e:
                self._connection.rollback()
                raise NoteStoreError(f"Insert failed: {e}") from e
