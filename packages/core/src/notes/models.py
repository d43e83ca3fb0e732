"""Data model for a contact-form submission."""

import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone


def _new_note_id() -> str:
    # Millisecond timestamp plus a random suffix; different clients can
    # submit within the same millisecond.
    return f"{time.time_ns() // 1_000_000}-{secrets.token_hex(3)}"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class NoteSubmission:
    """A note left through the portfolio contact form.

    Attributes:
        name: Sender's name.
        email: Sender's email address.
        message: Free-text note.
        contact_info: Optional extra contact details.
        ip_address: Client address the note was submitted from.
        id: Time-ordered identifier assigned by the server.
        created_at: ISO-8601 UTC submission time.
    """

    name: str
    email: str
    message: str
    contact_info: str = ""
    ip_address: str = "unknown"
    id: str = field(default_factory=_new_note_id)
    created_at: str = field(default_factory=_utc_now)

    def to_record(self) -> dict:
        """Serialize into a row for the ``notes`` table."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "message": self.message,
            "contact_info": self.contact_info,
            "ip_address": self.ip_address,
        }

    def to_row(self) -> list[str]:
        """Serialize into spreadsheet columns A-G."""
        return [
            self.id,
            self.created_at,
            self.name,
            self.email,
            self.message,
            self.contact_info,
            self.ip_address,
        ]
