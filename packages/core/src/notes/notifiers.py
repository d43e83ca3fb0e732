"""Optional copies of each note: an email to the owner and a spreadsheet row.

Both talk to their provider's HTTP API through a shared ``httpx.AsyncClient``
and raise on any failure; :class:`notes.NoteService.NoteService` decides that
such failures are never fatal.  The spreadsheet copy authenticates with
Google service-account credentials, refreshing the short-lived access token
whenever it has expired.
"""

import asyncio
import html
import logging

import google.auth  # type: ignore
import httpx
from google.auth.credentials import Credentials  # type: ignore
from google.auth.transport.requests import Request as GoogleAuthRequest  # type: ignore
from google.oauth2 import service_account  # type: ignore

from notes.models import NoteSubmission

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
SHEETS_API_URL = "https://sheets.googleapis.com/v4/spreadsheets"
SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
DEFAULT_SENDER = "Portfolio <onboarding@resend.dev>"


def load_sheets_credentials(service_account_file: str | None = None) -> Credentials:
    """Return credentials scoped for the Sheets API.

    Uses the given service-account key file, otherwise the application
    default credentials (``GOOGLE_APPLICATION_CREDENTIALS`` or the runtime's
    attached service account).

    Raises:
        google.auth.exceptions.DefaultCredentialsError: If no credentials
            can be found.
    """
    if service_account_file:
        return service_account.Credentials.from_service_account_file(
            service_account_file, scopes=SHEETS_SCOPES
        )
    credentials, _ = google.auth.default(scopes=SHEETS_SCOPES)
    return credentials


def escape_html(text: str) -> str:
    """Escape ``& < > " '`` so user text cannot inject markup."""
    return html.escape(text, quote=True)


def render_note_email(note: NoteSubmission) -> str:
    """Render the HTML body of the notification email."""
    contact = ""
    if note.contact_info:
        contact = (
            f"<p><strong>Extra contact:</strong> {escape_html(note.contact_info)}</p>"
        )
    return (
        "<h2>New note from your portfolio</h2>"
        f"<p><strong>Name:</strong> {escape_html(note.name)}</p>"
        f"<p><strong>Email:</strong> {escape_html(note.email)}</p>"
        f"{contact}"
        "<p><strong>Message:</strong></p>"
        '<pre style="white-space:pre-wrap;font-family:inherit;background:#f4f4f4;'
        f'padding:12px;border-radius:8px;">{escape_html(note.message)}</pre>'
        '<p style="color:#666;font-size:12px;">'
        f"IP: {escape_html(note.ip_address)} · Note ID: {escape_html(note.id)}</p>"
    )


class EmailNotifier:
    """Send a copy of each note to the owner's inbox through Resend."""

    name = "email"

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: str,
        to: str,
        sender: str = DEFAULT_SENDER,
    ) -> None:
        self._http = http
        self._api_key = api_key
        self._to = to
        self._sender = sender

    async def notify(self, note: NoteSubmission) -> None:
        """Send the notification email.

        Raises:
            httpx.HTTPError: If the request fails or Resend rejects it.
        """
        response = await self._http.post(
            RESEND_API_URL,
            headers={"Authorization": f"Bearer {self._api_key}"},
            json={
                "from": self._sender,
                "to": [self._to],
                "subject": f"New note from {note.name} ({note.email})",
                "html": render_note_email(note),
            },
        )
        response.raise_for_status()
        logger.info("Notification email sent for note %s", note.id)


class SheetsNotifier:
    """Append each note as a row to a Google Sheet."""

    name = "sheets"

    def __init__(
        self, http: httpx.AsyncClient, sheet_id: str, credentials: Credentials
    ) -> None:
        self._http = http
        self._sheet_id = sheet_id
        self._credentials = credentials
        self._refresh_lock = asyncio.Lock()

    async def notify(self, note: NoteSubmission) -> None:
        """Append the note to columns A-G.

        Raises:
            google.auth.exceptions.RefreshError: If a new access token
                cannot be obtained.
            httpx.HTTPError: If the request fails or the Sheets API rejects it.
        """
        token = await self._access_token()
        response = await self._http.post(
            f"{SHEETS_API_URL}/{self._sheet_id}/values/A:G:append",
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            headers={"Authorization": f"Bearer {token}"},
            json={"values": [note.to_row()]},
        )
        response.raise_for_status()
        logger.info("Note logged to Google Sheet: %s (%s)", note.name, note.email)

    async def _access_token(self) -> str:
        async with self._refresh_lock:
            if not self._credentials.valid:
                # google-auth refreshes with a blocking HTTP call.
                await asyncio.to_thread(self._credentials.refresh, GoogleAuthRequest())
                logger.debug("Refreshed Google Sheets access token")
        return self._credentials.token
