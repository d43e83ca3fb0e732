"""Exceptions raised while saving a note."""

import errno
import re

import httpx

STORE_UNREACHABLE_MESSAGE = (
    "Database is temporarily unreachable. If you use Supabase free tier, "
    "check the dashboard: the project may be paused and need restoring."
)

SAVE_FAILED_MESSAGE = "Failed to save note"

READ_FAILED_MESSAGE = "Failed to read notes"

# Fallback for clients that surface network failures only as text.
_UNREACHABLE_PATTERN = re.compile(
    r"ENOTFOUND|ECONNREFUSED|ETIMEDOUT|fetch failed|connection refused|"
    r"timed out|name or service not known|nodename nor servname|"
    r"temporary failure in name resolution",
    re.IGNORECASE,
)

_UNREACHABLE_ERRNOS = {
    errno.ECONNREFUSED,
    errno.ETIMEDOUT,
    errno.EHOSTUNREACH,
    errno.ENETUNREACH,
}


class NoteError(Exception):
    """Base class for note submission failures."""


class NoteStoreError(NoteError):
    """The store answered but refused or failed the operation."""


class StoreUnreachableError(NoteError):
    """The store could not be reached at all."""


def is_unreachable(exc: BaseException) -> bool:
    """Return True if ``exc`` means the backing store could not be reached."""
    if isinstance(exc, (httpx.ConnectError, httpx.TimeoutException)):
        return True
    if isinstance(exc, (ConnectionRefusedError, TimeoutError)):
        return True
    if isinstance(exc, OSError) and exc.errno in _UNREACHABLE_ERRNOS:
        return True
    return bool(_UNREACHABLE_PATTERN.search(str(exc)))
