"""Admin API key authentication dependency."""

from fastapi import Depends, Request, status
from fastapi.security import APIKeyHeader

from api.errors import ApiError
from api.settings import Settings

_api_key_header = APIKeyHeader(name="Authorization", auto_error=False)


async def require_admin_key(
    request: Request,
    authorization: str | None = Depends(_api_key_header),
) -> str:
    """Validate the ``Authorization: Bearer <key>`` header.

    Keys are read from ``ADMIN_API_KEYS`` (comma-separated) at startup.

    Returns:
        The validated API key string.

    Raises:
        ApiError 500 if no admin keys are configured, 401 if the key is
        missing or invalid.
    """
    settings: Settings = request.app.state.settings
    if not settings.admin_api_keys:
        raise ApiError(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server has no admin API keys configured",
        )

    # Accept "Bearer <key>" or a bare key
    token = (authorization or "").removeprefix("Bearer ").strip()
    if token not in settings.admin_api_keys:
        raise ApiError(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    return token
