from uuid import UUID

from fastapi import Header

from core.config import settings

# Hardcoded single user ID for local-first installs
SINGLE_USER_ID = UUID("00000000-0000-0000-0000-000000000001")


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> UUID | None:
    """Resolve the caller from the X-User-ID header.

    Returns None when the caller is unauthenticated; review queries then see
    an empty due set instead of an error.
    """
    if x_user_id:
        try:
            return UUID(x_user_id)
        except ValueError:
            return None
    return SINGLE_USER_ID if settings.SINGLE_USER_MODE else None
