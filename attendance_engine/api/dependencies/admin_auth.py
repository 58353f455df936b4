# attendance_engine/api/dependencies/admin_auth.py
from typing import Optional

from fastapi import Header, HTTPException, status

from attendance_engine.core.config import get_settings


async def verify_admin_api_key(
    admin_api_key: Optional[str] = Header(
        default=None,
        alias="X-Admin-Api-Key",
        description="Admin API key required for /admin endpoints outside local/test.",
    ),
) -> None:
    """
    Dependency guarding the admin analytics endpoints.

    Rules
    -----
    - APP_ENV in ("local", "test"):
        - ADMIN_API_KEY unset -> open.
        - ADMIN_API_KEY set   -> header must match.
    - Any other APP_ENV:
        - ADMIN_API_KEY unset -> 500 (misconfiguration).
        - Header missing or different -> 401.
    """
    settings = get_settings()
    env = (settings.APP_ENV or "local").lower()
    expected = settings.ADMIN_API_KEY

    if env in ("local", "test") and not expected:
        return

    if not expected:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="ADMIN_API_KEY not configured for this environment.",
        )

    if not admin_api_key or admin_api_key != expected:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing admin API key.",
        )
