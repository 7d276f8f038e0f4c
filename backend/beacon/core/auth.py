import secrets
from typing import Optional

from fastapi import Header

from ..config import settings
from .errors import Unauthorized


def require_admin(authorization: Optional[str] = Header(default=None)) -> None:
    """FastAPI dependency guarding admin endpoints with the ADMIN_TOKEN bearer token."""
    expected = settings.admin_token
    if not expected:
        raise Unauthorized("Admin access is not configured")

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token.strip(), expected):
        raise Unauthorized("Not authenticated")
