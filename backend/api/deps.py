"""Request dependencies shared by the API routers.

Authentication happens upstream; the gateway forwards the authenticated
user id in the ``X-User-Id`` header. Browsers only send the session cookie
(``navigator.sendBeacon`` cannot add headers), so the gateway sets the
header from the cookie. The service never reads user ids from request bodies.
"""

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from backend.database import get_session
from backend.errors import AuthenticationError, ValidationError
from backend.srs.session import LearningSessionController


async def get_optional_user_id(x_user_id: str | None = Header(default=None)) -> int | None:
    """Return the authenticated user id, or None for anonymous requests."""
    if x_user_id is None or x_user_id == "":
        return None
    try:
        return int(x_user_id)
    except ValueError as exc:
        raise ValidationError("Malformed user id", details={"x_user_id": x_user_id}) from exc


async def get_user_id(user_id: int | None = Depends(get_optional_user_id)) -> int:
    if user_id is None:
        raise AuthenticationError("Unauthorized")
    return user_id


async def get_controller(db: AsyncSession = Depends(get_session)) -> LearningSessionController:
    return LearningSessionController(db)
