"""
Request dependencies: caller identity and the booking rate limit.

Identity comes from the X-User-Id header (an existing user's id). Account
management and real authentication live outside this service.
"""

from fastapi import Depends, Header, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from slotbook.core.config import get_settings
from slotbook.core.errors import Unauthorized
from slotbook.db.session import get_db
from slotbook.models.user import User
from slotbook.services.rate_limiter import RateLimitDecision, booking_rate_limiter


async def get_current_user(
    x_user_id: str | None = Header(default=None),
    db: AsyncSession = Depends(get_db),
) -> User:
    if not x_user_id:
        raise Unauthorized("Missing x-user-id header")

    try:
        user_id = int(x_user_id)
    except ValueError:
        raise Unauthorized("Invalid x-user-id header") from None

    user = await db.get(User, user_id)
    if user is None:
        raise Unauthorized("User not found")
    # Detach first: rollback expires every instance still in the session
    db.expunge(user)
    # Release the read transaction; admission runs in its own unit of work
    await db.rollback()
    return user


async def get_current_user_id(user: User = Depends(get_current_user)) -> int:
    return user.id


async def enforce_booking_rate_limit(
    request: Request,
    response: Response,
    user_id: int = Depends(get_current_user_id),
) -> RateLimitDecision | None:
    """
    Gate the booking endpoint. The decision is kept on request.state so the
    X-RateLimit-* headers are attached to error responses as well.
    """
    settings = get_settings()
    if not (settings.RATE_LIMIT_ENABLED and settings.REDIS_ENABLED):
        return None

    decision = await booking_rate_limiter().check(user_id)
    request.state.rate_limit = decision
    response.headers.update(decision.headers())
    return decision
