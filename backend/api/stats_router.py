"""API routes for user statistics and dashboard data."""

from dataclasses import asdict

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.deps import get_user_id
from backend.api.schemas import UserStatsResponse
from backend.config import utcnow
from backend.database import get_session, storage_errors
from backend.srs.stats import collect_stats

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("", response_model=UserStatsResponse)
async def get_user_stats(
    user_id: int = Depends(get_user_id),
    db: AsyncSession = Depends(get_session),
) -> UserStatsResponse:
    """Get overall statistics for a user."""
    with storage_errors("stats"):
        stats = await collect_stats(db, user_id, utcnow())
    return UserStatsResponse(**asdict(stats))
