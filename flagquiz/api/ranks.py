"""
랭크 API
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flagquiz.core.database import get_db, with_storage_timeout
from flagquiz.core.errors import StorageUnavailableError
from flagquiz.core.security import get_current_user
from flagquiz.models.profile import UserStats
from flagquiz.models.user import User
from flagquiz.schemas.rank import MyRankResponse, RankItem, RankResponse, XPProgressResponse
from flagquiz.services.rank_service import (
    RANKS,
    level_for_xp,
    next_rank,
    rank_for_level,
    tier_for_level,
    xp_progress,
)

router = APIRouter()


def _rank_payload(level: int) -> dict:
    rank = rank_for_level(level)
    following = next_rank(rank)
    return {
        "level": level,
        "rank": rank.name,
        "tier": tier_for_level(level, rank),
        "color": rank.color,
        "next_rank": following.name if following else None,
    }


@router.get("", response_model=List[RankItem])
async def list_ranks():
    """랭크 표"""
    return [RankItem(name=r.name, level=r.level, color=r.color) for r in RANKS]


@router.get("/level/{level}", response_model=RankResponse)
async def get_rank_for_level(level: int = Path(..., ge=0)):
    return RankResponse(**_rank_payload(level))


@router.get("/me", response_model=MyRankResponse)
async def get_my_rank(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """누적 경험치 기준 내 랭크"""
    try:
        result = await with_storage_timeout(
            "user stats read",
            db.execute(select(UserStats.total_xp).where(UserStats.user_id == current_user.id)),
        )
    except StorageUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.user_message)
    total_xp = result.scalar_one_or_none() or 0
    progress = xp_progress(total_xp)
    return MyRankResponse(
        **_rank_payload(level_for_xp(total_xp)),
        total_xp=total_xp,
        progress=XPProgressResponse(**progress.__dict__),
    )
