"""
리더보드 API - 점수 제출 / 순위 조회
"""

from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from flagquiz.core.database import get_db
from flagquiz.core.errors import AuthenticationRequiredError, StorageUnavailableError
from flagquiz.core.security import get_current_user, get_current_user_optional
from flagquiz.models.user import User
from flagquiz.schemas.leaderboard import (
    ScoreSubmitRequest,
    ScoreSubmitResponse,
    LeaderboardEntryResponse,
    LeaderboardResponse,
)
from flagquiz.services.leaderboard_service import ScoreLedger, leaderboard_mode

logger = logging.getLogger(__name__)

router = APIRouter()

SAVE_FAILED_MESSAGE = "점수를 저장하지 못했습니다."


def format_score(game_mode: str, score: int) -> str:
    """표시용 점수 (timed는 분:초)"""
    if game_mode == "timed":
        return f"{score // 60}:{score % 60:02d}"
    return str(score)


@router.post("/scores", response_model=ScoreSubmitResponse)
async def submit_score(
    body: ScoreSubmitRequest,
    current_user: Optional[User] = Depends(get_current_user_optional),
    db: AsyncSession = Depends(get_db),
):
    """점수 제출 (기록이 실제로 갱신됐을 때만 saved=true)"""
    ledger = ScoreLedger(db)
    try:
        outcome = await ledger.submit_score(
            current_user.id if current_user else None,
            body.game_mode,
            body.score,
            body.details,
        )
    except AuthenticationRequiredError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.user_message,
            headers={"WWW-Authenticate": "Bearer"},
        )
    except StorageUnavailableError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=SAVE_FAILED_MESSAGE)

    return ScoreSubmitResponse(
        saved=outcome.saved,
        reason=outcome.reason,
        game_mode=outcome.game_mode,
        display_score=format_score(outcome.game_mode, body.score) if outcome.saved else None,
    )


@router.get("/me/{game_mode}", response_model=LeaderboardEntryResponse)
async def get_my_entry(
    game_mode: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """내 최고 기록"""
    try:
        entry = await ScoreLedger(db).entry_for(current_user.id, game_mode)
    except StorageUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.user_message)
    if entry is None:
        raise HTTPException(status_code=404, detail="기록이 없습니다.")
    return entry


@router.get("/{game_mode}", response_model=LeaderboardResponse)
async def get_leaderboard(
    game_mode: str,
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """모드별 순위"""
    mode_rule = leaderboard_mode(game_mode)
    if mode_rule is None:
        raise HTTPException(status_code=404, detail="리더보드가 없는 게임 모드입니다.")
    try:
        entries = await ScoreLedger(db).top_entries(game_mode, limit=limit)
    except StorageUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.user_message)
    return LeaderboardResponse(
        game_mode=mode_rule.key,
        higher_is_better=mode_rule.higher_is_better,
        entries=[LeaderboardEntryResponse.model_validate(e) for e in entries],
    )
