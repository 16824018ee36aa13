"""
리더보드 점수 원장 - 제출 점수 정규화/검증 후 원자적 조건부 upsert

(user_id, game_mode) 키마다 "지금까지 제출된 것 중 최고 기록"만 남는다.
비교와 쓰기는 INSERT ... ON CONFLICT DO UPDATE ... WHERE 한 문장으로 처리되므로
같은 사용자가 여러 탭에서 동시에 제출해도 갱신이 유실되지 않는다.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func

from flagquiz.core.database import upsert_insert, with_storage_timeout
from flagquiz.core.errors import AuthenticationRequiredError, StorageUnavailableError
from flagquiz.models.leaderboard import LeaderboardEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LeaderboardMode:
    key: str
    higher_is_better: bool = True
    min_score: Optional[int] = None  # 이 값 미만은 시도 없음으로 간주


LEADERBOARD_MODES: Dict[str, LeaderboardMode] = {
    "streak": LeaderboardMode("streak", higher_is_better=True, min_score=1),
    "timed": LeaderboardMode("timed", higher_is_better=False, min_score=1),  # 완주 시간(초), 짧을수록 좋음
    "speedrush_30s": LeaderboardMode("speedrush_30s", min_score=0),
    "speedrush_1m": LeaderboardMode("speedrush_1m", min_score=0),
    "speedrush_5m": LeaderboardMode("speedrush_5m", min_score=0),
    "speedrush_10m": LeaderboardMode("speedrush_10m", min_score=0),
}

# time_limit(초) → 스피드러시 세부 모드
SPEEDRUSH_VARIANTS: Dict[int, str] = {
    30: "speedrush_30s",
    60: "speedrush_1m",
    300: "speedrush_5m",
    600: "speedrush_10m",
}

SubmissionReason = Literal["improved", "not_improved", "ineligible_mode", "invalid_score"]


@dataclass(frozen=True)
class SubmissionOutcome:
    saved: bool
    reason: SubmissionReason
    game_mode: str  # 정규화된 모드


def normalize_game_mode(game_mode: str, details: Optional[Dict[str, Any]] = None) -> str:
    """speedrush + time_limit → speedrush_30s 등. 그 외 time_limit는 그대로 둔다."""
    if game_mode == "speedrush" and details:
        time_limit = details.get("time_limit")
        # JSON 숫자 60.0도 60으로 본다. bool은 int의 하위 타입이라 따로 거른다
        if isinstance(time_limit, float) and time_limit.is_integer():
            time_limit = int(time_limit)
        if isinstance(time_limit, int) and not isinstance(time_limit, bool):
            return SPEEDRUSH_VARIANTS.get(time_limit, game_mode)
    return game_mode


def leaderboard_mode(game_mode: str) -> Optional[LeaderboardMode]:
    return LEADERBOARD_MODES.get(game_mode)


class ScoreLedger:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def submit_score(
        self,
        user_id: Optional[Union[str, uuid.UUID]],
        game_mode: str,
        score: int,
        details: Optional[Dict[str, Any]] = None,
    ) -> SubmissionOutcome:
        """점수 제출. 실제로 기록이 갱신됐을 때만 saved=True."""
        if not user_id:
            raise AuthenticationRequiredError("score submission")

        mode = normalize_game_mode(game_mode, details)
        mode_rule = leaderboard_mode(mode)
        if mode_rule is None:
            logger.debug(f"[leaderboard] mode '{mode}' is not a leaderboard mode, discarded")
            return SubmissionOutcome(False, "ineligible_mode", mode)

        if mode_rule.min_score is not None and score < mode_rule.min_score:
            return SubmissionOutcome(False, "invalid_score", mode)

        try:
            improved = await with_storage_timeout(
                "leaderboard upsert",
                self._conditional_upsert(user_id, mode_rule, score, details or {}),
            )
        except StorageUnavailableError:
            logger.exception(f"[leaderboard] save failed user={user_id} mode={mode}")
            await self.db.rollback()
            raise

        if improved:
            logger.info(f"[leaderboard] new best user={user_id} mode={mode} score={score}")
            return SubmissionOutcome(True, "improved", mode)
        return SubmissionOutcome(False, "not_improved", mode)

    async def _conditional_upsert(
        self,
        user_id: Union[str, uuid.UUID],
        mode_rule: LeaderboardMode,
        score: int,
        details: Dict[str, Any],
    ) -> bool:
        table = LeaderboardEntry.__table__
        stmt = upsert_insert(self.db, table).values(
            id=uuid.uuid4(),
            user_id=user_id,
            game_mode=mode_rule.key,
            score=score,
            details=details,
        )
        if mode_rule.higher_is_better:
            better = stmt.excluded.score > table.c.score
        else:
            better = stmt.excluded.score < table.c.score

        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.user_id, table.c.game_mode],
            set_={
                "score": stmt.excluded.score,
                "details": stmt.excluded.details,
                "updated_at": func.now(),
            },
            where=better,
        ).returning(table.c.id)

        result = await self.db.execute(stmt)
        # WHERE가 거짓이면 갱신도, 반환 행도 없다
        changed = result.first() is not None
        await self.db.commit()
        return changed

    async def top_entries(self, game_mode: str, limit: int = 50) -> List[LeaderboardEntry]:
        """모드 정렬 기준으로 상위 기록 (동점이면 먼저 달성한 순)"""
        mode_rule = leaderboard_mode(game_mode)
        if mode_rule is None:
            return []
        order = LeaderboardEntry.score.desc() if mode_rule.higher_is_better else LeaderboardEntry.score.asc()
        stmt = (
            select(LeaderboardEntry)
            .where(LeaderboardEntry.game_mode == mode_rule.key)
            .order_by(order, LeaderboardEntry.updated_at.asc())
            .limit(limit)
        )
        result = await with_storage_timeout("leaderboard read", self.db.execute(stmt))
        return list(result.scalars().all())

    async def entry_for(self, user_id: Union[str, uuid.UUID], game_mode: str) -> Optional[LeaderboardEntry]:
        stmt = select(LeaderboardEntry).where(
            LeaderboardEntry.user_id == user_id,
            LeaderboardEntry.game_mode == game_mode,
        )
        result = await with_storage_timeout("leaderboard read", self.db.execute(stmt))
        return result.scalar_one_or_none()
