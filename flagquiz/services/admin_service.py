"""
관리자 작업 - 사용자 연쇄 삭제
"""

import logging
import uuid
from typing import Dict, Optional, Union

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from flagquiz.core.database import with_storage_timeout
from flagquiz.core.errors import StorageUnavailableError
from flagquiz.core.security import ensure_admin
from flagquiz.models import LeaderboardEntry, Profile, Subscription, User, UserStats

logger = logging.getLogger(__name__)

# 삭제 순서: 사용자에 딸린 행 → 사용자 본인
_DEPENDENT_TABLES = (
    ("profiles", Profile),
    ("user_stats", UserStats),
    ("leaderboards", LeaderboardEntry),
    ("subscriptions", Subscription),
)


async def delete_user_cascade(
    db: AsyncSession,
    caller: Optional[User],
    target_user_id: Union[str, uuid.UUID],
) -> Dict[str, int]:
    """관리자만 호출 가능. 지울 행이 없어도 성공(멱등)."""
    ensure_admin(caller)

    async def _run() -> Dict[str, int]:
        counts = {}
        for name, model in _DEPENDENT_TABLES:
            result = await db.execute(delete(model).where(model.user_id == target_user_id))
            counts[name] = result.rowcount or 0
        result = await db.execute(delete(User).where(User.id == target_user_id))
        counts["users"] = result.rowcount or 0
        await db.commit()
        return counts

    try:
        counts = await with_storage_timeout("admin delete user", _run())
    except StorageUnavailableError:
        logger.exception(f"[admin] delete failed target={target_user_id}")
        await db.rollback()
        raise
    logger.info(f"[admin] user {target_user_id} deleted by {caller.id}: {counts}")
    return counts
