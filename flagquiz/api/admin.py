"""
관리자 API
"""

import uuid
from typing import Dict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from flagquiz.core.database import get_db
from flagquiz.core.errors import AdminRequiredError, StorageUnavailableError
from flagquiz.core.security import get_current_user
from flagquiz.models.user import User
from flagquiz.services.admin_service import delete_user_cascade

router = APIRouter()


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, object]:
    """사용자와 프로필/통계/리더보드/구독 삭제 (관리자 전용)"""
    try:
        deleted = await delete_user_cascade(db, current_user, user_id)
    except AdminRequiredError as e:
        raise HTTPException(status_code=403, detail=e.user_message)
    except StorageUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.user_message)
    return {"success": True, "deleted": deleted}
