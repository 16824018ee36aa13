"""
퀴즈 접근 권한 API
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from flagquiz.core.database import get_db
from flagquiz.core.errors import StorageUnavailableError, UnknownFeatureError
from flagquiz.core.security import get_current_user_optional
from flagquiz.models.user import User
from flagquiz.schemas.subscription import AccessResponse
from flagquiz.services.access_policy import access_denied_message, can_access
from flagquiz.services.subscription_service import SubscriptionSynchronizer

router = APIRouter()


@router.get("/{feature}", response_model=AccessResponse)
async def check_access(
    feature: str,
    current_user: Optional[User] = Depends(get_current_user_optional),
    db: AsyncSession = Depends(get_db),
):
    """퀴즈 진입 시 권한 확인 (비로그인은 무료 플랜)"""
    try:
        plan = await SubscriptionSynchronizer(db).get_effective_plan(
            current_user.id if current_user else None
        )
        allowed = can_access(feature, plan)
        message = None if allowed else access_denied_message(feature)
    except UnknownFeatureError as e:
        raise HTTPException(status_code=404, detail=e.user_message)
    except StorageUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.user_message)
    return AccessResponse(feature=feature, plan=plan, allowed=allowed, message=message)
