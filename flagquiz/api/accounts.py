"""
저장된 계정 API (계정 전환용, 기기별 목록)
"""

from fastapi import APIRouter, Depends, Header, HTTPException, status
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from flagquiz.core.config import settings
from flagquiz.core.database import get_db, get_redis
from flagquiz.core.errors import AccountCapacityError, StorageUnavailableError
from flagquiz.core.security import get_current_user
from flagquiz.models.user import User
from flagquiz.schemas.account import SavedAccountListResponse, SavedAccountResponse
from flagquiz.services.account_registry import AccountRegistry
from flagquiz.services.subscription_service import SubscriptionSynchronizer

router = APIRouter()


def _registry(redis: Redis, device_id: str) -> AccountRegistry:
    return AccountRegistry(redis, key=f"{settings.SAVED_ACCOUNTS_KEY}:{device_id}")


def _to_response(accounts) -> SavedAccountListResponse:
    return SavedAccountListResponse(
        accounts=[SavedAccountResponse(**a.__dict__) for a in accounts]
    )


async def _is_premium(db: AsyncSession, user: User) -> bool:
    plan = await SubscriptionSynchronizer(db).get_effective_plan(user.id)
    return plan != "free"


@router.get("", response_model=SavedAccountListResponse)
async def list_saved_accounts(
    x_device_id: str = Header(..., max_length=64),
    redis: Redis = Depends(get_redis),
):
    try:
        accounts = await _registry(redis, x_device_id).list_saved_accounts()
    except StorageUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.user_message)
    return _to_response(accounts)


@router.post("", response_model=SavedAccountListResponse)
async def save_current_account(
    x_device_id: str = Header(..., max_length=64),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
):
    """현재 로그인한 계정을 목록에 저장 (무료 플랜은 3개까지)"""
    try:
        is_premium = await _is_premium(db, current_user)
        accounts = await _registry(redis, x_device_id).save_account(
            str(current_user.id), current_user.email, current_user.username, is_premium
        )
    except AccountCapacityError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=e.user_message)
    except StorageUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.user_message)
    return _to_response(accounts)


@router.delete("/{user_id}", response_model=SavedAccountListResponse)
async def remove_saved_account(
    user_id: str,
    x_device_id: str = Header(..., max_length=64),
    redis: Redis = Depends(get_redis),
):
    registry = _registry(redis, x_device_id)
    try:
        await registry.remove_account(user_id)
        accounts = await registry.list_saved_accounts()
    except StorageUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.user_message)
    return _to_response(accounts)


@router.post("/prune", response_model=SavedAccountListResponse)
async def prune_saved_accounts(
    x_device_id: str = Header(..., max_length=64),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    redis: Redis = Depends(get_redis),
):
    """플랜이 무료로 바뀐 경우 최근 3개만 남긴다"""
    try:
        is_premium = await _is_premium(db, current_user)
        accounts = await _registry(redis, x_device_id).prune_if_over_capacity(is_premium)
    except StorageUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.user_message)
    return _to_response(accounts)
