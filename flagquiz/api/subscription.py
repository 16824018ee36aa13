"""
구독 API - 결제 웹훅 수신 / 내 구독 조회 / 해지 예약
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from flagquiz.core.database import get_db
from flagquiz.core.errors import MalformedEventError, StorageUnavailableError, WebhookSignatureError
from flagquiz.core.security import get_current_user
from flagquiz.models.user import User
from flagquiz.schemas.subscription import MySubscriptionResponse, SubscriptionResponse, WebhookAck
from flagquiz.services.subscription_service import SubscriptionSynchronizer, effective_plan

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhook", response_model=WebhookAck)
async def subscription_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    결제 제공자 웹훅

    원본 본문과 Stripe-Signature 헤더로 서명을 검증한 뒤에만 처리한다.
    처리하지 않는 이벤트도 수신 확인(200)을 돌려준다.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    synchronizer = SubscriptionSynchronizer(db)
    try:
        result = await synchronizer.handle_webhook(payload, signature)
    except WebhookSignatureError as e:
        logger.warning(f"[webhook] {e}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=e.user_message)
    except MalformedEventError as e:
        logger.warning(f"[webhook] {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.user_message)
    except StorageUnavailableError as e:
        # 제공자가 재전송하도록 5xx
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.user_message)
    return WebhookAck(received=True, result=result)


@router.get("/me", response_model=MySubscriptionResponse)
async def get_my_subscription(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """내 구독 정보 조회 (구독 없으면 무료)"""
    try:
        record = await SubscriptionSynchronizer(db).get_subscription(current_user.id)
    except StorageUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.user_message)
    return MySubscriptionResponse(
        effective_plan=effective_plan(record),
        subscription=SubscriptionResponse.model_validate(record) if record else None,
    )


@router.post("/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """기간 종료 시 해지 예약"""
    try:
        record = await SubscriptionSynchronizer(db).request_cancellation(current_user.id)
    except StorageUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.user_message)
    if record is None:
        raise HTTPException(status_code=404, detail="활성 구독이 없습니다.")
    return record
