"""
구독 동기화 서비스 - 결제 제공자(Stripe) 웹훅 이벤트 → 사용자별 구독 상태

상태 전이
- (없음) → active          : checkout 완료 이벤트 (user_id 기준 upsert)
- active|past_due → 이벤트 상태 : 구독 갱신 이벤트 (구독 ID로 찾아 값 그대로 복사)
- 아무 상태 → expired       : 구독 삭제 이벤트

제공자 상태값(trialing, unpaid 등)은 저장 전에 active/past_due/canceled/expired
네 가지로 접는다.

모든 전이는 증분이 아니라 절대값 쓰기라서 같은 이벤트가 재전송돼도 결과가 같다.
이벤트 간 순서 비교는 하지 않는다. 서로 다른 두 갱신 이벤트가 뒤바뀌어 도착하면
나중에 처리된(더 오래된) 이벤트가 이긴다.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, Literal, Mapping, Optional, Tuple, Union

import stripe
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import func

from flagquiz.core.config import settings
from flagquiz.core.database import upsert_insert, with_storage_timeout
from flagquiz.core.errors import MalformedEventError, StorageUnavailableError, WebhookSignatureError
from flagquiz.models.subscription import Subscription
from flagquiz.services.access_policy import PlanName

logger = logging.getLogger(__name__)

PAID_PLANS = ("premium", "ultimate")
# 플랜 권한을 유지하는 상태
GRANTING_STATUSES = ("active", "past_due")

# 제공자 구독 상태 → 저장 상태
PROVIDER_STATUSES = {
    "active": "active",
    "trialing": "active",
    "incomplete": "active",
    "past_due": "past_due",
    "unpaid": "past_due",
    "paused": "past_due",
    "canceled": "canceled",
    "incomplete_expired": "expired",
}


class EventKind(str, Enum):
    CHECKOUT_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"


SyncResult = Literal["applied", "noop", "dropped", "ignored"]


@dataclass(frozen=True)
class WebhookEvent:
    type: str
    kind: Optional[EventKind]
    obj: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None
    created: Optional[datetime] = None


# ── 서명 ────────────────────────────────────────────

def verify_signature(
    payload: bytes,
    header: Optional[str],
    secret: Optional[str],
    tolerance: Optional[int] = None,
) -> None:
    """Stripe-Signature 헤더 검증 (stripe SDK). 실패 시 WebhookSignatureError."""
    if not secret:
        raise WebhookSignatureError("webhook secret is not configured")
    if not header:
        raise WebhookSignatureError("missing signature header")
    try:
        body = payload.decode("utf-8")
    except UnicodeDecodeError:
        raise WebhookSignatureError("payload is not valid UTF-8")

    limit = settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS if tolerance is None else tolerance
    try:
        stripe.WebhookSignature.verify_header(body, header, secret, tolerance=limit)
    except stripe.SignatureVerificationError as e:
        raise WebhookSignatureError(str(e))


# ── 파싱 ────────────────────────────────────────────

def _from_unix(value: Any) -> Optional[datetime]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def parse_event(payload: bytes) -> WebhookEvent:
    """본문 JSON → WebhookEvent. 이벤트 모양이 아니면 MalformedEventError."""
    try:
        body = json.loads(payload)
    except (ValueError, UnicodeDecodeError) as e:
        raise MalformedEventError(f"invalid JSON: {e}")
    if not isinstance(body, dict) or not isinstance(body.get("type"), str):
        raise MalformedEventError("event type is missing")

    data = body.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    if not isinstance(obj, dict):
        raise MalformedEventError("event data.object is missing")

    try:
        kind = EventKind(body["type"])
    except ValueError:
        kind = None
    return WebhookEvent(
        type=body["type"],
        kind=kind,
        obj=obj,
        id=_as_str(body.get("id")),
        created=_from_unix(body.get("created")),
    )


def effective_plan(record: Optional[Subscription]) -> PlanName:
    """구독 레코드 → 실제 적용 플랜"""
    if record is None or record.status not in GRANTING_STATUSES:
        return "free"
    return record.plan if record.plan in PAID_PLANS else "free"


def _period_bounds(obj: Dict[str, Any]):
    """구독 객체의 기간 (신규 API는 items.data[0]에만 실려 온다)"""
    start = _from_unix(obj.get("current_period_start"))
    end = _from_unix(obj.get("current_period_end"))
    if start is None or end is None:
        items = _as_dict(obj.get("items")).get("data")
        first = items[0] if isinstance(items, list) and items else None
        if isinstance(first, dict):
            start = start or _from_unix(first.get("current_period_start"))
            end = end or _from_unix(first.get("current_period_end"))
    return start, end


class SubscriptionSynchronizer:
    def __init__(
        self,
        db: AsyncSession,
        *,
        webhook_secret: Optional[str] = None,
        price_plans: Optional[Mapping[str, str]] = None,
        period_days: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.webhook_secret = webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET
        if price_plans is None:
            price_plans = {pid: "premium" for pid in settings.PREMIUM_PRICE_IDS}
            price_plans.update({pid: "ultimate" for pid in settings.ULTIMATE_PRICE_IDS})
        self.price_plans = dict(price_plans)
        self.period_days = period_days or settings.SUBSCRIPTION_PERIOD_DAYS
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    async def handle_webhook(self, payload: bytes, signature: Optional[str]) -> SyncResult:
        """서명 검증 → 파싱 → 상태 전이. 검증 실패는 처리 없이 거부한다."""
        verify_signature(payload, signature, self.webhook_secret)
        event = parse_event(payload)
        return await self.apply_event(event)

    async def apply_event(self, event: WebhookEvent) -> SyncResult:
        if event.kind is EventKind.CHECKOUT_COMPLETED:
            handler = self._apply_checkout_completed
        elif event.kind is EventKind.SUBSCRIPTION_UPDATED:
            handler = self._apply_subscription_updated
        elif event.kind is EventKind.SUBSCRIPTION_DELETED:
            handler = self._apply_subscription_deleted
        else:
            logger.info(f"[webhook] ignoring event type={event.type} id={event.id}")
            return "ignored"

        try:
            result = await with_storage_timeout(f"webhook {event.type}", handler(event))
        except StorageUnavailableError:
            logger.exception(f"[webhook] storage failure type={event.type} id={event.id}")
            await self.db.rollback()
            raise
        logger.info(f"[webhook] {event.type} id={event.id} → {result}")
        return result

    def _resolve_plan(self, metadata: Dict[str, Any], price_id: Optional[str]) -> Optional[str]:
        plan = metadata.get("plan")
        if plan is None and price_id:
            plan = self.price_plans.get(price_id)
        return plan if plan in PAID_PLANS else None

    async def _apply_checkout_completed(self, event: WebhookEvent) -> SyncResult:
        obj = event.obj
        metadata = _as_dict(obj.get("metadata"))
        raw_user_id = metadata.get("user_id") or metadata.get("userId") or obj.get("client_reference_id")
        price_id = _as_str(metadata.get("price_id") or metadata.get("priceId"))
        plan = self._resolve_plan(metadata, price_id)

        try:
            user_id = uuid.UUID(str(raw_user_id)) if raw_user_id else None
        except ValueError:
            user_id = None
        if user_id is None or plan is None:
            logger.warning(f"[webhook] checkout event {event.id} without user_id/plan, dropped")
            return "dropped"

        start, end = _period_bounds(obj)
        if start is None:
            # 재전송돼도 같은 값이 되도록 이벤트 생성 시각을 기준으로 삼는다
            start = event.created or self.clock()
        if end is None:
            end = start + timedelta(days=self.period_days)

        values = {
            "plan": plan,
            "status": "active",
            "stripe_customer_id": _as_str(obj.get("customer")),
            "stripe_subscription_id": _as_str(obj.get("subscription")),
            "stripe_price_id": price_id,
            "current_period_start": start,
            "current_period_end": end,
            "cancel_at_period_end": False,
        }
        table = Subscription.__table__
        stmt = upsert_insert(self.db, table).values(id=uuid.uuid4(), user_id=user_id, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.user_id],
            set_={**values, "updated_at": func.now()},
        )
        try:
            await self.db.execute(stmt)
            await self.db.commit()
        except IntegrityError as e:
            # 존재하지 않는 사용자 또는 다른 사용자의 구독 ID
            await self.db.rollback()
            logger.warning(f"[webhook] checkout event {event.id} rejected by constraints: {e.orig}")
            return "dropped"
        return "applied"

    async def _apply_subscription_updated(self, event: WebhookEvent) -> SyncResult:
        obj = event.obj
        subscription_id = _as_str(obj.get("id"))
        raw_status = obj.get("status")
        status = PROVIDER_STATUSES.get(raw_status) if isinstance(raw_status, str) else None
        if not subscription_id or status is None:
            logger.warning(f"[webhook] update event {event.id} without id/known status ({raw_status!r}), dropped")
            return "dropped"

        values: Dict[str, Any] = {
            "status": status,
            "cancel_at_period_end": obj.get("cancel_at_period_end") is True,
            "updated_at": func.now(),
        }
        start, end = _period_bounds(obj)
        if start is not None:
            values["current_period_start"] = start
        if end is not None:
            values["current_period_end"] = end
        # 만료/해지된 구독은 갱신 이벤트로 되살리지 않는다
        return await self._update_by_subscription_id(subscription_id, values, from_statuses=GRANTING_STATUSES)

    async def _apply_subscription_deleted(self, event: WebhookEvent) -> SyncResult:
        subscription_id = _as_str(event.obj.get("id"))
        if not subscription_id:
            logger.warning(f"[webhook] delete event {event.id} without id, dropped")
            return "dropped"
        return await self._update_by_subscription_id(
            subscription_id, {"status": "expired", "updated_at": func.now()}
        )

    async def _update_by_subscription_id(
        self,
        subscription_id: str,
        values: Dict[str, Any],
        from_statuses: Optional[Tuple[str, ...]] = None,
    ) -> SyncResult:
        # 갱신 이벤트로는 레코드를 만들지 않는다
        stmt = update(Subscription).where(Subscription.stripe_subscription_id == subscription_id)
        if from_statuses is not None:
            stmt = stmt.where(Subscription.status.in_(from_statuses))
        stmt = stmt.values(**values).execution_options(synchronize_session=False)
        result = await self.db.execute(stmt)
        await self.db.commit()
        return "applied" if result.rowcount else "noop"

    # ── 조회 / 해지 예약 ─────────────────────────────

    async def get_subscription(self, user_id: Union[str, uuid.UUID]) -> Optional[Subscription]:
        stmt = select(Subscription).where(Subscription.user_id == user_id)
        result = await with_storage_timeout("subscription read", self.db.execute(stmt))
        return result.scalar_one_or_none()

    async def get_effective_plan(self, user_id: Optional[Union[str, uuid.UUID]]) -> PlanName:
        if not user_id:
            return "free"
        return effective_plan(await self.get_subscription(user_id))

    async def request_cancellation(self, user_id: Union[str, uuid.UUID]) -> Optional[Subscription]:
        """기간 종료 시 해지 예약. 권한이 살아 있는 구독만 대상이며 없으면 None."""
        record = await self.get_subscription(user_id)
        if record is None or record.status not in GRANTING_STATUSES:
            return None
        record.cancel_at_period_end = True
        try:
            await with_storage_timeout("subscription cancel", self.db.commit())
        except StorageUnavailableError:
            await self.db.rollback()
            raise
        await self.db.refresh(record)
        logger.info(f"[subscription] cancel at period end requested user={user_id}")
        return record
