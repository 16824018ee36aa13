import json
import time
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from flagquiz.core.errors import MalformedEventError, WebhookSignatureError
from flagquiz.models import Subscription
from flagquiz.services.subscription_service import (
    SubscriptionSynchronizer,
    effective_plan,
    parse_event,
    verify_signature,
)
from webhook_signing import signature_header

SECRET = "whsec_unit"
CREATED = 1700000000


def make_event(event_type, obj, created=CREATED, event_id="evt_1"):
    return json.dumps({
        "id": event_id,
        "type": event_type,
        "created": created,
        "data": {"object": obj},
    }).encode()


def checkout_obj(user, plan="premium", subscription_id="sub_1"):
    return {
        "customer": "cus_1",
        "subscription": subscription_id,
        "metadata": {"user_id": str(user.id), "plan": plan},
    }


def naive(dt):
    return dt.replace(tzinfo=None) if dt is not None else None


async def apply(session_factory, payload, **kwargs):
    async with session_factory() as session:
        synchronizer = SubscriptionSynchronizer(session, webhook_secret=SECRET, **kwargs)
        return await synchronizer.handle_webhook(payload, signature_header(payload, SECRET))


async def load(session_factory, user):
    async with session_factory() as session:
        return await SubscriptionSynchronizer(session, webhook_secret=SECRET).get_subscription(user.id)


async def count_subscriptions(session_factory):
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(Subscription))).scalar_one()


# ── 상태 전이 ───────────────────────────────────────

async def test_checkout_creates_active_subscription(session_factory, make_user):
    user = await make_user()
    result = await apply(session_factory, make_event("checkout.session.completed", checkout_obj(user)))
    assert result == "applied"

    record = await load(session_factory, user)
    assert record.plan == "premium"
    assert record.status == "active"
    assert record.stripe_subscription_id == "sub_1"
    assert record.cancel_at_period_end is False
    start = datetime.fromtimestamp(CREATED, tz=timezone.utc)
    assert naive(record.current_period_start) == naive(start)
    assert naive(record.current_period_end) == naive(start + timedelta(days=30))


async def test_checkout_replay_is_idempotent(session_factory, make_user):
    user = await make_user()
    payload = make_event("checkout.session.completed", checkout_obj(user))
    await apply(session_factory, payload)
    first = await load(session_factory, user)
    await apply(session_factory, payload)
    second = await load(session_factory, user)

    assert await count_subscriptions(session_factory) == 1
    assert second.id == first.id
    assert (second.plan, second.status, second.stripe_subscription_id) == (
        first.plan, first.status, first.stripe_subscription_id
    )
    assert second.current_period_start == first.current_period_start
    assert second.current_period_end == first.current_period_end


async def test_update_for_unknown_subscription_is_noop(session_factory, make_user):
    payload = make_event("customer.subscription.updated", {"id": "sub_missing", "status": "active"})
    assert await apply(session_factory, payload) == "noop"
    assert await count_subscriptions(session_factory) == 0


async def test_update_copies_status_and_period(session_factory, make_user):
    user = await make_user()
    await apply(session_factory, make_event("checkout.session.completed", checkout_obj(user)))
    new_start, new_end = CREATED + 86400, CREATED + 86400 * 31
    payload = make_event(
        "customer.subscription.updated",
        {
            "id": "sub_1",
            "status": "past_due",
            "cancel_at_period_end": True,
            "items": {"data": [{"current_period_start": new_start, "current_period_end": new_end}]},
        },
        event_id="evt_2",
    )
    assert await apply(session_factory, payload) == "applied"

    record = await load(session_factory, user)
    assert record.status == "past_due"
    assert record.cancel_at_period_end is True
    assert naive(record.current_period_start) == naive(datetime.fromtimestamp(new_start, tz=timezone.utc))
    assert naive(record.current_period_end) == naive(datetime.fromtimestamp(new_end, tz=timezone.utc))
    assert effective_plan(record) == "premium"


async def test_delete_expires_subscription(session_factory, make_user):
    user = await make_user()
    await apply(session_factory, make_event("checkout.session.completed", checkout_obj(user, plan="ultimate")))
    payload = make_event("customer.subscription.deleted", {"id": "sub_1"}, event_id="evt_3")
    assert await apply(session_factory, payload) == "applied"

    record = await load(session_factory, user)
    assert record.status == "expired"
    assert effective_plan(record) == "free"


async def test_update_does_not_revive_expired_subscription(session_factory, make_user):
    user = await make_user()
    await apply(session_factory, make_event("checkout.session.completed", checkout_obj(user)))
    await apply(session_factory, make_event("customer.subscription.deleted", {"id": "sub_1"}))
    payload = make_event("customer.subscription.updated", {"id": "sub_1", "status": "active"}, event_id="evt_late")
    assert await apply(session_factory, payload) == "noop"
    assert (await load(session_factory, user)).status == "expired"


async def test_checkout_after_expiry_reactivates(session_factory, make_user):
    user = await make_user()
    await apply(session_factory, make_event("checkout.session.completed", checkout_obj(user)))
    await apply(session_factory, make_event("customer.subscription.deleted", {"id": "sub_1"}))
    await apply(
        session_factory,
        make_event("checkout.session.completed", checkout_obj(user, plan="ultimate", subscription_id="sub_2")),
    )
    record = await load(session_factory, user)
    assert (record.plan, record.status, record.stripe_subscription_id) == ("ultimate", "active", "sub_2")
    assert await count_subscriptions(session_factory) == 1


@pytest.mark.parametrize(
    "provider_status,stored",
    [("trialing", "active"), ("incomplete", "active"), ("unpaid", "past_due"), ("canceled", "canceled")],
)
async def test_update_maps_provider_status(session_factory, make_user, provider_status, stored):
    user = await make_user()
    await apply(session_factory, make_event("checkout.session.completed", checkout_obj(user)))
    payload = make_event("customer.subscription.updated", {"id": "sub_1", "status": provider_status}, event_id="evt_2")
    assert await apply(session_factory, payload) == "applied"
    assert (await load(session_factory, user)).status == stored


async def test_trialing_subscription_keeps_receiving_updates(session_factory, make_user):
    user = await make_user()
    await apply(session_factory, make_event("checkout.session.completed", checkout_obj(user)))
    trial = make_event("customer.subscription.updated", {"id": "sub_1", "status": "trialing"}, event_id="evt_2")
    assert await apply(session_factory, trial) == "applied"
    assert effective_plan(await load(session_factory, user)) == "premium"

    overdue = make_event("customer.subscription.updated", {"id": "sub_1", "status": "past_due"}, event_id="evt_3")
    assert await apply(session_factory, overdue) == "applied"
    assert (await load(session_factory, user)).status == "past_due"


async def test_update_with_unknown_status_is_dropped(session_factory, make_user):
    user = await make_user()
    await apply(session_factory, make_event("checkout.session.completed", checkout_obj(user)))
    for status in ("mystery", None, 5):
        payload = make_event("customer.subscription.updated", {"id": "sub_1", "status": status}, event_id="evt_2")
        assert await apply(session_factory, payload) == "dropped"
    assert (await load(session_factory, user)).status == "active"


@pytest.mark.parametrize(
    "metadata",
    [
        {"plan": "premium"},
        {"user_id": "not-a-uuid", "plan": "premium"},
        {"user_id": "USER", "plan": "gold"},
        {"user_id": "USER"},
    ],
)
async def test_checkout_without_user_or_plan_is_dropped(session_factory, make_user, metadata):
    user = await make_user()
    metadata = {k: (str(user.id) if v == "USER" else v) for k, v in metadata.items()}
    payload = make_event("checkout.session.completed", {"subscription": "sub_1", "metadata": metadata})
    assert await apply(session_factory, payload) == "dropped"
    assert await count_subscriptions(session_factory) == 0


async def test_checkout_for_unknown_user_is_dropped(session_factory):
    obj = {"subscription": "sub_1", "metadata": {"user_id": str(uuid.uuid4()), "plan": "premium"}}
    assert await apply(session_factory, make_event("checkout.session.completed", obj)) == "dropped"
    assert await count_subscriptions(session_factory) == 0


async def test_checkout_plan_from_price_mapping(session_factory, make_user):
    user = await make_user()
    obj = {
        "subscription": "sub_9",
        "client_reference_id": str(user.id),
        "metadata": {"priceId": "price_ult"},
    }
    payload = make_event("checkout.session.completed", obj)
    assert await apply(session_factory, payload, price_plans={"price_ult": "ultimate"}) == "applied"
    record = await load(session_factory, user)
    assert record.plan == "ultimate"
    assert record.stripe_price_id == "price_ult"


async def test_unknown_event_type_is_ignored(session_factory):
    payload = make_event("invoice.paid", {"id": "in_1"})
    assert await apply(session_factory, payload) == "ignored"


# ── 서명 ────────────────────────────────────────────

def test_valid_signature_passes():
    payload = b'{"type": "x"}'
    verify_signature(payload, signature_header(payload, SECRET), SECRET)


def test_tampered_body_is_rejected():
    header = signature_header(b'{"a": 1}', SECRET)
    with pytest.raises(WebhookSignatureError):
        verify_signature(b'{"a": 2}', header, SECRET)


def test_wrong_secret_is_rejected():
    payload = b"{}"
    with pytest.raises(WebhookSignatureError):
        verify_signature(payload, signature_header(payload, "other"), SECRET)


@pytest.mark.parametrize("header", [None, "", "garbage", "t=abc,v1=deadbeef", "v1=deadbeef"])
def test_unparseable_header_is_rejected(header):
    with pytest.raises(WebhookSignatureError):
        verify_signature(b"{}", header, SECRET)


def test_unset_secret_rejects_everything():
    payload = b"{}"
    with pytest.raises(WebhookSignatureError):
        verify_signature(payload, signature_header(payload, SECRET), None)


def test_stale_timestamp_is_rejected():
    payload = b"{}"
    header = signature_header(payload, SECRET, timestamp=int(time.time()) - 400)
    with pytest.raises(WebhookSignatureError):
        verify_signature(payload, header, SECRET, tolerance=300)


def test_non_utf8_payload_is_rejected():
    payload = b"\xff\xfe"
    with pytest.raises(WebhookSignatureError):
        verify_signature(payload, signature_header(payload, SECRET), SECRET)


async def test_invalid_signature_changes_nothing(session_factory, make_user):
    user = await make_user()
    payload = make_event("checkout.session.completed", checkout_obj(user))
    async with session_factory() as session:
        with pytest.raises(WebhookSignatureError):
            await SubscriptionSynchronizer(session, webhook_secret=SECRET).handle_webhook(payload, "t=1,v1=bad")
    assert await count_subscriptions(session_factory) == 0


# ── 파싱 / 플랜 ──────────────────────────────────────

@pytest.mark.parametrize("payload", [b"not json", b"[]", b'{"data": {"object": {}}}', b'{"type": "x", "data": {}}'])
def test_malformed_event(payload):
    with pytest.raises(MalformedEventError):
        parse_event(payload)


def test_parse_event_fields():
    event = parse_event(make_event("customer.subscription.deleted", {"id": "sub_1"}))
    assert event.kind.value == "customer.subscription.deleted"
    assert event.id == "evt_1"
    assert event.created == datetime.fromtimestamp(CREATED, tz=timezone.utc)
    assert parse_event(make_event("invoice.paid", {})).kind is None


@pytest.mark.parametrize(
    "plan,status,expected",
    [
        ("premium", "active", "premium"),
        ("ultimate", "past_due", "ultimate"),
        ("premium", "canceled", "free"),
        ("ultimate", "expired", "free"),
        ("free", "active", "free"),
    ],
)
def test_effective_plan(plan, status, expected):
    assert effective_plan(Subscription(plan=plan, status=status)) == expected


def test_effective_plan_without_record():
    assert effective_plan(None) == "free"


# ── 해지 예약 ───────────────────────────────────────

async def test_request_cancellation(session_factory, make_user):
    user = await make_user()
    await apply(session_factory, make_event("checkout.session.completed", checkout_obj(user)))
    async with session_factory() as session:
        record = await SubscriptionSynchronizer(session).request_cancellation(user.id)
    assert record.cancel_at_period_end is True
    assert record.status == "active"
    assert (await load(session_factory, user)).cancel_at_period_end is True


async def test_request_cancellation_without_subscription(session_factory, make_user):
    user = await make_user()
    async with session_factory() as session:
        assert await SubscriptionSynchronizer(session).request_cancellation(user.id) is None


async def test_request_cancellation_on_expired_subscription(session_factory, make_user):
    user = await make_user()
    await apply(session_factory, make_event("checkout.session.completed", checkout_obj(user)))
    await apply(session_factory, make_event("customer.subscription.deleted", {"id": "sub_1"}, event_id="evt_2"))
    async with session_factory() as session:
        assert await SubscriptionSynchronizer(session).request_cancellation(user.id) is None
    assert (await load(session_factory, user)).cancel_at_period_end is False


# ── 이상한 모양의 이벤트 ────────────────────────────

@pytest.mark.parametrize("metadata", [["user_id"], "premium", 7])
async def test_checkout_with_non_object_metadata_is_dropped(session_factory, make_user, metadata):
    await make_user()
    payload = make_event("checkout.session.completed", {"subscription": "sub_1", "metadata": metadata})
    assert await apply(session_factory, payload) == "dropped"
    assert await count_subscriptions(session_factory) == 0


async def test_update_with_list_items_keeps_period(session_factory, make_user):
    user = await make_user()
    await apply(session_factory, make_event("checkout.session.completed", checkout_obj(user)))
    before = await load(session_factory, user)
    payload = make_event(
        "customer.subscription.updated",
        {"id": "sub_1", "status": "active", "items": [{"current_period_start": CREATED}]},
        event_id="evt_2",
    )
    assert await apply(session_factory, payload) == "applied"
    after = await load(session_factory, user)
    assert after.current_period_start == before.current_period_start
    assert after.current_period_end == before.current_period_end


async def test_out_of_range_created_falls_back_to_clock(session_factory, make_user):
    user = await make_user()
    fixed = datetime(2024, 5, 1, tzinfo=timezone.utc)
    payload = make_event("checkout.session.completed", checkout_obj(user), created=10 ** 20)
    assert parse_event(payload).created is None
    assert await apply(session_factory, payload, clock=lambda: fixed) == "applied"
    record = await load(session_factory, user)
    assert naive(record.current_period_start) == naive(fixed)
