"""
구독/접근 권한 스키마
"""

from typing import Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    plan: str
    status: str
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    updated_at: Optional[datetime] = None


class MySubscriptionResponse(BaseModel):
    effective_plan: str
    subscription: Optional[SubscriptionResponse] = None


class WebhookAck(BaseModel):
    received: bool = True
    result: str


class AccessResponse(BaseModel):
    feature: str
    plan: str
    allowed: bool
    message: Optional[str] = None
