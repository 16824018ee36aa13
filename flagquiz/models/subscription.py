"""
구독 모델 - 결제 제공자 이벤트로 동기화되는 사용자별 구독 상태
"""

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
import uuid

from flagquiz.core.database import Base, UUID


class Subscription(Base):
    """사용자 구독 상태 (user_id당 1건, checkout 완료 이벤트로만 생성)"""
    __tablename__ = "subscriptions"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    plan = Column(String(20), nullable=False, default="free")  # free, premium, ultimate
    status = Column(String(20), nullable=False, default="active")  # active, past_due, canceled, expired
    stripe_customer_id = Column(String(255), index=True)
    stripe_subscription_id = Column(String(255), unique=True, index=True)
    stripe_price_id = Column(String(255))
    current_period_start = Column(DateTime(timezone=True))
    current_period_end = Column(DateTime(timezone=True))
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Subscription(user_id={self.user_id}, plan={self.plan}, status={self.status})>"
