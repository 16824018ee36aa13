"""
리더보드 모델 - (user_id, game_mode)당 최고 기록 1건
"""

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
import uuid

from flagquiz.core.database import Base, UUID, JSON


class LeaderboardEntry(Base):
    """게임 모드별 개인 최고 기록"""
    __tablename__ = "leaderboards"

    id = Column(UUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    game_mode = Column(String(32), nullable=False)  # streak, timed, speedrush_30s ...
    score = Column(Integer, nullable=False)
    details = Column(JSON, default=dict)  # time_limit 등 부가 정보
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "game_mode", name="uq_leaderboards_user_mode"),
    )
