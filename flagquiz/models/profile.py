"""
프로필 / 통계 모델
"""

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey
from sqlalchemy.sql import func

from flagquiz.core.database import Base, UUID


class Profile(Base):
    """공개 프로필"""
    __tablename__ = "profiles"

    user_id = Column(UUID(), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    display_name = Column(String(50))
    country = Column(String(2))  # ISO 3166-1 alpha-2
    avatar_url = Column(String(500))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class UserStats(Base):
    """누적 경험치 등 게임 통계 (레벨/랭크의 원천)"""
    __tablename__ = "user_stats"

    user_id = Column(UUID(), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    total_xp = Column(Integer, nullable=False, default=0)
    games_played = Column(Integer, nullable=False, default=0)
    correct_answers = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
