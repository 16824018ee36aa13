"""
랭크 스키마
"""

from typing import Optional
from pydantic import BaseModel


class RankItem(BaseModel):
    name: str
    level: int
    color: str


class RankResponse(BaseModel):
    level: int
    rank: str
    tier: str
    color: str
    next_rank: Optional[str] = None


class XPProgressResponse(BaseModel):
    current_level: int
    xp_in_current_level: int
    xp_needed_for_next_level: int
    progress_percentage: float


class MyRankResponse(RankResponse):
    total_xp: int
    progress: XPProgressResponse
