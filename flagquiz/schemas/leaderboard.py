"""
리더보드 관련 스키마
"""

from typing import Any, Dict, List, Optional
from datetime import datetime
import uuid
from pydantic import BaseModel, ConfigDict, Field


class ScoreSubmitRequest(BaseModel):
    game_mode: str = Field(..., max_length=32, description="streak, timed, speedrush ...")
    score: int
    details: Optional[Dict[str, Any]] = None


class ScoreSubmitResponse(BaseModel):
    saved: bool
    reason: str  # improved, not_improved, ineligible_mode, invalid_score
    game_mode: str
    display_score: Optional[str] = None


class LeaderboardEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: uuid.UUID
    game_mode: str
    score: int
    details: Optional[Dict[str, Any]] = None
    updated_at: Optional[datetime] = None


class LeaderboardResponse(BaseModel):
    game_mode: str
    higher_is_better: bool
    entries: List[LeaderboardEntryResponse]
