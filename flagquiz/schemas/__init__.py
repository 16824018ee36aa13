"""
Pydantic 스키마 패키지
"""

from .leaderboard import (
    ScoreSubmitRequest,
    ScoreSubmitResponse,
    LeaderboardEntryResponse,
    LeaderboardResponse,
)
from .subscription import SubscriptionResponse, MySubscriptionResponse, WebhookAck, AccessResponse
from .rank import RankItem, RankResponse, XPProgressResponse, MyRankResponse
from .account import SavedAccountResponse, SavedAccountListResponse
