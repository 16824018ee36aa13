"""
모델 패키지
"""

from .user import User
from .profile import Profile, UserStats
from .subscription import Subscription
from .leaderboard import LeaderboardEntry

__all__ = [
    "User",
    "Profile",
    "UserStats",
    "Subscription",
    "LeaderboardEntry",
]
