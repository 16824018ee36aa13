"""
플랜별 접근 정책 - 퀴즈 진입 권한과 플랜 한도
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Literal, Optional

from flagquiz.core.errors import UnknownFeatureError

PlanName = Literal["free", "premium", "ultimate"]
PLANS = ("free", "premium", "ultimate")

ULTIMATE_ONLY_MESSAGE = "이 퀴즈는 얼티밋 회원 전용입니다."
PREMIUM_ONLY_MESSAGE = "이 퀴즈는 프리미엄 회원만 이용할 수 있습니다."


@dataclass(frozen=True)
class AccessRule:
    requires_premium: bool = False
    requires_ultimate: bool = False


QUIZ_ACCESS: Dict[str, AccessRule] = {
    "flags": AccessRule(),
    "capitals": AccessRule(),
    "maps": AccessRule(),
    "world-knowledge": AccessRule(),
    "exclusive": AccessRule(requires_ultimate=True),
}


def get_access_rule(feature: str) -> AccessRule:
    rule = QUIZ_ACCESS.get(feature)
    if rule is None:
        raise UnknownFeatureError(feature)
    return rule


def can_access(feature: str, plan: PlanName) -> bool:
    """얼티밋은 프리미엄 권한을 포함한다."""
    rule = get_access_rule(feature)
    if rule.requires_ultimate and plan != "ultimate":
        return False
    if rule.requires_premium and plan == "free":
        return False
    return True


def access_denied_message(feature: str) -> Optional[str]:
    """제한 안내 문구 (얼티밋 문구 우선). 제한 없는 기능은 None."""
    rule = get_access_rule(feature)
    if rule.requires_ultimate:
        return ULTIMATE_ONLY_MESSAGE
    if rule.requires_premium:
        return PREMIUM_ONLY_MESSAGE
    return None


# ── 플랜 한도 ───────────────────────────────────────

@dataclass(frozen=True)
class PlanLimits:
    max_saved_accounts: float
    max_friends: float
    country_changes_per_month: float
    username_changes_per_month: float
    can_customize_profile: bool
    max_clan_size: float


PLAN_LIMITS: Dict[str, PlanLimits] = {
    "free": PlanLimits(3, 30, 5, 1, False, 30),
    "premium": PlanLimits(math.inf, math.inf, math.inf, math.inf, True, 75),
    "ultimate": PlanLimits(math.inf, math.inf, math.inf, math.inf, True, math.inf),
}
