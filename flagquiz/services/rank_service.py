"""
랭크/티어 계산 - 누적 경험치 → 레벨 → 랭크(I/II/III)

모든 표는 모듈 로드 시 한 번 만들어지는 불변 데이터다.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Tuple

Tier = Literal["I", "II", "III"]

# 마지막 랭크의 상한(다음 랭크가 없을 때 쓰는 가상 문턱)
LAST_RANK_CEILING = 101
# 구간 길이가 이 값 이하이면 하위 티어를 나누지 않는다
MIN_SPAN_FOR_TIERS = 10


@dataclass(frozen=True)
class Rank:
    name: str
    level: int  # 진입 문턱 레벨
    color: str


RANKS: Tuple[Rank, ...] = (
    Rank("Bronze", 1, "#CD7F32"),
    Rank("Silver", 20, "#C0C0C0"),
    Rank("Gold", 40, "#FFD700"),
    Rank("Platinum", 60, "#E5E4E2"),
    Rank("Diamond", 75, "#B9F2FF"),
    Rank("Masters", 90, "#FF6B9D"),
    Rank("Legends", 100, "#FF0000"),
)

if any(a.level >= b.level for a, b in zip(RANKS, RANKS[1:])):
    raise RuntimeError("RANKS thresholds must be strictly increasing")


def rank_for_level(level: int) -> Rank:
    """level 이하 문턱 중 가장 높은 랭크. 모든 문턱보다 낮으면 최하위 랭크."""
    for rank in reversed(RANKS):
        if level >= rank.level:
            return rank
    return RANKS[0]


def next_rank(rank: Rank) -> Optional[Rank]:
    idx = RANKS.index(rank)
    return RANKS[idx + 1] if idx + 1 < len(RANKS) else None


def tier_for_level(level: int, rank: Rank) -> Tier:
    """랭크 안의 하위 티어.

    III로 진입해서 I이 랭크의 최상단이다 (사용자에게 보이는 진행 순서).
    구간 길이가 10 이하인 랭크는 항상 I.
    """
    following = next_rank(rank)
    next_level = following.level if following else LAST_RANK_CEILING
    span = next_level - rank.level
    offset = level - rank.level

    if span <= MIN_SPAN_FOR_TIERS:
        return "I"

    third = span // 3
    if offset < third:
        return "III"
    if offset < third * 2:
        return "II"
    return "I"


# ── 경험치 테이블 ────────────────────────────────────
# (level, xp_for_level, cumulative_xp)
XP_TABLE: Tuple[Tuple[int, int, int], ...] = (
    (1, 4, 4), (2, 8, 12), (3, 14, 26), (4, 20, 46), (5, 26, 72),
    (6, 33, 105), (7, 40, 145), (8, 47, 192), (9, 55, 247), (10, 63, 310),
    (11, 70, 380), (12, 79, 459), (13, 88, 547), (14, 97, 644), (15, 107, 751),
    (16, 117, 868), (17, 126, 994), (18, 137, 1131), (19, 147, 1278), (20, 149, 1427),
    (21, 161, 1588), (22, 172, 1760), (23, 184, 1944), (24, 196, 2140), (25, 209, 2349),
    (26, 222, 2571), (27, 235, 2806), (28, 249, 3055), (29, 262, 3317), (30, 247, 3564),
    (31, 275, 3839), (32, 288, 4127), (33, 301, 4428), (34, 315, 4743), (35, 329, 5072),
    (36, 343, 5415), (37, 357, 5772), (38, 371, 6143), (39, 386, 6529), (40, 354, 6883),
    (41, 401, 7284), (42, 416, 7700), (43, 431, 8131), (44, 446, 8577), (45, 462, 9039),
    (46, 478, 9517), (47, 494, 10011), (48, 510, 10521), (49, 526, 11047), (50, 468, 11515),
    (51, 557, 12072), (52, 573, 12645), (53, 589, 13234), (54, 606, 13840), (55, 623, 14463),
    (56, 640, 15103), (57, 657, 15760), (58, 674, 16434), (59, 692, 17126), (60, 587, 17713),
    (61, 743, 18456), (62, 761, 19217), (63, 779, 19996), (64, 797, 20793), (65, 815, 21608),
    (66, 833, 22441), (67, 852, 23293), (68, 871, 24164), (69, 890, 25054), (70, 712, 25766),
    (71, 930, 26696), (72, 950, 27646), (73, 970, 28616), (74, 990, 29606), (75, 1011, 30617),
    (76, 1032, 31649), (77, 1053, 32702), (78, 1074, 33776), (79, 1095, 34871), (80, 842, 35713),
    (81, 1130, 36843), (82, 1151, 37994), (83, 1173, 39167), (84, 1195, 40362), (85, 1217, 41579),
    (86, 1239, 42818), (87, 1262, 44080), (88, 1285, 45365), (89, 1308, 46673), (90, 975, 47648),
    (91, 1333, 48981), (92, 1357, 50338), (93, 1381, 51719), (94, 1405, 53124), (95, 1429, 54553),
    (96, 1454, 56007), (97, 1479, 57486), (98, 1504, 58990), (99, 1529, 60519), (100, 1112, 61631),
)
MAX_LEVEL = XP_TABLE[-1][0]


def level_for_xp(total_xp: int) -> int:
    """누적 경험치로 레벨 계산 (4 XP 미만은 0레벨)"""
    for level, _, cumulative in reversed(XP_TABLE):
        if total_xp >= cumulative:
            return level
    return 0


def xp_for_level(level: int) -> int:
    if level < 1 or level > MAX_LEVEL:
        return 0
    return XP_TABLE[level - 1][1]


def cumulative_xp(level: int) -> int:
    if level < 1:
        return 0
    if level > MAX_LEVEL:
        return XP_TABLE[-1][2]
    return XP_TABLE[level - 1][2]


@dataclass(frozen=True)
class XPProgress:
    current_level: int
    xp_in_current_level: int
    xp_needed_for_next_level: int
    progress_percentage: float


def xp_progress(total_xp: int) -> XPProgress:
    """현재 레벨 안에서의 진행도"""
    current = level_for_xp(total_xp)
    if current >= MAX_LEVEL:
        return XPProgress(MAX_LEVEL, 0, 0, 100.0)

    in_level = total_xp - cumulative_xp(current)
    needed = xp_for_level(current + 1)
    pct = in_level / needed * 100
    return XPProgress(current, in_level, needed, min(100.0, max(0.0, pct)))
