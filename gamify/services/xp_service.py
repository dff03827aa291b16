"""
XP formula.
Computes the XP one task completion is worth. Pure functions, no database access.
"""
from datetime import datetime
from typing import Optional

from gamify.constants import (
    BASE_XP,
    TIER_MULTIPLIER,
    TIER_ALIASES,
    DEFAULT_TIER,
    DIFFICULTY_MULTIPLIER,
    DEFAULT_DIFFICULTY,
    ON_TIME_BONUS,
    STREAK_BONUS_PER_DAY,
    MAX_STREAK_MULTIPLIER,
)


def normalize_tier(tier: Optional[str]) -> str:
    """Map a tier (or legacy alias) to a known tier, falling back to quick"""
    if tier in TIER_MULTIPLIER:
        return tier
    return TIER_ALIASES.get(tier, DEFAULT_TIER)


def normalize_difficulty(difficulty: Optional[str]) -> str:
    """Map a difficulty to a known difficulty, falling back to medium"""
    if difficulty in DIFFICULTY_MULTIPLIER:
        return difficulty
    return DEFAULT_DIFFICULTY


def streak_multiplier(current_streak: int) -> float:
    """1 + 0.1 per streak day, capped at 2x"""
    return min(1 + max(current_streak, 0) * STREAK_BONUS_PER_DAY, MAX_STREAK_MULTIPLIER)


def is_on_time(due_date: Optional[datetime], completed_at: datetime) -> bool:
    """
    Decide the on-time flag for a completion.

    A task without a due date counts as on time; otherwise it must be
    completed no later than its due date. Both timestamps must already be
    normalized to the same timezone.
    """
    if due_date is None:
        return True
    return completed_at <= due_date


def compute_xp(
    tier: Optional[str],
    difficulty: Optional[str],
    due_date: Optional[datetime],
    was_on_time: Optional[bool],
    current_streak: int
) -> int:
    """
    Calculate XP for completing a task.

    Formula: XP = Base × TierMult × DifficultyMult × OnTimeBonus × StreakMult

    The on-time bonus applies only when the task has a due date and was
    completed on time. current_streak must be the streak after this
    completion's streak update.

    Returns:
        XP earned, truncated to an integer
    """
    xp = BASE_XP
    xp *= TIER_MULTIPLIER[normalize_tier(tier)]
    xp *= DIFFICULTY_MULTIPLIER[normalize_difficulty(difficulty)]

    if due_date is not None and was_on_time:
        xp *= ON_TIME_BONUS

    xp *= streak_multiplier(current_streak)

    return max(0, int(xp))
