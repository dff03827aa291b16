"""
Level ladder.

xp_required(level) = floor(100 × 1.5^(level − 1)) is the XP needed to finish
`level`. An actor's progress is (level, xp, xp_to_next) where xp is the
progress inside the current level, so 0 <= xp < xp_to_next at rest.

Gaining XP walks up the ladder from the current position. Losing XP cannot
be undone the same way (the stored xp says nothing about how the level was
reached), so it rebuilds lifetime XP, subtracts, and re-derives the position
from level 1.
"""
from dataclasses import dataclass
from typing import List

from gamify.constants import (
    LADDER_BASE_XP,
    LADDER_GROWTH_NUMERATOR,
    LADDER_GROWTH_DENOMINATOR,
    STARTING_LEVEL,
    CHARACTER_RANKS,
)


@dataclass(frozen=True)
class LevelState:
    level: int
    xp: int
    xp_to_next: int


def xp_required(level: int) -> int:
    """XP needed to complete `level`"""
    level = max(level, STARTING_LEVEL)
    steps = level - 1
    # Integer arithmetic keeps floor(100 * 1.5^n) exact for any level
    return (
        LADDER_BASE_XP * LADDER_GROWTH_NUMERATOR ** steps
    ) // LADDER_GROWTH_DENOMINATOR ** steps


def initial_state() -> LevelState:
    """Progress of a freshly registered user"""
    return LevelState(STARTING_LEVEL, 0, xp_required(STARTING_LEVEL))


def total_xp_to_reach(level: int) -> int:
    """Sum of xp_required for every level below `level`"""
    return sum(xp_required(lvl) for lvl in range(STARTING_LEVEL, max(level, STARTING_LEVEL)))


def lifetime_xp(level: int, xp: int) -> int:
    """Total XP earned to date for a position on the ladder"""
    return total_xp_to_reach(level) + max(xp, 0)


def state_from_total(total_xp: int) -> LevelState:
    """Walk up from level 1 and return the position for a lifetime XP total"""
    level = STARTING_LEVEL
    remaining = max(total_xp, 0)
    required = xp_required(level)
    while remaining >= required:
        remaining -= required
        level += 1
        required = xp_required(level)
    return LevelState(level, remaining, required)


def apply_xp(level: int, xp: int, xp_to_next: int, delta: int) -> LevelState:
    """
    Apply an XP gain (delta >= 0) or loss (delta < 0) to a ladder position.

    xp_to_next is accepted for signature parity with the stored fields but is
    recomputed from level, so a drifted stored value never leaks through.
    Gains may cross several levels; losses may drop several levels down to
    the level 1 floor, with lifetime XP clamped at 0.
    """
    level = max(level, STARTING_LEVEL)
    xp = max(xp, 0)

    if delta < 0:
        return state_from_total(lifetime_xp(level, xp) + delta)

    xp += delta
    xp_to_next = xp_required(level)
    while xp >= xp_to_next:
        xp -= xp_to_next
        level += 1
        xp_to_next = xp_required(level)
    return LevelState(level, xp, xp_to_next)


def level_table(max_level: int) -> List[dict]:
    """Ladder rows for levels 1..max_level"""
    table = []
    cumulative = 0
    for lvl in range(STARTING_LEVEL, max_level + 1):
        required = xp_required(lvl)
        table.append({
            "level": lvl,
            "xp_required": required,
            "total_xp_to_reach": cumulative,
        })
        cumulative += required
    return table


def rank_for_level(level: int) -> str:
    """Title of the highest rank whose minimum level has been reached"""
    title = CHARACTER_RANKS[0][1]
    for min_level, rank in CHARACTER_RANKS:
        if level < min_level:
            break
        title = rank
    return title
