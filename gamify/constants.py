"""
Application constants.
Gamification tuning values, record types and deployment defaults.
"""
import os

# ===== DEPLOYMENT =====

DATABASE_URL = os.getenv("GAMIFY_DATABASE_URL", "sqlite:///./gamify.db")

DEFAULT_LOG_DIRECTORY_PROD = "/var/log/gamify"
DEFAULT_LOG_DIRECTORY_DEV = "./logs"

CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "GAMIFY_CORS_ORIGINS", "http://localhost:3000,http://localhost:5173"
    ).split(",")
    if origin.strip()
]

# ===== XP FORMULA =====

BASE_XP = 10

TIER_MAJOR = "major"
TIER_STANDARD = "standard"
TIER_QUICK = "quick"

TIER_MULTIPLIER = {
    TIER_MAJOR: 3,
    TIER_STANDARD: 2,
    TIER_QUICK: 1,
}

# Older clients send numbered tiers
TIER_ALIASES = {
    "tier1": TIER_MAJOR,
    "tier2": TIER_STANDARD,
    "tier3": TIER_QUICK,
}

DEFAULT_TIER = TIER_QUICK

DIFFICULTY_EASY = "easy"
DIFFICULTY_MEDIUM = "medium"
DIFFICULTY_HARD = "hard"
DIFFICULTY_EPIC = "epic"

DIFFICULTY_MULTIPLIER = {
    DIFFICULTY_EASY: 1,
    DIFFICULTY_MEDIUM: 1.5,
    DIFFICULTY_HARD: 2,
    DIFFICULTY_EPIC: 3,
}

DEFAULT_DIFFICULTY = DIFFICULTY_MEDIUM

ON_TIME_BONUS = 1.5
STREAK_BONUS_PER_DAY = 0.1
MAX_STREAK_MULTIPLIER = 2.0

# ===== LEVEL LADDER =====

# xp_required(level) = floor(LADDER_BASE_XP * (3/2) ** (level - 1))
LADDER_BASE_XP = 100
LADDER_GROWTH_NUMERATOR = 3
LADDER_GROWTH_DENOMINATOR = 2

STARTING_LEVEL = 1
LEVEL_TABLE_SIZE = 50

# ===== PERSONAL RECORDS =====

RECORD_MOST_TASKS_DAY = "most-tasks-day"
RECORD_LONGEST_STREAK = "longest-streak"

RECORD_TYPES = (RECORD_MOST_TASKS_DAY, RECORD_LONGEST_STREAK)

# ===== RANKS =====

# (min_level, title), ascending
CHARACTER_RANKS = (
    (1, "Novice"),
    (5, "Apprentice"),
    (10, "Journeyman"),
    (15, "Adept"),
    (20, "Expert"),
    (30, "Master"),
    (40, "Grandmaster"),
    (50, "Legend"),
    (75, "Mythic"),
    (100, "Immortal"),
)

# ===== STATS =====

STREAK_ACTIVITY_WINDOW_DAYS = 30
WEEK_WINDOW_DAYS = 7
MAX_DAILY_WINDOW_DAYS = 365
