"""
Statistics service.
Read-only views over a user's progress, aggregates and records.
"""
from typing import Optional
from sqlalchemy.orm import Session

from gamify.constants import (
    LEVEL_TABLE_SIZE, STREAK_ACTIVITY_WINDOW_DAYS, WEEK_WINDOW_DAYS, MAX_DAILY_WINDOW_DAYS
)
from gamify.exceptions import ValidationException
from gamify.models import User
from gamify.repositories.task_repository import TaskRepository
from gamify.repositories.stats_repository import DailyStatRepository
from gamify.services.achievement_service import (
    AchievementCatalog, default_catalog, list_with_status
)
from gamify.services.date_service import DateService
from gamify.services.level_service import level_table, rank_for_level
from gamify.services.records_service import RecordsService
from gamify.services.streak_service import is_streak_at_risk


class StatsService:
    """Service for statistics and progress views"""

    def __init__(
        self,
        db: Session,
        catalog: Optional[AchievementCatalog] = None,
        date_service: Optional[DateService] = None
    ):
        self.db = db
        self.catalog = catalog or default_catalog()
        self.date_service = date_service or DateService()
        self.task_repo = TaskRepository()
        self.daily_repo = DailyStatRepository()
        self.records_service = RecordsService(db, self.date_service)

    def get_summary(self, user: User) -> dict:
        """Progress, task counts, today's and this week's totals"""
        today = self.date_service.today()
        counts = self.task_repo.get_counts(self.db, user.id, self.date_service.now())
        today_stat = self.daily_repo.get_by_date(self.db, user.id, today)
        week = self.daily_repo.sum_range(self.db, user.id, WEEK_WINDOW_DAYS, today)

        return {
            "user": {
                "level": user.level,
                "rank": rank_for_level(user.level),
                "xp": user.xp,
                "xp_to_next": user.xp_to_next,
                "xp_progress": round(user.xp / user.xp_to_next * 100) if user.xp_to_next else 0,
                "total_tasks_completed": user.total_tasks_completed,
                "current_streak": user.current_streak,
                "longest_streak": user.longest_streak,
                "achievements_count": len(user.achievements or []),
            },
            "tasks": counts,
            "today": {
                "tasks_completed": today_stat.tasks_completed if today_stat else 0,
                "xp_earned": today_stat.xp_earned if today_stat else 0,
                "on_time_completions": today_stat.on_time_completions if today_stat else 0,
            },
            "this_week": week,
        }

    def get_achievements(self, user: User) -> dict:
        """Catalog with unlock status and overall progress"""
        achievements = list_with_status(self.catalog, user.achievements or [])
        unlocked = sum(1 for a in achievements if a["unlocked"])
        total = len(achievements)
        return {
            "achievements": achievements,
            "unlocked": unlocked,
            "total": total,
            "progress": round(unlocked / total * 100) if total else 0,
        }

    def get_streaks(self, user: User) -> dict:
        """Streak counters, at-risk flag and recent activity (newest first)"""
        today = self.date_service.today()
        recent = self.daily_repo.get_range(self.db, user.id, STREAK_ACTIVITY_WINDOW_DAYS, today)
        return {
            "current_streak": user.current_streak,
            "longest_streak": user.longest_streak,
            "streak_at_risk": is_streak_at_risk(user.last_activity_date, today, user.current_streak),
            "recent_activity": list(reversed(recent)),
        }

    def get_records(self, user: User) -> dict:
        """Personal records"""
        return self.records_service.get_records(user.id, user.longest_streak)

    def get_daily(self, user: User, days: int = 30) -> list:
        """Daily aggregates for the last N days, oldest first"""
        if days < 1 or days > MAX_DAILY_WINDOW_DAYS:
            raise ValidationException("days", f"must be between 1 and {MAX_DAILY_WINDOW_DAYS}")
        return self.daily_repo.get_range(self.db, user.id, days, self.date_service.today())

    def get_levels(self, user: User) -> dict:
        """Level ladder and the user's position on it"""
        return {
            "current_level": user.level,
            "current_xp": user.xp,
            "xp_to_next": user.xp_to_next,
            "rank": rank_for_level(user.level),
            "levels": level_table(LEVEL_TABLE_SIZE),
        }
