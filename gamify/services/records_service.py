"""
Personal records service.
High-water marks that only ever move up.
"""
import logging
from typing import Optional
from sqlalchemy.orm import Session

from gamify.constants import RECORD_TYPES, RECORD_MOST_TASKS_DAY, RECORD_LONGEST_STREAK
from gamify.exceptions import ValidationException
from gamify.repositories.stats_repository import PersonalRecordRepository
from gamify.services.date_service import DateService

logger = logging.getLogger("gamify.records")


class RecordsService:
    """Service for personal record tracking"""

    def __init__(self, db: Session, date_service: Optional[DateService] = None):
        self.db = db
        self.repo = PersonalRecordRepository()
        self.date_service = date_service or DateService()

    def ratchet(self, user_id: int, record_type: str, candidate_value: int) -> bool:
        """
        Raise a record if candidate_value strictly beats it.

        Does not commit; callers run it inside their own transaction.

        Returns:
            True if the record changed
        """
        if record_type not in RECORD_TYPES:
            raise ValidationException("record_type", f"unknown record type {record_type!r}")

        updated = self.repo.ratchet(
            self.db, user_id, record_type, candidate_value, self.date_service.now()
        )
        if updated:
            logger.info(f"New personal record for user {user_id}: {record_type} = {candidate_value}")
        return updated

    def get_records(self, user_id: int, longest_streak: int) -> dict:
        """Records keyed by type; longest streak falls back to the user's own counter"""
        records = {r.record_type: r for r in self.repo.get_all(self.db, user_id)}

        most_tasks = records.get(RECORD_MOST_TASKS_DAY)
        streak = records.get(RECORD_LONGEST_STREAK)

        return {
            "most_tasks_in_day": {
                "value": most_tasks.value if most_tasks else 0,
                "achieved_at": most_tasks.achieved_at if most_tasks else None,
            },
            "longest_streak": {
                "value": streak.value if streak else longest_streak,
                "achieved_at": streak.achieved_at if streak else None,
            },
        }
