"""
Stats repository - Data access layer for daily aggregates and personal records.
Writes only flush; the calling service owns the commit.
"""
from datetime import date, datetime, timedelta
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import and_, func

from gamify.models import DailyStat, PersonalRecord


class DailyStatRepository:
    """Repository for DailyStat data access"""

    @staticmethod
    def get_by_date(db: Session, user_id: int, target_date: date) -> Optional[DailyStat]:
        """Get the aggregate for one day"""
        return db.query(DailyStat).filter(
            and_(DailyStat.user_id == user_id, DailyStat.date == target_date)
        ).first()

    @staticmethod
    def upsert(
        db: Session,
        user_id: int,
        target_date: date,
        tasks_completed: int = 0,
        xp_earned: int = 0,
        on_time_completions: int = 0
    ) -> DailyStat:
        """Add deltas to the day's aggregate, creating it if missing. Counters floor at 0."""
        stat = DailyStatRepository.get_by_date(db, user_id, target_date)
        if stat is None:
            stat = DailyStat(
                user_id=user_id,
                date=target_date,
                tasks_completed=0,
                xp_earned=0,
                on_time_completions=0
            )
            db.add(stat)

        stat.tasks_completed = max(0, stat.tasks_completed + tasks_completed)
        stat.xp_earned = max(0, stat.xp_earned + xp_earned)
        stat.on_time_completions = max(0, stat.on_time_completions + on_time_completions)
        db.flush()
        return stat

    @staticmethod
    def decrement(
        db: Session,
        user_id: int,
        target_date: date,
        tasks_completed: int = 0,
        xp_earned: int = 0,
        on_time_completions: int = 0
    ) -> Optional[DailyStat]:
        """Subtract from an existing day's aggregate (floored at 0). Missing days are left alone."""
        stat = DailyStatRepository.get_by_date(db, user_id, target_date)
        if stat is None:
            return None

        stat.tasks_completed = max(0, stat.tasks_completed - tasks_completed)
        stat.xp_earned = max(0, stat.xp_earned - xp_earned)
        stat.on_time_completions = max(0, stat.on_time_completions - on_time_completions)
        db.flush()
        return stat

    @staticmethod
    def get_range(db: Session, user_id: int, days: int, until: date) -> List[DailyStat]:
        """Aggregates from `days` days before `until` through `until`, oldest first"""
        start_date = until - timedelta(days=days)
        return db.query(DailyStat).filter(
            and_(
                DailyStat.user_id == user_id,
                DailyStat.date >= start_date,
                DailyStat.date <= until
            )
        ).order_by(DailyStat.date.asc()).all()

    @staticmethod
    def sum_range(db: Session, user_id: int, days: int, until: date) -> dict:
        """Summed tasks and XP over a window"""
        start_date = until - timedelta(days=days)
        tasks, xp = db.query(
            func.coalesce(func.sum(DailyStat.tasks_completed), 0),
            func.coalesce(func.sum(DailyStat.xp_earned), 0)
        ).filter(
            and_(
                DailyStat.user_id == user_id,
                DailyStat.date >= start_date,
                DailyStat.date <= until
            )
        ).one()
        return {"tasks_completed": int(tasks), "xp_earned": int(xp)}


class PersonalRecordRepository:
    """Repository for PersonalRecord data access"""

    @staticmethod
    def get(db: Session, user_id: int, record_type: str) -> Optional[PersonalRecord]:
        """Get one record"""
        return db.query(PersonalRecord).filter(
            and_(
                PersonalRecord.user_id == user_id,
                PersonalRecord.record_type == record_type
            )
        ).first()

    @staticmethod
    def get_all(db: Session, user_id: int) -> List[PersonalRecord]:
        """Get every record for the user"""
        return db.query(PersonalRecord).filter(PersonalRecord.user_id == user_id).all()

    @staticmethod
    def ratchet(
        db: Session,
        user_id: int,
        record_type: str,
        value: int,
        achieved_at: datetime
    ) -> bool:
        """
        Store `value` only if it beats the stored record.

        Returns:
            True if the record was created or raised
        """
        record = PersonalRecordRepository.get(db, user_id, record_type)
        if record is None:
            db.add(PersonalRecord(
                user_id=user_id,
                record_type=record_type,
                value=value,
                achieved_at=achieved_at
            ))
            db.flush()
            return True

        if value > record.value:
            record.value = value
            record.achieved_at = achieved_at
            db.flush()
            return True

        return False
