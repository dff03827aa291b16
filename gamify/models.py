from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Date, JSON, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime

from gamify.database import Base


class User(Base):
    """The gamification subject. Only CompletionService writes the progress fields."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, nullable=False, unique=True)
    api_key = Column(String, nullable=False, unique=True, index=True)

    # Progress
    level = Column(Integer, nullable=False, default=1)
    xp = Column(Integer, nullable=False, default=0)            # Progress inside the current level
    xp_to_next = Column(Integer, nullable=False, default=100)  # Always derived from level
    total_tasks_completed = Column(Integer, nullable=False, default=0)

    # Streaks
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    last_activity_date = Column(Date, nullable=True)  # UTC calendar day of last completion

    # Unlocked achievement ids, append-only
    achievements = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=datetime.utcnow)

    tasks = relationship("Task", back_populates="user", cascade="all, delete-orphan")


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    priority = Column(String, nullable=True)  # High, Medium, Low
    order_index = Column(Integer, default=0)

    # XP weighting
    tier = Column(String, nullable=False, default="quick")          # major, standard, quick
    difficulty = Column(String, nullable=False, default="medium")   # easy, medium, hard, epic

    due_date = Column(DateTime, nullable=True)  # UTC
    created_at = Column(DateTime, default=datetime.utcnow)

    # Completion state, frozen at completion time
    is_completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime, nullable=True)  # UTC
    was_on_time = Column(Boolean, nullable=True)
    xp_earned = Column(Integer, nullable=False, default=0)

    user = relationship("User", back_populates="tasks")


class DailyStat(Base):
    __tablename__ = "daily_stats"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_daily_stats_user_date"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)

    tasks_completed = Column(Integer, nullable=False, default=0)
    xp_earned = Column(Integer, nullable=False, default=0)
    on_time_completions = Column(Integer, nullable=False, default=0)


class PersonalRecord(Base):
    __tablename__ = "personal_records"
    __table_args__ = (
        UniqueConstraint("user_id", "record_type", name="uq_personal_records_user_type"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    record_type = Column(String, nullable=False)  # most-tasks-day, longest-streak
    value = Column(Integer, nullable=False, default=0)
    achieved_at = Column(DateTime, nullable=False, default=datetime.utcnow)
