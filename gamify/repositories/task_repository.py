"""
Task repository - Data access layer for Task model.
Every lookup is scoped to the owning user.
"""
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from sqlalchemy import and_, func

from gamify.models import Task


class TaskRepository:
    """Repository for Task data access"""

    @staticmethod
    def get_owned(db: Session, user_id: int, task_id: int) -> Optional[Task]:
        """Get a task by ID if it belongs to the user"""
        return db.query(Task).filter(
            and_(Task.id == task_id, Task.user_id == user_id)
        ).first()

    @staticmethod
    def get_owned_for_update(db: Session, user_id: int, task_id: int) -> Optional[Task]:
        """Get an owned task, locking the row until the transaction ends"""
        return db.query(Task).filter(
            and_(Task.id == task_id, Task.user_id == user_id)
        ).with_for_update().populate_existing().first()

    @staticmethod
    def get_all(
        db: Session,
        user_id: int,
        is_completed: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Task]:
        """Get the user's tasks, incomplete first, then by due date"""
        query = db.query(Task).filter(Task.user_id == user_id)
        if is_completed is not None:
            query = query.filter(Task.is_completed == is_completed)
        return query.order_by(
            Task.is_completed.asc(),
            Task.due_date.is_(None),
            Task.due_date.asc(),
            Task.order_index.asc(),
            Task.created_at.desc()
        ).offset(skip).limit(limit).all()

    @staticmethod
    def next_order_index(db: Session, user_id: int) -> int:
        """Order index for a newly created task"""
        current = db.query(func.max(Task.order_index)).filter(Task.user_id == user_id).scalar()
        return 0 if current is None else current + 1

    @staticmethod
    def count_on_time(db: Session, user_id: int, exclude_task_id: Optional[int] = None) -> int:
        """Count completed tasks that were completed on time"""
        query = db.query(func.count(Task.id)).filter(
            and_(
                Task.user_id == user_id,
                Task.is_completed == True,
                Task.was_on_time == True
            )
        )
        if exclude_task_id is not None:
            query = query.filter(Task.id != exclude_task_id)
        return query.scalar() or 0

    @staticmethod
    def has_completed_with(
        db: Session,
        user_id: int,
        exclude_task_id: Optional[int] = None,
        tier: Optional[str] = None,
        difficulty: Optional[str] = None
    ) -> bool:
        """Whether any other completed task matches the given tier/difficulty"""
        query = db.query(Task.id).filter(
            and_(Task.user_id == user_id, Task.is_completed == True)
        )
        if tier is not None:
            query = query.filter(Task.tier == tier)
        if difficulty is not None:
            query = query.filter(Task.difficulty == difficulty)
        if exclude_task_id is not None:
            query = query.filter(Task.id != exclude_task_id)
        return query.first() is not None

    @staticmethod
    def get_counts(db: Session, user_id: int, now: datetime) -> dict:
        """Completed / pending / on-time / overdue counts for the user"""
        base = db.query(func.count(Task.id)).filter(Task.user_id == user_id)
        return {
            "completed": base.filter(Task.is_completed == True).scalar() or 0,
            "pending": base.filter(Task.is_completed == False).scalar() or 0,
            "on_time": base.filter(
                and_(Task.is_completed == True, Task.was_on_time == True)
            ).scalar() or 0,
            "overdue": base.filter(
                and_(Task.is_completed == False, Task.due_date < now)
            ).scalar() or 0,
        }

    @staticmethod
    def create(db: Session, task: Task) -> Task:
        """Create new task"""
        db.add(task)
        db.commit()
        db.refresh(task)
        return task

    @staticmethod
    def update(db: Session, task: Task) -> Task:
        """Update existing task"""
        db.commit()
        db.refresh(task)
        return task

    @staticmethod
    def save(db: Session, task: Task) -> Task:
        """Stage changes to a task inside the current transaction"""
        db.add(task)
        db.flush()
        return task

    @staticmethod
    def delete(db: Session, task: Task) -> None:
        """Delete a task"""
        db.delete(task)
        db.commit()
