"""
Task management service.
Handles task CRUD for a user. Completion state is owned by CompletionService
and is never written here.
"""
from typing import List, Optional
from sqlalchemy.orm import Session

from gamify.constants import TIER_MULTIPLIER, TIER_ALIASES, DIFFICULTY_MULTIPLIER
from gamify.exceptions import TaskNotFoundError, ValidationException
from gamify.models import Task, User
from gamify.repositories.task_repository import TaskRepository
from gamify.schemas import TaskCreate, TaskUpdate, TaskResponse
from gamify.services.date_service import DateService
from gamify.services.xp_service import (
    compute_xp, is_on_time, normalize_tier, normalize_difficulty
)

NON_NULLABLE_FIELDS = ("title", "tier", "difficulty", "order_index")


class TaskService:
    """Service for task management"""

    def __init__(self, db: Session, date_service: Optional[DateService] = None):
        self.db = db
        self.task_repo = TaskRepository()
        self.date_service = date_service or DateService()

    def get_task(self, user: User, task_id: int) -> Task:
        """Get an owned task or raise TaskNotFoundError"""
        task = self.task_repo.get_owned(self.db, user.id, task_id)
        if not task:
            raise TaskNotFoundError(task_id)
        return task

    def get_tasks(
        self,
        user: User,
        is_completed: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100
    ) -> List[Task]:
        """Get the user's tasks with optional filtering"""
        return self.task_repo.get_all(self.db, user.id, is_completed, skip, limit)

    def create_task(self, user: User, task_data: TaskCreate) -> Task:
        """Create a new task"""
        data = task_data.model_dump()
        data["tier"] = self._validate_tier(data.get("tier"))
        data["difficulty"] = self._validate_difficulty(data.get("difficulty"))
        data["due_date"] = self.date_service.to_utc_naive(data.get("due_date"))

        task = Task(**data)
        task.user_id = user.id
        task.order_index = self.task_repo.next_order_index(self.db, user.id)
        return self.task_repo.create(self.db, task)

    def update_task(self, user: User, task_id: int, task_update: TaskUpdate) -> Task:
        """
        Update an existing task.

        Editing the due date of a completed task does not change its frozen
        was_on_time or xp_earned.
        """
        task = self.get_task(user, task_id)

        update_data = task_update.model_dump(exclude_unset=True)
        # An explicit null leaves required fields as they are
        for key in NON_NULLABLE_FIELDS:
            if key in update_data and update_data[key] is None:
                del update_data[key]

        if "tier" in update_data:
            update_data["tier"] = self._validate_tier(update_data["tier"])
        if "difficulty" in update_data:
            update_data["difficulty"] = self._validate_difficulty(update_data["difficulty"])
        if "due_date" in update_data:
            update_data["due_date"] = self.date_service.to_utc_naive(update_data["due_date"])

        for key, value in update_data.items():
            setattr(task, key, value)

        return self.task_repo.update(self.db, task)

    def delete_task(self, user: User, task_id: int) -> None:
        """Delete a task"""
        task = self.get_task(user, task_id)
        self.task_repo.delete(self.db, task)

    def preview_xp(self, task: Task, current_streak: int) -> int:
        """XP the task would award if completed now, at the user's current streak"""
        due_date = self.date_service.to_utc_naive(task.due_date)
        on_time = is_on_time(due_date, self.date_service.now())
        return compute_xp(task.tier, task.difficulty, due_date, on_time, current_streak)

    def to_response(self, task: Task, user: User) -> TaskResponse:
        """Serialize a task, adding the XP preview while it is incomplete"""
        response = TaskResponse.model_validate(task)
        if not task.is_completed:
            response.xp_preview = self.preview_xp(task, user.current_streak)
        return response

    @staticmethod
    def _validate_tier(tier: Optional[str]) -> str:
        if tier is None:
            return normalize_tier(None)
        if tier not in TIER_MULTIPLIER and tier not in TIER_ALIASES:
            raise ValidationException("tier", f"unknown tier {tier!r}")
        return normalize_tier(tier)

    @staticmethod
    def _validate_difficulty(difficulty: Optional[str]) -> str:
        if difficulty is None:
            return normalize_difficulty(None)
        if difficulty not in DIFFICULTY_MULTIPLIER:
            raise ValidationException("difficulty", f"unknown difficulty {difficulty!r}")
        return difficulty
