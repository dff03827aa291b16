"""
Task completion transaction.

The only code path that changes a user's XP, level, streak, achievements,
daily aggregates and personal records. Completing and uncompleting a task
each run as one database transaction:

- a per-user lock serializes transactions for the same user inside this
  process, and the user and task rows are read with SELECT ... FOR UPDATE so
  separate processes serialize on the database
- every read a decision depends on happens before the first write
- any failure rolls the whole session back; nothing is partially persisted

Uncompleting reverses XP/level, the completion counter and the day's
aggregate. Streaks and achievements are left alone. A completion that
awarded no XP only gives back its place in the completion counter.
"""
import logging
import threading
import weakref
from contextlib import contextmanager
from typing import Optional, Tuple
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gamify.constants import (
    DIFFICULTY_EPIC, TIER_MAJOR, RECORD_MOST_TASKS_DAY, RECORD_LONGEST_STREAK
)
from gamify.exceptions import (
    GamifyException, ActorNotFoundError, TaskNotFoundError,
    AlreadyCompletedError, NotCompletedError, DatabaseException, TransactionError
)
from gamify.models import Task, User
from gamify.repositories.user_repository import UserRepository
from gamify.repositories.task_repository import TaskRepository
from gamify.repositories.stats_repository import DailyStatRepository
from gamify.schemas import CompletionResult, UncompletionResult, AchievementUnlocked
from gamify.services.achievement_service import (
    AchievementCatalog, StatsSnapshot, default_catalog, evaluate
)
from gamify.services.date_service import DateService
from gamify.services.level_service import LevelState, apply_xp, xp_required
from gamify.services.records_service import RecordsService
from gamify.services.streak_service import update_streak
from gamify.services.xp_service import (
    compute_xp, is_on_time, normalize_tier, normalize_difficulty
)

logger = logging.getLogger("gamify.completion")


class UserLocks:
    """
    One lock per user id, created on first use.

    Entries are weak: a lock lives only while some transaction holds or
    waits on it, so the map does not grow with every user ever seen.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = weakref.WeakValueDictionary()

    def for_user(self, user_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock


# Shared by every CompletionService in the process
_user_locks = UserLocks()


class CompletionService:
    """Service for the complete / uncomplete transactions"""

    def __init__(
        self,
        db: Session,
        catalog: Optional[AchievementCatalog] = None,
        date_service: Optional[DateService] = None,
        locks: Optional[UserLocks] = None
    ):
        self.db = db
        self.catalog = catalog or default_catalog()
        self.date_service = date_service or DateService()
        self.locks = locks or _user_locks
        self.user_repo = UserRepository()
        self.task_repo = TaskRepository()
        self.daily_repo = DailyStatRepository()
        self.records_service = RecordsService(db, self.date_service)

    # ===== PUBLIC API =====

    def complete_task(self, user_id: int, task_id: int) -> Tuple[Task, CompletionResult]:
        """
        Mark a task completed and award XP, streak, achievements and records.

        Raises:
            ActorNotFoundError, TaskNotFoundError, AlreadyCompletedError,
            DatabaseException, TransactionError
        """
        with self._transaction("complete", user_id, task_id):
            task, result = self._complete(user_id, task_id)

        self.db.refresh(task)
        return task, result

    def uncomplete_task(self, user_id: int, task_id: int) -> Tuple[Task, UncompletionResult]:
        """
        Undo a completion and revoke exactly the XP it awarded.

        Raises:
            ActorNotFoundError, TaskNotFoundError, NotCompletedError,
            DatabaseException, TransactionError
        """
        with self._transaction("uncomplete", user_id, task_id):
            task, result = self._uncomplete(user_id, task_id)

        self.db.refresh(task)
        return task, result

    # ===== TRANSACTION BOUNDARY =====

    @contextmanager
    def _transaction(self, operation: str, user_id: int, task_id: int):
        with self.locks.for_user(user_id):
            try:
                yield
                self.db.commit()
            except GamifyException as e:
                self.db.rollback()
                logger.warning(f"{operation} rejected (user {user_id}, task {task_id}): {e}")
                raise
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"{operation} failed (user {user_id}, task {task_id}): {e}")
                raise DatabaseException(operation, str(e)) from e
            except Exception as e:
                self.db.rollback()
                logger.exception(f"{operation} failed (user {user_id}, task {task_id})")
                raise TransactionError(operation, str(e)) from e

    def _load(self, user_id: int, task_id: int) -> Tuple[User, Task]:
        user = self.user_repo.get_for_update(self.db, user_id)
        if user is None:
            raise ActorNotFoundError(user_id)

        task = self.task_repo.get_owned_for_update(self.db, user_id, task_id)
        if task is None:
            raise TaskNotFoundError(task_id)

        return user, task

    # ===== FORWARD =====

    def _complete(self, user_id: int, task_id: int) -> Tuple[Task, CompletionResult]:
        user, task = self._load(user_id, task_id)
        if task.is_completed:
            raise AlreadyCompletedError(task_id)

        now = self.date_service.now()
        today = now.date()

        # 1. Freeze on-time flag
        due_date = self.date_service.to_utc_naive(task.due_date)
        was_on_time = is_on_time(due_date, now)

        # 2. Streak
        new_streak, new_longest = update_streak(
            user.last_activity_date, today, user.current_streak, user.longest_streak
        )

        # 3. XP for this task, at the post-update streak
        earned_xp = compute_xp(task.tier, task.difficulty, due_date, was_on_time, new_streak)

        # 4. Level
        previous_level = user.level
        state = apply_xp(user.level, user.xp, user.xp_to_next, earned_xp)

        # 5. Achievements, evaluated once against the pre-bonus level
        total_completed = (user.total_tasks_completed or 0) + 1
        snapshot = self._snapshot(user, task, state, total_completed, new_streak, new_longest, was_on_time)
        unlocked_ids = list(user.achievements or [])
        evaluation = evaluate(self.catalog, unlocked_ids, snapshot)

        # 6. Achievement bonus may cross more levels
        if evaluation.bonus_xp > 0:
            state = apply_xp(state.level, state.xp, state.xp_to_next, evaluation.bonus_xp)

        # 7. Persist
        task.is_completed = True
        task.completed_at = now
        task.was_on_time = was_on_time
        task.xp_earned = earned_xp
        self.task_repo.save(self.db, task)

        user.level = state.level
        user.xp = state.xp
        user.xp_to_next = state.xp_to_next
        user.current_streak = new_streak
        user.longest_streak = new_longest
        user.last_activity_date = today
        user.total_tasks_completed = total_completed
        # New list so the JSON column is flagged dirty
        user.achievements = unlocked_ids + evaluation.ids
        self.user_repo.save(self.db, user)

        daily = self.daily_repo.upsert(
            self.db, user_id, today,
            tasks_completed=1,
            xp_earned=earned_xp,
            on_time_completions=1 if was_on_time else 0
        )

        self.records_service.ratchet(user_id, RECORD_MOST_TASKS_DAY, daily.tasks_completed)
        self.records_service.ratchet(user_id, RECORD_LONGEST_STREAK, new_streak)

        leveled_up = state.level > previous_level
        logger.info(
            f"User {user_id} completed task {task_id}: +{earned_xp} XP "
            f"(+{evaluation.bonus_xp} bonus), level {state.level}, streak {new_streak}"
        )
        if leveled_up:
            logger.info(f"User {user_id} leveled up from {previous_level} to {state.level}")
        for achievement in evaluation.unlocked:
            logger.info(f"User {user_id} unlocked achievement {achievement.id}")

        return task, CompletionResult(
            earned_xp=earned_xp,
            achievement_xp=evaluation.bonus_xp,
            previous_level=previous_level,
            level=state.level,
            xp=state.xp,
            xp_to_next=state.xp_to_next,
            leveled_up=leveled_up,
            streak=new_streak,
            longest_streak=new_longest,
            total_tasks_completed=total_completed,
            was_on_time=was_on_time,
            new_achievements=[
                AchievementUnlocked(
                    id=a.id, name=a.name, description=a.description, bonus_xp=a.bonus_xp
                )
                for a in evaluation.unlocked
            ],
        )

    def _snapshot(
        self,
        user: User,
        task: Task,
        state: LevelState,
        total_completed: int,
        streak: int,
        longest: int,
        was_on_time: bool
    ) -> StatsSnapshot:
        """Post-completion stats; historical flags include the task being completed"""
        on_time_before = self.task_repo.count_on_time(self.db, user.id, exclude_task_id=task.id)

        has_epic = normalize_difficulty(task.difficulty) == DIFFICULTY_EPIC or \
            self.task_repo.has_completed_with(
                self.db, user.id, exclude_task_id=task.id, difficulty=DIFFICULTY_EPIC
            )
        has_major = normalize_tier(task.tier) == TIER_MAJOR or \
            self.task_repo.has_completed_with(
                self.db, user.id, exclude_task_id=task.id, tier=TIER_MAJOR
            )

        return StatsSnapshot(
            total_tasks_completed=total_completed,
            current_streak=streak,
            longest_streak=longest,
            level=state.level,
            on_time_task_count=on_time_before + (1 if was_on_time else 0),
            has_completed_epic=has_epic,
            has_completed_major=has_major,
        )

    # ===== REVERSE =====

    def _uncomplete(self, user_id: int, task_id: int) -> Tuple[Task, UncompletionResult]:
        user, task = self._load(user_id, task_id)
        if not task.is_completed:
            raise NotCompletedError(task_id)

        xp_to_revoke = max(task.xp_earned or 0, 0)
        previous_level = user.level

        if xp_to_revoke > 0:
            state = apply_xp(user.level, user.xp, user.xp_to_next, -xp_to_revoke)

            # Aggregates belong to the day the task was completed, not today
            if task.completed_at is not None:
                completion_day = self.date_service.calendar_day(task.completed_at)
            else:
                completion_day = self.date_service.today()

            self.daily_repo.decrement(
                self.db, user_id, completion_day,
                tasks_completed=1,
                xp_earned=xp_to_revoke,
                on_time_completions=1 if task.was_on_time else 0
            )
        else:
            # Nothing was awarded: only the completion counter moves
            state = LevelState(user.level, user.xp, xp_required(user.level))

        task.is_completed = False
        task.completed_at = None
        task.was_on_time = None
        task.xp_earned = 0
        self.task_repo.save(self.db, task)

        user.level = state.level
        user.xp = state.xp
        user.xp_to_next = state.xp_to_next
        user.total_tasks_completed = max(0, (user.total_tasks_completed or 0) - 1)
        self.user_repo.save(self.db, user)

        level_decreased = state.level < previous_level
        logger.info(
            f"User {user_id} uncompleted task {task_id}: -{xp_to_revoke} XP, level {state.level}"
        )
        if level_decreased:
            logger.info(f"User {user_id} dropped from level {previous_level} to {state.level}")

        return task, UncompletionResult(
            revoked_xp=xp_to_revoke,
            previous_level=previous_level,
            level=state.level,
            xp=state.xp,
            xp_to_next=state.xp_to_next,
            level_decreased=level_decreased,
            total_tasks_completed=user.total_tasks_completed,
        )
