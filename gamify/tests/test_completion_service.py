"""
Tests for CompletionService.

Tests cover:
1. Forward completion: XP, streak, level, achievements, aggregates, records
2. Reverse completion: XP revocation with level drops, aggregates on the completion day
3. State errors and idempotence
4. Atomicity on failure
5. Serialization of concurrent completions for one user
"""
import gc
import threading
import pytest
from datetime import timedelta
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from gamify.database import Base
from gamify.exceptions import (
    ActorNotFoundError, TaskNotFoundError, AlreadyCompletedError,
    NotCompletedError, DatabaseException, TransactionError
)
from gamify.models import DailyStat, Task, User
from gamify.repositories.stats_repository import DailyStatRepository, PersonalRecordRepository
from gamify.services.completion_service import CompletionService, UserLocks
from gamify.services.date_service import DateService
from gamify.services.user_service import UserService
from gamify.services.xp_service import compute_xp


def reload_user(db_session, user_id: int) -> User:
    db_session.expire_all()
    return db_session.query(User).filter(User.id == user_id).one()


class TestCompleteTask:
    """Tests for complete_task"""

    def test_first_completion(self, db_session, user, make_task, completion_service, today):
        """First task: streak 1, 16 XP, first-task bonus of 25"""
        task = make_task(tier="quick", difficulty="medium")

        task, result = completion_service.complete_task(user.id, task.id)

        assert result.earned_xp == 16  # 10 × 1.5 × 1.1
        assert result.achievement_xp == 25
        assert [a.id for a in result.new_achievements] == ["first-task"]
        assert (result.level, result.xp, result.xp_to_next) == (1, 41, 100)
        assert result.leveled_up is False
        assert result.streak == 1
        assert result.total_tasks_completed == 1

        assert task.is_completed is True
        assert task.completed_at is not None
        assert task.was_on_time is True
        assert task.xp_earned == 16

        user = reload_user(db_session, user.id)
        assert user.level == 1
        assert user.xp == 41
        assert user.current_streak == 1
        assert user.longest_streak == 1
        assert user.last_activity_date == today
        assert user.achievements == ["first-task"]

    def test_achievement_bonus_crosses_level(self, db_session, user, make_task,
                                             completion_service, set_user_progress):
        """80 + 16 stays in level 1, the 25 bonus pushes it over"""
        set_user_progress(user, xp=80)
        task = make_task()

        _, result = completion_service.complete_task(user.id, task.id)

        assert result.leveled_up is True
        assert result.previous_level == 1
        assert (result.level, result.xp, result.xp_to_next) == (2, 21, 150)

    def test_xp_uses_updated_streak(self, db_session, user, make_task, completion_service,
                                    set_user_progress, yesterday):
        """Active yesterday with streak 5: today's completion is scored at streak 6"""
        set_user_progress(user, current_streak=5, longest_streak=5,
                          last_activity_date=yesterday, achievements=["first-task"],
                          total_tasks_completed=3)
        task = make_task(tier="standard", difficulty="easy")

        _, result = completion_service.complete_task(user.id, task.id)

        assert result.streak == 6
        assert result.longest_streak == 6
        assert result.earned_xp == compute_xp("standard", "easy", None, None, 6)

    def test_streak_reset_after_gap(self, db_session, user, make_task, completion_service,
                                    set_user_progress, today):
        set_user_progress(user, current_streak=5, longest_streak=5,
                          last_activity_date=today - timedelta(days=3),
                          achievements=["first-task"], total_tasks_completed=3)
        task = make_task()

        _, result = completion_service.complete_task(user.id, task.id)

        assert result.streak == 1
        assert result.longest_streak == 5

    def test_on_time_bonus(self, db_session, user, make_task, completion_service, clock):
        task = make_task(tier="major", difficulty="epic", due_date=clock.current + timedelta(days=1))

        task, result = completion_service.complete_task(user.id, task.id)

        assert result.was_on_time is True
        assert result.earned_xp == compute_xp("major", "epic", task.due_date, True, 1)

    def test_late_completion(self, db_session, user, make_task, completion_service, clock, today):
        task = make_task(due_date=clock.current - timedelta(hours=1))

        task, result = completion_service.complete_task(user.id, task.id)

        assert result.was_on_time is False
        assert task.was_on_time is False
        assert result.earned_xp == 16
        stat = DailyStatRepository.get_by_date(db_session, user.id, today)
        assert stat.on_time_completions == 0

    def test_daily_aggregate_and_records(self, db_session, user, make_task, completion_service, today):
        first = make_task()
        second = make_task()

        _, r1 = completion_service.complete_task(user.id, first.id)
        _, r2 = completion_service.complete_task(user.id, second.id)

        stat = DailyStatRepository.get_by_date(db_session, user.id, today)
        assert stat.tasks_completed == 2
        assert stat.xp_earned == r1.earned_xp + r2.earned_xp
        assert stat.on_time_completions == 2

        most = PersonalRecordRepository.get(db_session, user.id, "most-tasks-day")
        streak = PersonalRecordRepository.get(db_session, user.id, "longest-streak")
        assert most.value == 2
        assert streak.value == 1

    def test_on_time_achievement_counts_history(self, db_session, user, make_task,
                                                completion_service, set_user_progress, clock):
        """Nine earlier on-time completions plus this one unlock task-10 and on-time-10"""
        for _ in range(9):
            make_task(is_completed=True, was_on_time=True, xp_earned=10,
                      completed_at=clock.current - timedelta(days=1))
        set_user_progress(user, total_tasks_completed=9, achievements=["first-task"])
        task = make_task(due_date=clock.current + timedelta(days=2))

        _, result = completion_service.complete_task(user.id, task.id)

        assert [a.id for a in result.new_achievements] == ["task-10", "on-time-10"]
        assert result.achievement_xp == 50 + 75

    def test_epic_achievement_from_earlier_task(self, db_session, user, make_task,
                                                completion_service, set_user_progress, clock):
        make_task(difficulty="epic", is_completed=True, was_on_time=True, xp_earned=50,
                  completed_at=clock.current - timedelta(days=4))
        set_user_progress(user, total_tasks_completed=1, achievements=["first-task"])
        task = make_task(difficulty="easy")

        _, result = completion_service.complete_task(user.id, task.id)

        assert [a.id for a in result.new_achievements] == ["epic-task"]

    def test_major_achievement_from_current_task(self, db_session, user, make_task,
                                                 completion_service, set_user_progress):
        set_user_progress(user, total_tasks_completed=1, achievements=["first-task"])
        task = make_task(tier="major", difficulty="easy")

        _, result = completion_service.complete_task(user.id, task.id)

        assert [a.id for a in result.new_achievements] == ["major-task"]

    def test_already_completed(self, db_session, user, make_task, completion_service):
        task = make_task()
        completion_service.complete_task(user.id, task.id)
        before = reload_user(db_session, user.id)
        xp_before, total_before = before.xp, before.total_tasks_completed

        with pytest.raises(AlreadyCompletedError):
            completion_service.complete_task(user.id, task.id)

        after = reload_user(db_session, user.id)
        assert after.xp == xp_before
        assert after.total_tasks_completed == total_before

    def test_task_of_another_user(self, db_session, user, make_task, completion_service):
        other = UserService(db_session).register("bob")
        task = make_task(owner=other)

        with pytest.raises(TaskNotFoundError):
            completion_service.complete_task(user.id, task.id)

    def test_missing_task(self, user, completion_service):
        with pytest.raises(TaskNotFoundError):
            completion_service.complete_task(user.id, 12345)

    def test_missing_user(self, make_task, completion_service):
        task = make_task()
        with pytest.raises(ActorNotFoundError):
            completion_service.complete_task(9999, task.id)


class TestUncompleteTask:
    """Tests for uncomplete_task"""

    def test_round_trip_restores_progress(self, db_session, user, make_task, completion_service,
                                          set_user_progress, yesterday):
        """Without a new achievement, complete + uncomplete is a no-op on progress"""
        set_user_progress(user, level=2, xp=140, xp_to_next=150, total_tasks_completed=5,
                          current_streak=1, longest_streak=1, last_activity_date=yesterday,
                          achievements=["first-task"])
        task = make_task()

        _, done = completion_service.complete_task(user.id, task.id)
        assert done.new_achievements == []
        assert done.leveled_up is True

        task, undone = completion_service.uncomplete_task(user.id, task.id)

        assert undone.revoked_xp == done.earned_xp
        assert undone.level_decreased is True
        assert (undone.level, undone.xp, undone.xp_to_next) == (2, 140, 150)
        assert undone.total_tasks_completed == 5

        assert task.is_completed is False
        assert task.completed_at is None
        assert task.was_on_time is None
        assert task.xp_earned == 0

    def test_drops_several_levels(self, db_session, user, make_task, completion_service,
                                  set_user_progress, clock):
        """Level 3 with 20 XP losing 200 lands at level 1 with 70"""
        set_user_progress(user, level=3, xp=20, xp_to_next=225, total_tasks_completed=4)
        task = make_task(is_completed=True, was_on_time=True, xp_earned=200,
                         completed_at=clock.current)

        _, result = completion_service.uncomplete_task(user.id, task.id)

        assert result.previous_level == 3
        assert (result.level, result.xp, result.xp_to_next) == (1, 70, 100)
        assert result.level_decreased is True
        user = reload_user(db_session, user.id)
        assert (user.level, user.xp, user.xp_to_next) == (1, 70, 100)
        assert user.total_tasks_completed == 3

    def test_zero_xp_only_decrements_counter(self, db_session, user, make_task, completion_service,
                                             set_user_progress, clock, today):
        set_user_progress(user, level=2, xp=10, xp_to_next=150, total_tasks_completed=3)
        DailyStatRepository.upsert(db_session, user.id, today, tasks_completed=1,
                                   xp_earned=5, on_time_completions=1)
        db_session.commit()
        task = make_task(is_completed=True, was_on_time=True, xp_earned=0,
                         completed_at=clock.current)

        task, result = completion_service.uncomplete_task(user.id, task.id)

        assert result.revoked_xp == 0
        assert (result.level, result.xp) == (2, 10)
        assert result.total_tasks_completed == 2
        assert task.is_completed is False

        db_session.expire_all()
        stat = DailyStatRepository.get_by_date(db_session, user.id, today)
        assert (stat.tasks_completed, stat.xp_earned, stat.on_time_completions) == (1, 5, 1)

    def test_counter_floors_at_zero(self, db_session, user, make_task, completion_service, clock):
        task = make_task(is_completed=True, was_on_time=True, xp_earned=10,
                         completed_at=clock.current)

        _, result = completion_service.uncomplete_task(user.id, task.id)

        assert result.total_tasks_completed == 0
        assert (result.level, result.xp) == (1, 0)

    def test_aggregate_of_completion_day(self, db_session, user, make_task, completion_service,
                                       clock, today):
        task = make_task()
        _, done = completion_service.complete_task(user.id, task.id)

        clock.advance(days=2)
        completion_service.uncomplete_task(user.id, task.id)

        stat = DailyStatRepository.get_by_date(db_session, user.id, today)
        assert stat.tasks_completed == 0
        assert stat.xp_earned == 0
        assert stat.on_time_completions == 0
        later = DailyStatRepository.get_by_date(db_session, user.id, today + timedelta(days=2))
        assert later is None

    def test_late_task_keeps_on_time_count(self, db_session, user, make_task,
                                           completion_service, clock, today):
        """Undoing a late completion leaves the day's on-time counter alone"""
        on_time = make_task()
        late = make_task(due_date=clock.current - timedelta(hours=2))
        completion_service.complete_task(user.id, on_time.id)
        _, done = completion_service.complete_task(user.id, late.id)
        assert done.was_on_time is False

        completion_service.uncomplete_task(user.id, late.id)

        db_session.expire_all()
        stat = DailyStatRepository.get_by_date(db_session, user.id, today)
        assert stat.tasks_completed == 1
        assert stat.on_time_completions == 1

    def test_streak_achievements_and_records_kept(self, db_session, user, make_task,
                                                  completion_service):
        task = make_task()
        completion_service.complete_task(user.id, task.id)

        completion_service.uncomplete_task(user.id, task.id)

        user = reload_user(db_session, user.id)
        assert user.achievements == ["first-task"]
        assert user.current_streak == 1
        assert user.longest_streak == 1
        # Bonus XP from the achievement stays
        assert (user.level, user.xp) == (1, 25)
        assert PersonalRecordRepository.get(db_session, user.id, "most-tasks-day").value == 1

    def test_not_completed(self, user, make_task, completion_service):
        task = make_task()
        with pytest.raises(NotCompletedError):
            completion_service.uncomplete_task(user.id, task.id)

    def test_second_uncomplete_fails_without_changes(self, db_session, user, make_task,
                                                     completion_service):
        task = make_task()
        completion_service.complete_task(user.id, task.id)
        completion_service.uncomplete_task(user.id, task.id)
        before = reload_user(db_session, user.id)
        snapshot = (before.level, before.xp, before.total_tasks_completed)

        with pytest.raises(NotCompletedError):
            completion_service.uncomplete_task(user.id, task.id)

        after = reload_user(db_session, user.id)
        assert (after.level, after.xp, after.total_tasks_completed) == snapshot

    def test_recomplete_after_uncomplete(self, db_session, user, make_task, completion_service):
        """A task can be toggled; each completion records its own XP"""
        task = make_task()
        completion_service.complete_task(user.id, task.id)
        completion_service.uncomplete_task(user.id, task.id)

        task, result = completion_service.complete_task(user.id, task.id)

        assert result.new_achievements == []
        assert task.xp_earned == result.earned_xp
        assert reload_user(db_session, user.id).total_tasks_completed == 1


class TestAtomicity:
    """A failure at any step leaves no partial writes"""

    def test_failure_rolls_back_everything(self, db_session, user, make_task,
                                           completion_service, monkeypatch, today):
        task = make_task()

        def explode(*args, **kwargs):
            raise RuntimeError("records store unavailable")

        monkeypatch.setattr(completion_service.records_service, "ratchet", explode)

        with pytest.raises(TransactionError):
            completion_service.complete_task(user.id, task.id)

        db_session.expire_all()
        stored_task = db_session.query(Task).filter(Task.id == task.id).one()
        assert stored_task.is_completed is False
        assert stored_task.xp_earned == 0
        user = reload_user(db_session, user.id)
        assert (user.level, user.xp, user.total_tasks_completed) == (1, 0, 0)
        assert user.achievements == []
        assert user.last_activity_date is None
        assert db_session.query(DailyStat).count() == 0

    def test_database_error_wrapped(self, db_session, user, make_task, completion_service,
                                    monkeypatch):
        task = make_task()

        def broken_upsert(*args, **kwargs):
            raise SQLAlchemyError("disk full")

        monkeypatch.setattr(completion_service.daily_repo, "upsert", broken_upsert)

        with pytest.raises(DatabaseException):
            completion_service.complete_task(user.id, task.id)

        db_session.expire_all()
        assert db_session.query(Task).filter(Task.id == task.id).one().is_completed is False


class TestUserLocks:
    """Tests for the per-user lock map"""

    def test_same_lock_while_referenced(self):
        locks = UserLocks()
        held = locks.for_user(1)
        assert locks.for_user(1) is held
        assert locks.for_user(2) is not held

    def test_unused_locks_are_released(self):
        locks = UserLocks()
        for user_id in range(100):
            with locks.for_user(user_id):
                pass
        gc.collect()
        assert len(locks._locks) == 0


class TestConcurrency:
    """Concurrent completions for one user are serialized"""

    def test_double_completion_awards_once(self, tmp_path):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'race.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        setup = Session()
        user = UserService(setup).register("racer")
        task = Task(user_id=user.id, title="Click me twice")
        setup.add(task)
        setup.commit()
        user_id, task_id = user.id, task.id
        setup.close()

        locks = UserLocks()
        barrier = threading.Barrier(2)
        outcomes = []

        def worker():
            session = Session()
            service = CompletionService(session, locks=locks, date_service=DateService())
            barrier.wait()
            try:
                service.complete_task(user_id, task_id)
                outcomes.append("ok")
            except AlreadyCompletedError:
                outcomes.append("already")
            finally:
                session.close()

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(outcomes) == ["already", "ok"]

        check = Session()
        stored = check.query(User).filter(User.id == user_id).one()
        assert stored.total_tasks_completed == 1
        assert stored.achievements == ["first-task"]
        check.close()
        engine.dispose()
