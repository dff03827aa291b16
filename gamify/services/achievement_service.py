"""
Achievement catalog and evaluator.

The catalog is an immutable, ordered value. CompletionService receives one
at construction time; nothing reads a global catalog behind its back.

evaluate() runs exactly once per completion, against the level reached
before any achievement bonus is applied. Bonus XP is returned, not applied,
and may push the user over further level thresholds without re-running the
evaluator. Unlocked achievements are never revoked.
"""
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Tuple

from gamify.exceptions import ValidationException


@dataclass(frozen=True)
class StatsSnapshot:
    """User stats as they stand after the current completion (before bonus XP)"""
    total_tasks_completed: int
    current_streak: int
    longest_streak: int
    level: int
    on_time_task_count: int
    has_completed_epic: bool = False
    has_completed_major: bool = False


@dataclass(frozen=True)
class AchievementDefinition:
    id: str
    name: str
    description: str
    bonus_xp: int
    predicate: Callable[[StatsSnapshot], bool] = field(compare=False, repr=False)


@dataclass(frozen=True)
class UnlockedAchievement:
    id: str
    name: str
    description: str
    bonus_xp: int


@dataclass(frozen=True)
class EvaluationResult:
    unlocked: Tuple[UnlockedAchievement, ...]
    bonus_xp: int

    @property
    def ids(self) -> List[str]:
        return [achievement.id for achievement in self.unlocked]


@dataclass(frozen=True)
class AchievementCatalog:
    version: str
    definitions: Tuple[AchievementDefinition, ...]

    def __post_init__(self):
        seen = set()
        for definition in self.definitions:
            if definition.id in seen:
                raise ValidationException("catalog", f"duplicate achievement id {definition.id!r}")
            if definition.bonus_xp < 0:
                raise ValidationException("catalog", f"negative bonus for {definition.id!r}")
            seen.add(definition.id)

    def __iter__(self):
        return iter(self.definitions)

    def __len__(self):
        return len(self.definitions)

    def keys(self) -> List[str]:
        return [definition.id for definition in self.definitions]

    def get(self, achievement_id: str) -> Optional[AchievementDefinition]:
        for definition in self.definitions:
            if definition.id == achievement_id:
                return definition
        return None


def _at_least(stat: str, threshold: int) -> Callable[[StatsSnapshot], bool]:
    return lambda snapshot: getattr(snapshot, stat) >= threshold


def _flag(stat: str) -> Callable[[StatsSnapshot], bool]:
    return lambda snapshot: bool(getattr(snapshot, stat))


_DEFAULT_DEFINITIONS = (
    ("first-task", "First Step", "Complete your first task", 25, _at_least("total_tasks_completed", 1)),
    ("task-10", "Getting Going", "Complete 10 tasks", 50, _at_least("total_tasks_completed", 10)),
    ("task-50", "Half Century", "Complete 50 tasks", 100, _at_least("total_tasks_completed", 50)),
    ("task-100", "Centurion", "Complete 100 tasks", 200, _at_least("total_tasks_completed", 100)),
    ("task-500", "Legendary", "Complete 500 tasks", 500, _at_least("total_tasks_completed", 500)),
    ("streak-3", "Warming Up", "3-day streak", 50, _at_least("current_streak", 3)),
    ("streak-7", "Week Warrior", "7-day streak", 100, _at_least("current_streak", 7)),
    ("streak-14", "Fortnight Fighter", "14-day streak", 200, _at_least("current_streak", 14)),
    ("streak-30", "Monthly Master", "30-day streak", 500, _at_least("current_streak", 30)),
    ("streak-100", "Streak Legend", "100-day streak", 2000, _at_least("current_streak", 100)),
    ("on-time-10", "Punctual", "10 tasks completed on time", 75, _at_least("on_time_task_count", 10)),
    ("on-time-50", "Reliable", "50 tasks completed on time", 200, _at_least("on_time_task_count", 50)),
    ("level-5", "Rising Star", "Reach level 5", 150, _at_least("level", 5)),
    ("level-10", "Veteran", "Reach level 10", 300, _at_least("level", 10)),
    ("level-25", "Master", "Reach level 25", 750, _at_least("level", 25)),
    ("level-50", "Legend", "Reach level 50", 1000, _at_least("level", 50)),
    ("epic-task", "Epic Victory", "Complete an Epic difficulty task", 100, _flag("has_completed_epic")),
    ("major-task", "Major Achievement", "Complete a Major tier task", 100, _flag("has_completed_major")),
)


def default_catalog() -> AchievementCatalog:
    """The built-in achievement catalog"""
    return AchievementCatalog(
        version="1",
        definitions=tuple(
            AchievementDefinition(id_, name, description, bonus, predicate)
            for id_, name, description, bonus, predicate in _DEFAULT_DEFINITIONS
        ),
    )


def evaluate(
    catalog: AchievementCatalog,
    unlocked: Iterable[str],
    snapshot: StatsSnapshot
) -> EvaluationResult:
    """
    Find achievements newly satisfied by `snapshot`.

    Args:
        catalog: Achievement definitions, evaluated in catalog order
        unlocked: Ids the user already holds
        snapshot: Post-completion stats

    Returns:
        EvaluationResult with the newly unlocked achievements and their total bonus XP
    """
    already = set(unlocked)
    newly = []
    bonus = 0

    for definition in catalog:
        if definition.id in already:
            continue
        if definition.predicate(snapshot):
            newly.append(UnlockedAchievement(
                id=definition.id,
                name=definition.name,
                description=definition.description,
                bonus_xp=definition.bonus_xp,
            ))
            bonus += definition.bonus_xp

    return EvaluationResult(unlocked=tuple(newly), bonus_xp=bonus)


def list_with_status(catalog: AchievementCatalog, unlocked: Iterable[str]) -> List[dict]:
    """Every catalog entry with its unlocked flag, in catalog order"""
    already = set(unlocked)
    return [
        {
            "id": definition.id,
            "name": definition.name,
            "description": definition.description,
            "bonus_xp": definition.bonus_xp,
            "unlocked": definition.id in already,
        }
        for definition in catalog
    ]
