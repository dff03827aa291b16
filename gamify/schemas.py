from pydantic import BaseModel, Field
from datetime import datetime, date
from typing import List, Optional


# User schemas

class UserCreate(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)


class UserResponse(BaseModel):
    id: int
    username: str
    level: int
    xp: int
    xp_to_next: int
    total_tasks_completed: int
    current_streak: int
    longest_streak: int
    achievements: List[str] = []
    last_activity_date: Optional[date] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UserRegistered(UserResponse):
    api_key: str


# Task schemas

class TaskBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    priority: Optional[str] = None  # High, Medium, Low
    tier: str = Field(default="quick")  # major, standard, quick (tier1-3 accepted)
    difficulty: str = Field(default="medium")  # easy, medium, hard, epic
    due_date: Optional[datetime] = None


class TaskCreate(TaskBase):
    pass


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    priority: Optional[str] = None
    tier: Optional[str] = None
    difficulty: Optional[str] = None
    due_date: Optional[datetime] = None
    order_index: Optional[int] = Field(None, ge=0)


class TaskResponse(TaskBase):
    id: int
    order_index: int = 0
    created_at: datetime
    is_completed: bool
    completed_at: Optional[datetime] = None
    was_on_time: Optional[bool] = None
    xp_earned: int = 0

    # Populated for incomplete tasks
    xp_preview: Optional[int] = None

    class Config:
        from_attributes = True


# Gamification results

class AchievementUnlocked(BaseModel):
    id: str
    name: str
    description: str
    bonus_xp: int


class CompletionResult(BaseModel):
    earned_xp: int
    achievement_xp: int = 0
    previous_level: int
    level: int
    xp: int
    xp_to_next: int
    leveled_up: bool
    streak: int
    longest_streak: int
    total_tasks_completed: int
    was_on_time: bool
    new_achievements: List[AchievementUnlocked] = []


class UncompletionResult(BaseModel):
    revoked_xp: int
    previous_level: int
    level: int
    xp: int
    xp_to_next: int
    level_decreased: bool
    total_tasks_completed: int


class TaskCompletionResponse(BaseModel):
    task: TaskResponse
    gamification: CompletionResult


class TaskUncompletionResponse(BaseModel):
    task: TaskResponse
    gamification: UncompletionResult


# Stats schemas

class AchievementStatus(BaseModel):
    id: str
    name: str
    description: str
    bonus_xp: int
    unlocked: bool


class AchievementsResponse(BaseModel):
    achievements: List[AchievementStatus]
    unlocked: int
    total: int
    progress: int


class DailyStatResponse(BaseModel):
    date: date
    tasks_completed: int
    xp_earned: int
    on_time_completions: int = 0

    class Config:
        from_attributes = True


class StreakResponse(BaseModel):
    current_streak: int
    longest_streak: int
    streak_at_risk: bool
    recent_activity: List[DailyStatResponse]


class RecordValue(BaseModel):
    value: int
    achieved_at: Optional[datetime] = None


class RecordsResponse(BaseModel):
    most_tasks_in_day: RecordValue
    longest_streak: RecordValue


class LevelRow(BaseModel):
    level: int
    xp_required: int
    total_xp_to_reach: int


class LevelsResponse(BaseModel):
    current_level: int
    current_xp: int
    xp_to_next: int
    rank: str
    levels: List[LevelRow]


class ProgressSummary(BaseModel):
    level: int
    rank: str
    xp: int
    xp_to_next: int
    xp_progress: int
    total_tasks_completed: int
    current_streak: int
    longest_streak: int
    achievements_count: int


class TaskCounts(BaseModel):
    completed: int
    pending: int
    on_time: int
    overdue: int


class WindowTotals(BaseModel):
    tasks_completed: int
    xp_earned: int
    on_time_completions: int = 0


class StatsSummaryResponse(BaseModel):
    user: ProgressSummary
    tasks: TaskCounts
    today: WindowTotals
    this_week: WindowTotals
