from fastapi import FastAPI, Depends, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import List, Optional
import logging
import os
from pathlib import Path

from gamify.database import engine, get_db, Base
from gamify import models  # Import all models to register them with Base
from gamify.schemas import (
    UserCreate, UserResponse, UserRegistered,
    TaskCreate, TaskUpdate, TaskResponse,
    TaskCompletionResponse, TaskUncompletionResponse,
    StatsSummaryResponse, AchievementsResponse, StreakResponse,
    RecordsResponse, DailyStatResponse, LevelsResponse
)
from gamify.auth import get_current_user
from gamify.exceptions import (
    GamifyException, ActorNotFoundError, TaskNotFoundError,
    AlreadyCompletedError, NotCompletedError, ValidationException
)
from gamify.services.user_service import UserService
from gamify.services.task_service import TaskService
from gamify.services.completion_service import CompletionService
from gamify.services.stats_service import StatsService
from gamify.constants import (
    DEFAULT_LOG_DIRECTORY_PROD, DEFAULT_LOG_DIRECTORY_DEV, CORS_ALLOWED_ORIGINS
)

LOG_DIR = os.getenv("GAMIFY_LOG_DIR", DEFAULT_LOG_DIRECTORY_PROD)
LOG_FILE = os.getenv("GAMIFY_LOG_FILE", "app.log")

# Create log directory if it doesn't exist (for development)
try:
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE
except PermissionError:
    # Fallback to local directory if no permissions for /var/log
    LOG_DIR = DEFAULT_LOG_DIRECTORY_DEV
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(log_path),
        logging.StreamHandler()  # Also log to console
    ]
)

logger = logging.getLogger("gamify.api")

# Create database tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Gamify API",
    description="Task tracker with XP, levels, streaks and achievements",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ===== ERROR HANDLING =====

@app.exception_handler(GamifyException)
async def gamify_exception_handler(request: Request, exc: GamifyException):
    """Map domain errors to HTTP responses; unexpected ones stay generic"""
    if isinstance(exc, (ActorNotFoundError, TaskNotFoundError)):
        code, detail = status.HTTP_404_NOT_FOUND, str(exc)
    elif isinstance(exc, (AlreadyCompletedError, NotCompletedError)):
        code, detail = status.HTTP_400_BAD_REQUEST, str(exc)
    elif isinstance(exc, ValidationException):
        code, detail = status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc)
    else:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        code, detail = status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to update task"
    return JSONResponse(status_code=code, content={"detail": detail})


@app.on_event("startup")
async def startup_event():
    logger.info(f"Gamify API started. Logging to: {log_path}")


# Health check (no auth required)
@app.get("/")
async def root():
    return {"message": "Gamify API", "status": "active"}


# ===== USER ENDPOINTS =====

@app.post("/api/users", response_model=UserRegistered, status_code=status.HTTP_201_CREATED)
def register_user(user: UserCreate, db: Session = Depends(get_db)):
    """Register a new user and return their API key"""
    return UserService(db).register(user.username)


@app.get("/api/users/me", response_model=UserResponse)
def get_me(user: models.User = Depends(get_current_user)):
    """Get the calling user's profile"""
    return user


# ===== TASK ENDPOINTS =====

@app.get("/api/tasks", response_model=List[TaskResponse])
def get_tasks(
    is_completed: Optional[bool] = None,
    skip: int = 0,
    limit: int = 100,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get all tasks with optional filtering"""
    service = TaskService(db)
    return [service.to_response(t, user) for t in service.get_tasks(user, is_completed, skip, limit)]


@app.get("/api/tasks/{task_id}", response_model=TaskResponse)
def get_task(task_id: int, user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Get a specific task"""
    service = TaskService(db)
    return service.to_response(service.get_task(user, task_id), user)


@app.post("/api/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(task: TaskCreate, user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Create a new task"""
    service = TaskService(db)
    return service.to_response(service.create_task(user, task), user)


@app.put("/api/tasks/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: int,
    task_update: TaskUpdate,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update a task"""
    service = TaskService(db)
    return service.to_response(service.update_task(user, task_id, task_update), user)


@app.delete("/api/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(task_id: int, user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Delete a task"""
    TaskService(db).delete_task(user, task_id)


@app.post("/api/tasks/{task_id}/complete", response_model=TaskCompletionResponse)
def complete_task(task_id: int, user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Complete a task and award XP"""
    task, result = CompletionService(db).complete_task(user.id, task_id)
    db.refresh(user)
    return {"task": TaskService(db).to_response(task, user), "gamification": result}


@app.post("/api/tasks/{task_id}/uncomplete", response_model=TaskUncompletionResponse)
def uncomplete_task(task_id: int, user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Undo a completion and revoke its XP"""
    task, result = CompletionService(db).uncomplete_task(user.id, task_id)
    db.refresh(user)
    return {"task": TaskService(db).to_response(task, user), "gamification": result}


# ===== STATS ENDPOINTS =====

@app.get("/api/stats/summary", response_model=StatsSummaryResponse)
def get_stats_summary(user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Get progress and task statistics"""
    return StatsService(db).get_summary(user)


@app.get("/api/stats/achievements", response_model=AchievementsResponse)
def get_achievements(user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Get all achievements with unlock status"""
    return StatsService(db).get_achievements(user)


@app.get("/api/stats/streaks", response_model=StreakResponse)
def get_streaks(user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Get streak info and recent activity"""
    return StatsService(db).get_streaks(user)


@app.get("/api/stats/records", response_model=RecordsResponse)
def get_records(user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Get personal records"""
    return StatsService(db).get_records(user)


@app.get("/api/stats/daily", response_model=List[DailyStatResponse])
def get_daily_stats(
    days: int = 30,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get daily breakdown for the last N days"""
    return StatsService(db).get_daily(user, days)


@app.get("/api/stats/levels", response_model=LevelsResponse)
def get_levels(user: models.User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Get the level ladder"""
    return StatsService(db).get_levels(user)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("gamify.main:app", host="0.0.0.0", port=8000, reload=False)
