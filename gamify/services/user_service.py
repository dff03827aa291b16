"""
User service - registration and profile lookup.
"""
import logging
import secrets
from typing import Optional
from sqlalchemy.orm import Session

from gamify.exceptions import ActorNotFoundError, ValidationException
from gamify.models import User
from gamify.repositories.user_repository import UserRepository
from gamify.services.level_service import initial_state

logger = logging.getLogger("gamify.users")


class UserService:
    """Service for user accounts"""

    def __init__(self, db: Session):
        self.db = db
        self.user_repo = UserRepository()

    def register(self, username: str) -> User:
        """
        Create a user at level 1 with no progress.

        Raises:
            ValidationException: if the username is taken
        """
        username = username.strip()
        if not username:
            raise ValidationException("username", "must not be blank")
        if self.user_repo.get_by_username(self.db, username):
            raise ValidationException("username", f"{username!r} is already taken")

        state = initial_state()
        user = User(
            username=username,
            api_key=secrets.token_urlsafe(32),
            level=state.level,
            xp=state.xp,
            xp_to_next=state.xp_to_next,
            total_tasks_completed=0,
            current_streak=0,
            longest_streak=0,
            achievements=[],
            last_activity_date=None,
        )
        user = self.user_repo.create(self.db, user)
        logger.info(f"Registered user {user.id} ({username})")
        return user

    def get_user(self, user_id: int) -> User:
        """Get user or raise ActorNotFoundError"""
        user = self.user_repo.get_by_id(self.db, user_id)
        if not user:
            raise ActorNotFoundError(user_id)
        return user

    def authenticate(self, api_key: Optional[str]) -> Optional[User]:
        """Resolve an API key to its user"""
        if not api_key:
            return None
        return self.user_repo.get_by_api_key(self.db, api_key)
