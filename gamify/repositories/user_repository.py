"""
User repository - Data access layer for User model.
"""
from typing import Optional
from sqlalchemy.orm import Session

from gamify.models import User


class UserRepository:
    """Repository for User data access"""

    @staticmethod
    def get_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_for_update(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID, locking the row until the transaction ends"""
        return db.query(User).filter(User.id == user_id).with_for_update().populate_existing().first()

    @staticmethod
    def get_by_api_key(db: Session, api_key: str) -> Optional[User]:
        """Get user by API key"""
        return db.query(User).filter(User.api_key == api_key).first()

    @staticmethod
    def get_by_username(db: Session, username: str) -> Optional[User]:
        """Get user by username"""
        return db.query(User).filter(User.username == username).first()

    @staticmethod
    def create(db: Session, user: User) -> User:
        """Create new user"""
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def save(db: Session, user: User) -> User:
        """Stage changes to a user inside the current transaction"""
        db.add(user)
        db.flush()
        return user
