"""
Custom exceptions for the gamify application.
Every error the completion transaction can raise is recoverable at the caller.
"""


class GamifyException(Exception):
    """Base exception for gamify application"""
    pass


class ActorNotFoundError(GamifyException):
    """Raised when a user (gamification actor) is not found"""
    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"User with ID {user_id} not found")


class TaskNotFoundError(GamifyException):
    """Raised when a task is not found or belongs to another user"""
    def __init__(self, task_id: int):
        self.task_id = task_id
        super().__init__(f"Task with ID {task_id} not found")


class AlreadyCompletedError(GamifyException):
    """Raised when completing a task that is already completed"""
    def __init__(self, task_id: int):
        self.task_id = task_id
        super().__init__(f"Task {task_id} is already completed")


class NotCompletedError(GamifyException):
    """Raised when uncompleting a task that is not completed"""
    def __init__(self, task_id: int):
        self.task_id = task_id
        super().__init__(f"Task {task_id} is not completed")


class ValidationException(GamifyException):
    """Raised when data validation fails"""
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"Validation error for {field}: {message}")


class DatabaseException(GamifyException):
    """Raised when database operations fail"""
    def __init__(self, operation: str, details: str):
        self.operation = operation
        self.details = details
        super().__init__(f"Database {operation} failed: {details}")


class TransactionError(GamifyException):
    """Raised when a completion transaction fails for a non-domain reason"""
    def __init__(self, operation: str, details: str):
        self.operation = operation
        self.details = details
        super().__init__(f"{operation} failed: {details}")
