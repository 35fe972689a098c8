from .config import Settings, load_settings
from .errors import (
    AppError,
    ValidationError,
    AuthorizationError,
    NotFoundError,
    ConflictError,
    DatabaseError,
    DatabaseConnectionError,
    PoolTimeoutError,
    PoolClosedError,
)
from .models import User, Plan, Payment

__all__ = [
    "Settings",
    "load_settings",
    "AppError",
    "ValidationError",
    "AuthorizationError",
    "NotFoundError",
    "ConflictError",
    "DatabaseError",
    "DatabaseConnectionError",
    "PoolTimeoutError",
    "PoolClosedError",
    "User",
    "Plan",
    "Payment",
]
