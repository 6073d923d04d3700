"""Core services exports."""

# Database Service
from .database.db_manage import DbManageService
from .database.db_session import DbSessionService
from .database.deadline import Deadline

__all__ = [
    # Database Service
    "DbManageService",
    "DbSessionService",
    "Deadline",
]
