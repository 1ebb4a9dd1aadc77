"""Database configuration, models, and session management."""

from cityfix.database.config import Base, Database
from cityfix.database import models

__all__ = ["Base", "Database", "models"]
