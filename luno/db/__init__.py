"""
Database module - models and persistence.

Uses SQLModel with SQLite by default (PostgreSQL via DATABASE_URL).
"""

from luno.db import database, models

__all__ = ["database", "models"]
