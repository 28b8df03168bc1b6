"""Database layer for the case process engine: SQLAlchemy 2.0 async."""

from __future__ import annotations

from karin.db.base import Base
from karin.db.engine import DatabaseManager

__all__ = ["Base", "DatabaseManager"]
