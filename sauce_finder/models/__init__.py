"""SQLAlchemy ORM models."""

from sauce_finder.models.base import Base
from sauce_finder.models.search_history import SearchHistory

__all__ = ["Base", "SearchHistory"]
