"""Database package.

Backs the sqlalchemy storage backend: one row per stored collection plus
the activity log written by ``DBLogHandler``.
"""

from .base import Base
from .session import create_engine_and_sessionmaker

__all__ = ["Base", "create_engine_and_sessionmaker"]
