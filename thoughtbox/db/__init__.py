"""Database helpers (engine/session export, ORM models)."""

from .session import Base, get_engine, get_session
from . import models

__all__ = ["Base", "get_engine", "get_session", "models"]
