"""
Storage - SQLAlchemy models, engine and repositories.
"""

from .database import get_engine, get_session_factory, init_db, session_scope
from .repository import CognitiveProfile, EventStore, ProfileRepository, Recommendation

__all__ = [
    "get_engine",
    "get_session_factory",
    "init_db",
    "session_scope",
    "EventStore",
    "ProfileRepository",
    "CognitiveProfile",
    "Recommendation",
]
