# Persistence Layer - SQLite database and chat session storage

from .db import DatabaseManager
from .sessions import ChatSession, SessionStore

__all__ = [
    "DatabaseManager",
    "ChatSession",
    "SessionStore",
]
