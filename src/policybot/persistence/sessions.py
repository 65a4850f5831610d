"""Chat session persistence: the control panel message recorded per chat."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

import structlog

from .db import DatabaseManager

logger = structlog.get_logger(__name__)

# Fields callers may write through update_storage()
_SESSION_FIELDS = ("last_message_id",)


@dataclass
class ChatSession:
    chat_id: int
    last_message_id: Optional[int] = None


class SessionStore:
    """Key-value store of ChatSession records keyed by chat id."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    async def get_session(self, chat_id: int) -> ChatSession:
        """Load one chat's session; a chat never seen has no last message."""
        db = await self.db_manager.get_connection()
        cursor = await db.execute(
            "SELECT last_message_id FROM chat_sessions WHERE chat_id = ?",
            (chat_id,),
        )
        row = await cursor.fetchone()
        await cursor.close()

        if row is None:
            return ChatSession(chat_id=chat_id)
        return ChatSession(chat_id=chat_id, last_message_id=row[0])

    async def load_storage(self) -> dict[str, Any]:
        """Load every session as {"users": {chat_id: {"last_message_id": ...}}}."""
        db = await self.db_manager.get_connection()
        cursor = await db.execute("SELECT chat_id, last_message_id FROM chat_sessions ORDER BY chat_id")
        rows = await cursor.fetchall()
        await cursor.close()

        return {"users": {row[0]: {"last_message_id": row[1]} for row in rows}}

    async def update_storage(self, chat_id: int, fields: dict[str, Any]) -> None:
        """
        Merge fields into a chat's session, creating it if needed.

        Raises:
            ValueError: If fields contains an unknown key
        """
        unknown = set(fields) - set(_SESSION_FIELDS)
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")
        if not fields:
            return

        columns = [name for name in _SESSION_FIELDS if name in fields]
        values = [fields[name] for name in columns]
        assignments = ", ".join(f"{name} = excluded.{name}" for name in columns)

        db = await self.db_manager.get_connection()
        await db.execute(
            f"""
            INSERT INTO chat_sessions (chat_id, {", ".join(columns)}, updated_at)
            VALUES (?, {", ".join("?" for _ in columns)}, ?)
            ON CONFLICT(chat_id) DO UPDATE SET {assignments}, updated_at = excluded.updated_at
            """,
            (chat_id, *values, int(datetime.now().timestamp())),
        )
        await db.commit()

        logger.debug("chat_session_updated", chat_id=chat_id, fields=columns)
