"""Conversation memory for chat sessions.

Handles session creation, message persistence, and the recent history
sent along with each new chat turn.
"""
import json
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import structlog

from studymate import config
from studymate.db import Database
from studymate.errors import NotFound, ValidationError

logger = structlog.get_logger()

ROLES = ("user", "assistant")


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ChatSession:
    """A chat session owned by one user."""

    id: int
    owner: Optional[str]
    title: str
    created_at: str
    updated_at: str


@dataclass
class ChatMessage:
    """One stored chat turn."""

    id: int
    chat_id: int
    role: str
    content: str
    created_at: str
    sources: List[Dict[str, Any]] = field(default_factory=list)


class ConversationManager:
    """Manages chat sessions and conversation history."""

    def __init__(self, database: Database, context_window_size: int = None):
        """Initialize the conversation manager.

        Args:
            database: Database handle whose schema is already initialized
            context_window_size: Number of recent messages sent as history
        """
        self.database = database
        self.context_window_size = context_window_size or config.CHAT_HISTORY_MESSAGES

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> ChatSession:
        return ChatSession(
            id=row["id"],
            owner=row["owner"],
            title=row["title"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> ChatMessage:
        return ChatMessage(
            id=row["id"],
            chat_id=row["chat_id"],
            role=row["role"],
            content=row["content"],
            created_at=row["created_at"],
            sources=json.loads(row["sources_json"] or "[]"),
        )

    def create_session(
        self, title: Optional[str] = None, owner: Optional[str] = None
    ) -> ChatSession:
        """Create a new chat session.

        Args:
            title: Session title (defaults to "Chat <date>")
            owner: Owner of the session

        Returns:
            The created ChatSession
        """
        title = title or f"Chat {datetime.now().strftime('%Y-%m-%d')}"
        now = _utcnow()

        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                "INSERT INTO chats (owner, title, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (owner, title, now, now),
            )
            conn.commit()
            chat_id = cursor.lastrowid
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("conversation_session_create_failed", error=str(e))
            raise
        finally:
            conn.close()

        logger.info("conversation_session_created", chat_id=chat_id, owner=owner)
        return ChatSession(id=chat_id, owner=owner, title=title, created_at=now, updated_at=now)

    def get_session(self, chat_id: int, owner: Optional[str] = None) -> ChatSession:
        """Get session details.

        Raises:
            NotFound: If no such session exists for the owner
        """
        conn = self.database.get_connection()
        try:
            if owner is None:
                row = conn.execute("SELECT * FROM chats WHERE id = ?", (chat_id,)).fetchone()
            else:
                row = conn.execute(
                    "SELECT * FROM chats WHERE id = ? AND owner = ?", (chat_id, owner)
                ).fetchone()
        finally:
            conn.close()

        if row is None:
            raise NotFound(f"Chat {chat_id} not found")
        return self._row_to_session(row)

    def list_sessions(self, owner: Optional[str] = None, limit: int = 50) -> List[ChatSession]:
        """List sessions, most recently active first."""
        conn = self.database.get_connection()
        try:
            if owner is None:
                rows = conn.execute(
                    "SELECT * FROM chats ORDER BY updated_at DESC, id DESC LIMIT ?", (limit,)
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM chats WHERE owner = ? ORDER BY updated_at DESC, id DESC LIMIT ?",
                    (owner, limit),
                ).fetchall()
        finally:
            conn.close()

        return [self._row_to_session(row) for row in rows]

    def add_message(
        self,
        chat_id: int,
        role: str,
        content: str,
        sources: Optional[List[Dict[str, Any]]] = None,
    ) -> ChatMessage:
        """Add a message to a session.

        Args:
            chat_id: The session to add the message to
            role: Message role ('user' or 'assistant')
            content: The message content
            sources: Citations the message was grounded on

        Returns:
            The stored ChatMessage
        """
        if role not in ROLES:
            raise ValidationError(f"Unknown message role: {role}")

        now = _utcnow()
        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO chat_messages (chat_id, role, content, sources_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (chat_id, role, content, json.dumps(sources or []), now),
            )
            conn.execute("UPDATE chats SET updated_at = ? WHERE id = ?", (now, chat_id))
            conn.commit()
            message_id = cursor.lastrowid
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("conversation_message_add_failed", error=str(e), chat_id=chat_id)
            raise
        finally:
            conn.close()

        logger.info(
            "conversation_message_added",
            chat_id=chat_id,
            role=role,
            message_id=message_id,
        )
        return ChatMessage(
            id=message_id,
            chat_id=chat_id,
            role=role,
            content=content,
            created_at=now,
            sources=list(sources or []),
        )

    def get_messages(self, chat_id: int, owner: Optional[str] = None) -> List[ChatMessage]:
        """All messages of a session in chronological order.

        Raises:
            NotFound: If no such session exists for the owner
        """
        self.get_session(chat_id, owner)

        conn = self.database.get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM chat_messages WHERE chat_id = ? ORDER BY id", (chat_id,)
            ).fetchall()
        finally:
            conn.close()

        return [self._row_to_message(row) for row in rows]

    def get_recent_messages(self, chat_id: int, limit: Optional[int] = None) -> List[ChatMessage]:
        """The last few messages of a session, oldest first."""
        limit = limit or self.context_window_size

        conn = self.database.get_connection()
        try:
            rows = conn.execute(
                "SELECT * FROM chat_messages WHERE chat_id = ? ORDER BY id DESC LIMIT ?",
                (chat_id, limit),
            ).fetchall()
        finally:
            conn.close()

        return [self._row_to_message(row) for row in reversed(rows)]

    def format_conversation_history(self, chat_id: int) -> List[Dict[str, str]]:
        """Recent history as role/content pairs for the chat provider."""
        history = [
            {"role": m.role, "content": m.content}
            for m in self.get_recent_messages(chat_id)
        ]
        logger.debug("conversation_history_formatted", chat_id=chat_id, message_count=len(history))
        return history

    def delete_session(self, chat_id: int, owner: Optional[str] = None) -> int:
        """Delete a session and all its messages.

        Returns:
            Number of messages removed

        Raises:
            NotFound: If no such session exists for the owner
        """
        self.get_session(chat_id, owner)

        conn = self.database.get_connection()
        try:
            count = conn.execute(
                "DELETE FROM chat_messages WHERE chat_id = ?", (chat_id,)
            ).rowcount
            conn.execute("DELETE FROM chats WHERE id = ?", (chat_id,))
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("conversation_session_delete_failed", error=str(e), chat_id=chat_id)
            raise
        finally:
            conn.close()

        logger.info("conversation_session_deleted", chat_id=chat_id, messages_deleted=count)
        return count
