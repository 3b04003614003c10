"""SQLite database initialization and connection helpers.

Tables:
- documents: uploaded document metadata
- passages: text chunks with their embedding vectors
- quizzes / questions: generated quizzes and their ordered questions
- attempts: scored quiz attempts
- chats / chat_messages: chat sessions and their ordered messages
"""
import sqlite3
from pathlib import Path
from typing import Optional
import structlog

from studymate import config

logger = structlog.get_logger()


SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner TEXT,
    title TEXT NOT NULL,
    pages INTEGER NOT NULL DEFAULT 0,
    storage_ref TEXT,
    uploaded_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS passages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    doc_id INTEGER NOT NULL REFERENCES documents (id) ON DELETE CASCADE,
    page_no INTEGER NOT NULL,
    text TEXT NOT NULL,
    embedding_json TEXT NOT NULL,
    dimension INTEGER NOT NULL,
    chunk_index INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    UNIQUE(doc_id, chunk_index)
);

CREATE INDEX IF NOT EXISTS idx_passages_doc_id ON passages(doc_id);

CREATE TABLE IF NOT EXISTS quizzes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner TEXT,
    doc_id INTEGER REFERENCES documents (id) ON DELETE SET NULL,
    name TEXT NOT NULL,
    metadata_json TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS questions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    quiz_id INTEGER NOT NULL REFERENCES quizzes (id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    type TEXT NOT NULL,
    prompt_text TEXT NOT NULL,
    choices_json TEXT,
    correct_index INTEGER,
    correct_answer TEXT NOT NULL,
    explanation TEXT,
    difficulty TEXT NOT NULL,
    source_doc TEXT NOT NULL,
    source_doc_id INTEGER,
    page_no INTEGER NOT NULL,
    provenance TEXT NOT NULL,
    UNIQUE(quiz_id, position)
);

CREATE TABLE IF NOT EXISTS attempts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner TEXT,
    quiz_id INTEGER NOT NULL REFERENCES quizzes (id) ON DELETE CASCADE,
    score INTEGER NOT NULL,
    answers_json TEXT NOT NULL,
    results_json TEXT NOT NULL,
    started_at TEXT,
    finished_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chats (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    owner TEXT,
    title TEXT NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS chat_messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    chat_id INTEGER NOT NULL REFERENCES chats (id) ON DELETE CASCADE,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    sources_json TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_chat_messages_chat_id ON chat_messages(chat_id);
"""


class Database:
    """Thin wrapper around a SQLite file with the StudyMate schema."""

    def __init__(self, db_path: Optional[Path] = None, timeout: float = 30.0):
        """Initialize the database handle.

        Args:
            db_path: Path to the SQLite file (default from config)
            timeout: Seconds to wait on a locked database
        """
        self.db_path = Path(db_path or config.DB_PATH)
        self.timeout = timeout

    def get_connection(self) -> sqlite3.Connection:
        """Get a new connection to the database.

        Returns:
            sqlite3.Connection with row_factory set to sqlite3.Row and
            foreign keys enforced
        """
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def init_schema(self) -> None:
        """Create tables if they don't exist and enable WAL journaling.

        WAL lets readers proceed while another connection writes.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = self.get_connection()
        try:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(SCHEMA)
            conn.commit()
            logger.info("database_initialized", db_path=str(self.db_path))
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("database_init_failed", error=str(e))
            raise
        finally:
            conn.close()
