"""SQLite-backed passage store.

Handles:
- Document registration and cascading deletion
- Passage persistence (one commit per passage, duplicates ignored)
- Full-scan candidate reads, optionally scoped to a set of documents
"""
import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set
import structlog

from studymate.db import Database
from studymate.errors import NotFound

logger = structlog.get_logger()


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Document:
    """Metadata of an uploaded document."""

    id: int
    title: str
    pages: int
    storage_ref: Optional[str]
    owner: Optional[str]
    uploaded_at: str


@dataclass
class PassageRecord:
    """A chunk ready to be persisted with its embedding."""

    doc_id: int
    page_no: int
    text: str
    vector: List[float]
    chunk_index: int


@dataclass
class StoredPassage:
    """A persisted passage joined with its document title."""

    id: int
    doc_id: int
    doc_title: str
    page_no: int
    text: str
    vector: List[float]
    chunk_index: int


class VectorStore:
    """Persists passages with vectors and serves candidate reads."""

    def __init__(self, database: Database):
        """Initialize the store.

        Args:
            database: Database handle whose schema is already initialized
        """
        self.database = database

    def register_document(
        self,
        title: str,
        pages: int,
        storage_ref: Optional[str] = None,
        owner: Optional[str] = None,
    ) -> int:
        """Create a document row.

        Returns:
            ID of the new document
        """
        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO documents (owner, title, pages, storage_ref, uploaded_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (owner, title, pages, storage_ref, _utcnow()),
            )
            conn.commit()
            doc_id = cursor.lastrowid
            logger.info("document_registered", doc_id=doc_id, title=title, pages=pages)
            return doc_id
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("document_register_failed", error=str(e), title=title)
            raise
        finally:
            conn.close()

    def get_document(self, doc_id: int) -> Document:
        """Fetch one document.

        Raises:
            NotFound: If the document doesn't exist
        """
        conn = self.database.get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM documents WHERE id = ?", (doc_id,)
            ).fetchone()
        finally:
            conn.close()

        if row is None:
            raise NotFound(f"Document {doc_id} not found")

        return Document(
            id=row["id"],
            title=row["title"],
            pages=row["pages"],
            storage_ref=row["storage_ref"],
            owner=row["owner"],
            uploaded_at=row["uploaded_at"],
        )

    def list_documents(self, owner: Optional[str] = None) -> List[Document]:
        """List documents, newest first, optionally for one owner."""
        conn = self.database.get_connection()
        try:
            if owner is None:
                rows = conn.execute(
                    "SELECT * FROM documents ORDER BY id DESC"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM documents WHERE owner = ? ORDER BY id DESC",
                    (owner,),
                ).fetchall()
        finally:
            conn.close()

        return [
            Document(
                id=row["id"],
                title=row["title"],
                pages=row["pages"],
                storage_ref=row["storage_ref"],
                owner=row["owner"],
                uploaded_at=row["uploaded_at"],
            )
            for row in rows
        ]

    def delete_document(self, doc_id: int) -> int:
        """Delete a document and its passages.

        Returns:
            Number of passages removed

        Raises:
            NotFound: If the document doesn't exist
        """
        conn = self.database.get_connection()
        try:
            count = conn.execute(
                "SELECT COUNT(*) FROM passages WHERE doc_id = ?", (doc_id,)
            ).fetchone()[0]
            conn.execute("DELETE FROM passages WHERE doc_id = ?", (doc_id,))
            cursor = conn.execute("DELETE FROM documents WHERE id = ?", (doc_id,))
            if cursor.rowcount == 0:
                conn.rollback()
                raise NotFound(f"Document {doc_id} not found")
            conn.commit()
            logger.info("document_deleted", doc_id=doc_id, passages_deleted=count)
            return count
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("document_delete_failed", error=str(e), doc_id=doc_id)
            raise
        finally:
            conn.close()

    def store(self, passages: Iterable[PassageRecord]) -> int:
        """Persist passages, each in its own transaction.

        A passage whose (doc_id, chunk_index) already exists is skipped, so
        rerunning an interrupted ingestion never duplicates rows.

        Args:
            passages: Records to persist

        Returns:
            Number of passages newly inserted
        """
        inserted = 0
        conn = self.database.get_connection()
        try:
            for passage in passages:
                try:
                    cursor = conn.execute(
                        """
                        INSERT OR IGNORE INTO passages (
                            doc_id, page_no, text, embedding_json,
                            dimension, chunk_index, created_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            passage.doc_id,
                            passage.page_no,
                            passage.text,
                            json.dumps(passage.vector),
                            len(passage.vector),
                            passage.chunk_index,
                            _utcnow(),
                        ),
                    )
                    conn.commit()
                except sqlite3.Error as e:
                    conn.rollback()
                    logger.error(
                        "passage_insert_failed",
                        error=str(e),
                        doc_id=passage.doc_id,
                        chunk_index=passage.chunk_index,
                    )
                    raise
                inserted += cursor.rowcount
        finally:
            conn.close()

        logger.debug("passages_stored", inserted=inserted)
        return inserted

    def fetch_candidates(
        self, doc_ids: Optional[Sequence[int]] = None
    ) -> List[StoredPassage]:
        """Read passages with their vectors.

        Args:
            doc_ids: Restrict to these documents; None or empty reads everything

        Returns:
            Passages ordered by document then chunk index
        """
        sql = """
            SELECT p.id, p.doc_id, d.title AS doc_title, p.page_no, p.text,
                   p.embedding_json, p.chunk_index
            FROM passages p
            JOIN documents d ON p.doc_id = d.id
        """
        params: List[Any] = []
        if doc_ids:
            placeholders = ",".join("?" * len(doc_ids))
            sql += f" WHERE p.doc_id IN ({placeholders})"
            params.extend(doc_ids)
        sql += " ORDER BY p.doc_id, p.chunk_index"

        conn = self.database.get_connection()
        try:
            rows = conn.execute(sql, params).fetchall()
        finally:
            conn.close()

        candidates = [
            StoredPassage(
                id=row["id"],
                doc_id=row["doc_id"],
                doc_title=row["doc_title"],
                page_no=row["page_no"],
                text=row["text"],
                vector=json.loads(row["embedding_json"]),
                chunk_index=row["chunk_index"],
            )
            for row in rows
        ]

        logger.debug(
            "candidates_fetched",
            scope=list(doc_ids) if doc_ids else "all",
            count=len(candidates),
        )
        return candidates

    def count_passages(self, doc_id: int) -> int:
        """Number of passages stored for a document."""
        conn = self.database.get_connection()
        try:
            return conn.execute(
                "SELECT COUNT(*) FROM passages WHERE doc_id = ?", (doc_id,)
            ).fetchone()[0]
        finally:
            conn.close()

    def existing_chunk_indexes(self, doc_id: int) -> Set[int]:
        """Chunk indexes already persisted for a document."""
        return set(self.existing_chunk_texts(doc_id))

    def existing_chunk_texts(self, doc_id: int) -> Dict[int, str]:
        """Stored passage text keyed by chunk index for a document."""
        conn = self.database.get_connection()
        try:
            rows = conn.execute(
                "SELECT chunk_index, text FROM passages WHERE doc_id = ?", (doc_id,)
            ).fetchall()
        finally:
            conn.close()
        return {row["chunk_index"]: row["text"] for row in rows}

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the store.

        Returns:
            Dictionary with document/passage counts and stored dimensions
        """
        conn = self.database.get_connection()
        try:
            documents = conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
            passages = conn.execute("SELECT COUNT(*) FROM passages").fetchone()[0]
            dimensions = [
                row[0]
                for row in conn.execute(
                    "SELECT DISTINCT dimension FROM passages ORDER BY dimension"
                ).fetchall()
            ]
        finally:
            conn.close()

        return {
            "document_count": documents,
            "passage_count": passages,
            "dimensions": dimensions,
            "db_path": str(self.database.db_path),
        }
