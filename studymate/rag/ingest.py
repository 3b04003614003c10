"""Ingest pipeline for turning extracted document text into passages.

Orchestrates:
- Word-window segmentation with page estimates
- Concurrent embedding generation
- Per-passage storage, resumable after a partial failure
"""
from dataclasses import dataclass
from typing import Any, Dict, List
import asyncio
import structlog

from studymate import config
from studymate.errors import ProviderUnavailable
from studymate.rag.embedder import EmbeddingGenerator
from studymate.rag.segmenter import TextChunk, TextSegmenter
from studymate.rag.store import PassageRecord, VectorStore

logger = structlog.get_logger()


@dataclass
class IngestResult:
    """Outcome of ingesting one document."""

    doc_id: int
    chunks_stored: int
    status: str  # "ok", "resumed", "already_processed" or "empty"


class IngestPipeline:
    """Pipeline for ingesting extracted text into the vector store."""

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingGenerator,
        segmenter: TextSegmenter = None,
        concurrency: int = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            store: Passage store
            embedder: Embedding generator
            segmenter: Text segmenter (default windows from config)
            concurrency: Number of embeddings generated in parallel
        """
        self.store = store
        self.embedder = embedder
        self.segmenter = segmenter or TextSegmenter()
        self.concurrency = concurrency or config.INGEST_CONCURRENCY

        self.stats = {
            "documents_processed": 0,
            "chunks_created": 0,
            "embeddings_generated": 0,
            "embeddings_failed": 0,
        }

    async def _embed_and_store(
        self, doc_id: int, chunk: TextChunk, semaphore: asyncio.Semaphore
    ) -> int:
        async with semaphore:
            vector = await self.embedder.embed(chunk.text)
        self.stats["embeddings_generated"] += 1

        return self.store.store(
            [
                PassageRecord(
                    doc_id=doc_id,
                    page_no=chunk.estimated_page,
                    text=chunk.text,
                    vector=vector,
                    chunk_index=chunk.chunk_index,
                )
            ]
        )

    async def ingest_document(
        self, text: str, total_pages: int, doc_id: int
    ) -> IngestResult:
        """Segment, embed and store one document.

        Re-ingesting a document that already has passages is a no-op, unless
        the stored passages match this text's segmentation; then only the
        missing chunks are embedded.

        Args:
            text: Extracted document text
            total_pages: Page count of the document
            doc_id: Registered document ID

        Returns:
            IngestResult with the number of passages stored for the document

        Raises:
            NotFound: If the document is not registered
            ProviderUnavailable: If some chunks could not be embedded; the
                others remain stored and a rerun resumes
        """
        document = self.store.get_document(doc_id)

        logger.info("ingesting_document", doc_id=doc_id, title=document.title)

        existing = self.store.existing_chunk_texts(doc_id)
        chunks = self.segmenter.segment(text, total_pages)

        if existing:
            segmented = {c.chunk_index: c.text for c in chunks}
            same_text = all(segmented.get(i) == t for i, t in existing.items())

            # A resume only continues the text the stored passages came from
            if not same_text:
                logger.warning(
                    "document_text_differs_from_stored",
                    doc_id=doc_id,
                    stored_chunks=len(existing),
                    new_chunks=len(chunks),
                )

            if not same_text or segmented.keys() <= existing.keys():
                logger.info(
                    "document_already_processed", doc_id=doc_id, chunks=len(existing)
                )
                return IngestResult(
                    doc_id=doc_id, chunks_stored=len(existing), status="already_processed"
                )

        if not chunks:
            logger.warning("no_chunks_created", doc_id=doc_id)
            return IngestResult(doc_id=doc_id, chunks_stored=0, status="empty")

        pending = [c for c in chunks if c.chunk_index not in existing]
        semaphore = asyncio.Semaphore(self.concurrency)

        outcomes = await asyncio.gather(
            *(self._embed_and_store(doc_id, c, semaphore) for c in pending),
            return_exceptions=True,
        )

        failures: List[BaseException] = [o for o in outcomes if isinstance(o, BaseException)]
        stored = self.store.count_passages(doc_id)

        self.stats["chunks_created"] += len(pending) - len(failures)
        self.stats["embeddings_failed"] += len(failures)

        if failures:
            logger.error(
                "document_partially_ingested",
                doc_id=doc_id,
                stored=stored,
                failed=len(failures),
                first_error=str(failures[0]),
            )
            for failure in failures:
                if not isinstance(failure, Exception):
                    raise failure
            raise ProviderUnavailable(
                f"{len(failures)} of {len(chunks)} chunks could not be embedded "
                f"for document {doc_id}",
                attempts=[str(f) for f in failures[:3]],
            ) from failures[0]

        self.stats["documents_processed"] += 1
        status = "resumed" if existing else "ok"

        logger.info(
            "document_ingested",
            doc_id=doc_id,
            chunks_stored=stored,
            status=status,
            **self.segmenter.get_chunk_stats(chunks),
        )

        return IngestResult(doc_id=doc_id, chunks_stored=stored, status=status)

    def get_stats(self) -> Dict[str, Any]:
        """Counters accumulated over this pipeline's lifetime."""
        return dict(self.stats)
