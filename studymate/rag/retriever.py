"""Retriever for semantic search over ingested documents.

Handles:
- Candidate reads scoped to a document set
- Query embedding generation
- Cosine ranking and context formatting
"""
from typing import List, Optional, Sequence
import structlog

from studymate import config
from studymate.errors import ValidationError
from studymate.rag.embedder import EmbeddingGenerator
from studymate.rag.ranker import RankedPassage, rank
from studymate.rag.store import VectorStore

logger = structlog.get_logger()


class Retriever:
    """Semantic retriever for the RAG pipeline."""

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingGenerator,
        top_k: int = None,
    ):
        """Initialize the retriever.

        Args:
            store: Passage store to read candidates from
            embedder: Embedding generator for queries
            top_k: Default number of results (default from config)
        """
        self.store = store
        self.embedder = embedder
        self.top_k = top_k or config.RETRIEVAL_TOP_K

    async def search(
        self,
        query: str,
        doc_ids: Optional[Sequence[int]] = None,
        top_k: Optional[int] = None,
    ) -> List[RankedPassage]:
        """Retrieve the passages most similar to a query.

        Args:
            query: User query text
            doc_ids: Restrict to these documents (None searches everything)
            top_k: Number of results to return (overrides default)

        Returns:
            RankedPassage list, best first; empty if the scope has no passages

        Raises:
            ValidationError: On an empty query or mixed embedding dimensions
            ProviderUnavailable: If the query could not be embedded
        """
        if not query or not query.strip():
            logger.warning("empty_query_provided")
            raise ValidationError("Query is required")

        top_k = top_k if top_k is not None else self.top_k

        candidates = self.store.fetch_candidates(doc_ids)
        if not candidates:
            logger.info("no_candidates_in_scope", doc_ids=list(doc_ids or []))
            return []

        query_vector = await self.embedder.embed(query)
        results = rank(query_vector, candidates, top_k)

        logger.info(
            "retrieval_completed",
            query_length=len(query),
            results_returned=len(results),
            top_score=results[0].score if results else None,
        )

        return results


def format_context(passages: Sequence[RankedPassage]) -> str:
    """Format ranked passages as citation-labelled context for a prompt.

    Args:
        passages: Ranked passages

    Returns:
        One block per passage, separated by blank lines
    """
    return "\n\n".join(
        f'[{p.doc_title}, p.{p.page_no}]: "{p.snippet}"' for p in passages
    )
