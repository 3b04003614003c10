"""Brute-force cosine similarity ranking with stable tie-breaking."""
from dataclasses import dataclass
from typing import List, Sequence
import numpy as np
import structlog

from studymate import config
from studymate.errors import ValidationError
from studymate.rag.store import StoredPassage

logger = structlog.get_logger()


@dataclass
class RankedPassage:
    """A candidate passage scored against a query."""

    passage_id: int
    doc_id: int
    doc_title: str
    page_no: int
    text: str
    snippet: str
    score: float


def make_snippet(text: str, max_chars: int = None) -> str:
    """First max_chars characters of a passage, with an ellipsis if cut."""
    max_chars = max_chars or config.SNIPPET_CHARS
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "..."


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either has zero magnitude.

    Raises:
        ValidationError: If the vectors differ in length
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    if va.shape != vb.shape:
        raise ValidationError(
            f"Embedding dimension mismatch: {va.shape[0]} vs {vb.shape[0]}"
        )

    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    similarity = float(np.dot(va, vb) / (norm_a * norm_b))
    return max(-1.0, min(1.0, similarity))


def _similarities(query_vector: Sequence[float], vectors: List[Sequence[float]]) -> np.ndarray:
    query = np.asarray(query_vector, dtype=np.float64)
    dimension = query.shape[0]

    mismatched = {len(v) for v in vectors if len(v) != dimension}
    if mismatched:
        raise ValidationError(
            f"Embedding dimension mismatch: query has {dimension}, "
            f"stored passages have {sorted(mismatched)}",
            detail="Passages were embedded with a different model; re-ingest them.",
        )

    matrix = np.asarray(vectors, dtype=np.float64)
    dots = matrix @ query
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)

    scores = np.zeros(len(vectors), dtype=np.float64)
    np.divide(dots, norms, out=scores, where=norms != 0.0)
    return np.clip(scores, -1.0, 1.0)


def rank(
    query_vector: Sequence[float],
    candidates: Sequence[StoredPassage],
    top_k: int,
) -> List[RankedPassage]:
    """Score candidates against a query vector and keep the best top_k.

    Equal scores keep their input order.

    Args:
        query_vector: Embedding of the query
        candidates: Passages with vectors
        top_k: Maximum number of results

    Returns:
        RankedPassage list in non-increasing score order

    Raises:
        ValidationError: On top_k < 1 or mixed embedding dimensions
    """
    if top_k < 1:
        raise ValidationError(f"top_k must be >= 1, got {top_k}")

    if not candidates:
        return []

    scores = _similarities(query_vector, [c.vector for c in candidates])
    order = np.argsort(-scores, kind="stable")[: min(top_k, len(candidates))]

    results = []
    for i in order:
        candidate = candidates[int(i)]
        results.append(
            RankedPassage(
                passage_id=candidate.id,
                doc_id=candidate.doc_id,
                doc_title=candidate.doc_title,
                page_no=candidate.page_no,
                text=candidate.text,
                snippet=make_snippet(candidate.text),
                score=float(scores[i]),
            )
        )

    logger.info(
        "passages_ranked",
        candidate_count=len(candidates),
        returned=len(results),
        top_score=results[0].score if results else None,
    )

    return results
