"""Embedding generation over a prioritized list of candidate models."""
import asyncio
import math
from numbers import Real
from typing import List, Optional, Sequence
import structlog

from studymate import config
from studymate.errors import ProviderUnavailable
from studymate.llm_client import ProviderClient

logger = structlog.get_logger()


def candidate_models(primary: Optional[str], fallbacks: Sequence[str]) -> List[str]:
    """Build the ordered candidate list, dropping blanks and duplicates."""
    models = []
    for model in [primary, *fallbacks]:
        if model and model not in models:
            models.append(model)
    return models


def is_valid_vector(vector) -> bool:
    """Check that a provider returned a non-empty list of finite numbers."""
    if not isinstance(vector, list) or not vector:
        return False
    return all(
        isinstance(v, Real) and not isinstance(v, bool) and math.isfinite(v)
        for v in vector
    )


class EmbeddingGenerator:
    """Turns text into a vector using the first candidate model that works."""

    def __init__(
        self,
        client: ProviderClient,
        primary_model: str = None,
        fallback_models: Optional[Sequence[str]] = None,
        timeout: float = None,
    ):
        """Initialize the generator.

        Args:
            client: Provider client used for embedding requests
            primary_model: Preferred model (default from config, may be empty)
            fallback_models: Models tried after the primary (default from config)
            timeout: Per-candidate timeout in seconds
        """
        self.client = client
        self.models = candidate_models(
            primary_model if primary_model is not None else config.EMBEDDING_MODEL,
            fallback_models if fallback_models is not None else config.EMBEDDING_FALLBACK_MODELS,
        )
        self.timeout = timeout or config.EMBEDDING_TIMEOUT

        if not self.models:
            raise ValueError("At least one embedding model must be configured")

        logger.info("embedding_generator_initialized", models=self.models)

    async def embed(self, text: str) -> List[float]:
        """Generate an embedding for one text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector from the first candidate that succeeded

        Raises:
            ProviderUnavailable: If every candidate model failed
        """
        attempts = []

        for model in self.models:
            try:
                async with asyncio.timeout(self.timeout):
                    vector = await self.client.embeddings(
                        text, model=model, timeout=self.timeout
                    )
            except Exception as e:
                logger.warning(
                    "embedding_candidate_failed",
                    model=model,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                attempts.append(f"{model}: {type(e).__name__}")
                continue

            if not is_valid_vector(vector):
                logger.warning("embedding_candidate_invalid", model=model)
                attempts.append(f"{model}: invalid vector")
                continue

            logger.debug("embedding_generated", model=model, dimension=len(vector))
            return [float(v) for v in vector]

        logger.error(
            "embedding_all_candidates_failed",
            models=self.models,
            text_preview=text[:100],
        )
        raise ProviderUnavailable("All embedding models failed", attempts=attempts)

