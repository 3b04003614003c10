"""Retrieval-augmented answering with structured citations."""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence
import structlog

from studymate import config
from studymate.llm_client import ProviderClient
from studymate.rag.ranker import RankedPassage
from studymate.rag.retriever import Retriever, format_context

logger = structlog.get_logger()


NO_RESULTS_MESSAGE = (
    "I couldn't find relevant information in the provided documents. "
    "Please try rephrasing your question or check if the documents have been "
    "properly processed."
)

EXTERNAL_LABEL = "[External]"

ANSWER_SYSTEM_PROMPT = f"""You are an educational assistant helping students study their course material. When answering, always:
- Return a concise answer (1-3 paragraphs)
- Cite the passages you used in this format: [DocTitle] p.<page>: "<short quote>"
- If deriving or explaining, include a short step-by-step explanation and a final summary sentence
- If the question cannot be answered from the provided passages, say: "I couldn't find a direct answer in the provided texts; here's a concise explanation based on general knowledge." and start the answer with {EXTERNAL_LABEL}"""


@dataclass
class Citation:
    """A grounded reference to a ranked passage."""

    doc_id: int
    doc_title: str
    page: int
    snippet: str
    score: float

    @classmethod
    def from_passage(cls, passage: RankedPassage) -> "Citation":
        return cls(
            doc_id=passage.doc_id,
            doc_title=passage.doc_title,
            page=passage.page_no,
            snippet=passage.snippet,
            score=passage.score,
        )


@dataclass
class Answer:
    """Generated answer text plus the citations it was grounded on."""

    answer_text: str
    citations: List[Citation] = field(default_factory=list)

    @property
    def grounded(self) -> bool:
        """False when no passages were found or the model labelled the answer external."""
        return bool(self.citations) and EXTERNAL_LABEL not in self.answer_text


def build_answer_prompt(query: str, passages: Sequence[RankedPassage]) -> str:
    """Build the user prompt for a grounded answer."""
    return f"""Question: {query}

Context passages (retrieved):
{format_context(passages)}

Generate the answer with citations and show which passage you used for each statement."""


class AnswerOrchestrator:
    """Composes ranked passages into grounded answers."""

    def __init__(
        self,
        retriever: Retriever,
        client: ProviderClient,
        model: str = None,
        temperature: float = None,
        max_tokens: int = None,
    ):
        self.retriever = retriever
        self.client = client
        self.model = model or config.CHAT_MODEL
        self.temperature = temperature if temperature is not None else config.ANSWER_TEMPERATURE
        self.max_tokens = max_tokens or config.ANSWER_MAX_TOKENS

    async def answer(
        self,
        query: str,
        doc_ids: Optional[Sequence[int]] = None,
        top_k: Optional[int] = None,
    ) -> Answer:
        """Answer a question from the passages in scope.

        Args:
            query: User question
            doc_ids: Restrict retrieval to these documents
            top_k: Number of passages to ground on

        Returns:
            Answer with citations; the fixed apology and no citations when
            nothing in scope matched

        Raises:
            ValidationError: On an empty query
            ProviderUnavailable: If embedding or generation failed
        """
        passages = await self.retriever.search(query, doc_ids=doc_ids, top_k=top_k)

        if not passages:
            logger.info("answer_no_passages", doc_ids=list(doc_ids or []))
            return Answer(answer_text=NO_RESULTS_MESSAGE, citations=[])

        answer_text = await self.client.chat(
            ANSWER_SYSTEM_PROMPT,
            build_answer_prompt(query, passages),
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

        answer = Answer(
            answer_text=answer_text,
            citations=[Citation.from_passage(p) for p in passages],
        )

        logger.info(
            "answer_generated",
            citation_count=len(answer.citations),
            grounded=answer.grounded,
            answer_length=len(answer_text),
        )

        return answer
