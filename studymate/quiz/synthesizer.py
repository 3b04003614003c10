"""Quiz synthesis: provider-backed generation with an offline fallback.

States:
    REQUEST -> LLM_CALL -> PARSE -> DONE
    REQUEST -> LLM_CALL | PARSE failure -> HEURISTIC_FALLBACK -> DONE

Only an empty passage scope (NotFound) or invalid input (ValidationError)
escapes; provider and parse failures end on the heuristic path.
"""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Union
from pydantic import ValidationError as SchemaError
import structlog

from studymate import config
from studymate.errors import NotFound, ParseError, ProviderUnavailable, ValidationError
from studymate.llm_client import ProviderClient
from studymate.quiz.heuristic import HeuristicQuestionGenerator, SourcePassage
from studymate.quiz.parser import parse_questions
from studymate.quiz.schemas import Distribution, Provenance, ProviderQuestion, Question
from studymate.rag.ranker import make_snippet
from studymate.rag.retriever import Retriever

logger = structlog.get_logger()


QUIZ_SYSTEM_PROMPT = """You are an exam-style question generator for students. For each selected passage, generate:
- MCQs: question stem, 4 choices (one correct), brief explanation (1-2 lines), difficulty (easy/medium/hard)
- SAQs: 2-4 sentence answer expected
- LAQs: prompt + bullet points of expected detailed answer (3-6 bullets)
Make distractors plausible: use common student misconceptions or close numeric values.
Every question must name the passage it came from in source_doc and page_no.
Return only a JSON array whose items match this schema:
{schema}"""


class SynthesisState(str, Enum):
    REQUEST = "request"
    LLM_CALL = "llm_call"
    PARSE = "parse"
    HEURISTIC_FALLBACK = "heuristic_fallback"
    DONE = "done"


@dataclass
class QuizDraft:
    """Generated questions plus how they were produced."""

    questions: List[Question]
    provenance: Provenance
    distribution: Distribution
    num_questions: int
    doc_ids: List[int]
    state_trace: List[SynthesisState] = field(default_factory=list)
    fallback_reason: Optional[str] = None


def build_quiz_prompt(
    passages: Sequence[SourcePassage], num_questions: int, distribution: Distribution
) -> str:
    """Build the user prompt for provider quiz generation."""
    context = "\n\n".join(
        f'[{p.doc_title}, p.{p.page_no}]: "{make_snippet(p.text)}"' for p in passages
    )
    return f"""Generate {num_questions} questions from the following passages with distribution: MCQ:{distribution.mcq}, SAQ:{distribution.saq}, LAQ:{distribution.laq}

Context passages:
{context}

Return as JSON array."""


class QuizSynthesizer:
    """Produces question sets for a document scope."""

    def __init__(
        self,
        retriever: Retriever,
        client: ProviderClient,
        heuristic: HeuristicQuestionGenerator = None,
        model: str = None,
        temperature: float = None,
        max_tokens: int = None,
        seed_query: str = None,
        max_passages: int = None,
    ):
        self.retriever = retriever
        self.client = client
        self.heuristic = heuristic or HeuristicQuestionGenerator()
        self.model = model or config.CHAT_MODEL
        self.temperature = temperature if temperature is not None else config.QUIZ_TEMPERATURE
        self.max_tokens = max_tokens or config.QUIZ_MAX_TOKENS
        self.seed_query = seed_query or config.QUIZ_SEED_QUERY
        self.max_passages = max_passages or config.QUIZ_MAX_PASSAGES
        self.system_prompt = QUIZ_SYSTEM_PROMPT.format(
            schema=json.dumps(ProviderQuestion.model_json_schema(), indent=2)
        )

    @staticmethod
    def validate_request(
        doc_ids: Sequence[int],
        num_questions: int,
        distribution: Union[Distribution, Dict[str, int], None],
    ) -> Distribution:
        """Check the request and resolve the distribution.

        Raises:
            ValidationError: On an empty scope, a non-positive count or a
                distribution that doesn't add up to num_questions
        """
        if not doc_ids:
            raise ValidationError("Document IDs are required")

        if num_questions < 1:
            raise ValidationError(f"num_questions must be >= 1, got {num_questions}")

        if distribution is None:
            return Distribution.default_for(num_questions)

        if isinstance(distribution, dict):
            try:
                distribution = Distribution(**distribution)
            except (SchemaError, TypeError) as e:
                raise ValidationError("Invalid question distribution", detail=str(e)) from e

        if distribution.total != num_questions:
            raise ValidationError(
                f"Distribution totals {distribution.total}, expected {num_questions}"
            )

        return distribution

    async def _gather_passages(self, doc_ids: Sequence[int], num_questions: int) -> List[SourcePassage]:
        limit = min(self.max_passages, num_questions * 2)

        try:
            passages = await self.retriever.search(
                self.seed_query, doc_ids=doc_ids, top_k=limit
            )
        except (ProviderUnavailable, ValidationError) as e:
            # Unreachable embeddings or a query vector of another dimension
            logger.warning(
                "quiz_ranking_unavailable",
                error=e.message,
                error_type=type(e).__name__,
                doc_ids=list(doc_ids),
            )
            passages = self.retriever.store.fetch_candidates(doc_ids)[:limit]

        if not passages:
            raise NotFound("No passages found in the selected documents")

        return passages

    def _to_questions(
        self, items: List[ProviderQuestion], passages: Sequence[SourcePassage], num_questions: int
    ) -> List[Question]:
        doc_ids_by_title = {p.doc_title: p.doc_id for p in passages}
        return [
            Question.from_provider(item, source_doc_id=doc_ids_by_title.get(item.source_doc))
            for item in items[:num_questions]
        ]

    async def generate(
        self,
        doc_ids: Sequence[int],
        num_questions: int = 10,
        distribution: Union[Distribution, Dict[str, int], None] = None,
    ) -> QuizDraft:
        """Generate a question set for the given documents.

        Args:
            doc_ids: Documents to draw passages from
            num_questions: Requested question count
            distribution: Requested MCQ/SAQ/LAQ split (6:3:1 by default)

        Returns:
            QuizDraft tagged with provider or heuristic provenance

        Raises:
            ValidationError: On invalid input
            NotFound: If the documents have no passages
        """
        trace = [SynthesisState.REQUEST]
        distribution = self.validate_request(doc_ids, num_questions, distribution)
        doc_ids = list(doc_ids)
        passages = await self._gather_passages(doc_ids, num_questions)

        fallback_reason = None
        try:
            trace.append(SynthesisState.LLM_CALL)
            reply = await self.client.chat(
                self.system_prompt,
                build_quiz_prompt(passages, num_questions, distribution),
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )

            trace.append(SynthesisState.PARSE)
            items = parse_questions(reply)
            questions = self._to_questions(items, passages, num_questions)
            provenance = Provenance.PROVIDER

        except ParseError as e:
            fallback_reason = f"parse: {e.message}"
        except Exception as e:
            fallback_reason = f"provider: {type(e).__name__}: {e}"

        if fallback_reason is not None:
            logger.warning(
                "quiz_fallback_engaged",
                reason=fallback_reason,
                failed_state=trace[-1].value,
                doc_ids=doc_ids,
            )
            trace.append(SynthesisState.HEURISTIC_FALLBACK)
            questions = self.heuristic.generate(passages, num_questions, distribution)
            provenance = Provenance.HEURISTIC

        trace.append(SynthesisState.DONE)

        logger.info(
            "quiz_generated",
            doc_ids=doc_ids,
            provenance=provenance.value,
            question_count=len(questions),
            requested=num_questions,
        )

        return QuizDraft(
            questions=questions,
            provenance=provenance,
            distribution=distribution,
            num_questions=num_questions,
            doc_ids=doc_ids,
            state_trace=trace,
            fallback_reason=fallback_reason,
        )
