"""Offline quiz generation from passage sentences.

Used when the generation provider fails or returns unusable output. All
randomness comes from the injected random.Random, so a seeded generator
produces the same quiz for the same passages.
"""
import random
import re
import string
from dataclasses import dataclass
from typing import List, Optional, Protocol, Sequence, Tuple
import structlog

from studymate.quiz.schemas import (
    FREE_FORM_ANSWER,
    Difficulty,
    Distribution,
    Provenance,
    Question,
    QuestionType,
)

logger = structlog.get_logger()

MIN_SENTENCE_CHARS = 20
MAX_DISTRACTORS = 3
BLANK = "_____"

_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")
_WHITESPACE = re.compile(r"\s+")


class SourcePassage(Protocol):
    doc_id: int
    doc_title: str
    page_no: int
    text: str


@dataclass
class Sentence:
    """A candidate sentence and where it came from."""

    text: str
    source_doc: str
    source_doc_id: Optional[int]
    page_no: int


def split_sentences(passages: Sequence[SourcePassage]) -> List[Sentence]:
    """Normalize passage text and split it into usable sentences."""
    sentences = []
    for passage in passages:
        text = _WHITESPACE.sub(" ", passage.text or "").strip()
        for part in _SENTENCE_BREAK.split(text):
            part = part.strip()
            if len(part) < MIN_SENTENCE_CHARS:
                continue
            sentences.append(
                Sentence(
                    text=part,
                    source_doc=passage.doc_title or "Unknown",
                    source_doc_id=passage.doc_id,
                    page_no=passage.page_no or 1,
                )
            )
    return sentences


def clamp_targets(num_questions: int, distribution: Distribution) -> Tuple[int, int, int]:
    """Per-type targets that never exceed the requested total."""
    mcq = min(distribution.mcq, num_questions)
    saq = min(distribution.saq, num_questions - mcq)
    laq = min(distribution.laq, num_questions - mcq - saq)
    return mcq, saq, laq


class HeuristicQuestionGenerator:
    """Builds cloze MCQs and open SAQ/LAQ prompts from passage sentences."""

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    def _pick_answer(self, tokens: List[str]) -> Tuple[int, str, List[str]]:
        cores = [(i, tok.strip(string.punctuation)) for i, tok in enumerate(tokens)]
        eligible = [(i, core) for i, core in cores if len(core) > 3]
        if not eligible:
            eligible = [(i, core) for i, core in cores if core] or [(0, tokens[0])]

        position, answer = eligible[len(eligible) // 2]

        seen = {answer.lower()}
        pool = []
        for _, core in eligible:
            if core.lower() not in seen:
                seen.add(core.lower())
                pool.append(core)

        return position, answer, pool

    def make_mcq(self, sentence: Sentence) -> Question:
        tokens = sentence.text.split(" ")
        position, answer, pool = self._pick_answer(tokens)

        masked = list(tokens)
        masked[position] = tokens[position].replace(answer, BLANK, 1)

        distractors = self.rng.sample(pool, min(MAX_DISTRACTORS, len(pool)))
        choices = [answer, *distractors]
        self.rng.shuffle(choices)

        return Question(
            type=QuestionType.MCQ,
            stem=(
                "In the context of the passage, which word best completes: "
                f"\"{' '.join(masked)}\"?"
            ),
            choices=choices,
            correct_index=choices.index(answer),
            correct_answer=answer,
            explanation="The missing word is the original term in the sentence.",
            difficulty=Difficulty.EASY,
            source_doc=sentence.source_doc,
            source_doc_id=sentence.source_doc_id,
            page_no=sentence.page_no,
            provenance=Provenance.HEURISTIC,
        )

    def make_saq(self, sentence: Sentence) -> Question:
        return Question(
            type=QuestionType.SAQ,
            stem=f"Briefly explain the key idea of: \"{sentence.text}\"",
            correct_answer=FREE_FORM_ANSWER,
            explanation="Checks conceptual understanding of the passage.",
            difficulty=Difficulty.MEDIUM,
            source_doc=sentence.source_doc,
            source_doc_id=sentence.source_doc_id,
            page_no=sentence.page_no,
            provenance=Provenance.HEURISTIC,
        )

    def make_laq(self, sentence: Sentence) -> Question:
        return Question(
            type=QuestionType.LAQ,
            stem=(
                "Discuss the concept and provide 3-5 bullet points: "
                f"\"{sentence.text}\""
            ),
            correct_answer=FREE_FORM_ANSWER,
            explanation="Evaluates deeper understanding and organization.",
            difficulty=Difficulty.HARD,
            source_doc=sentence.source_doc,
            source_doc_id=sentence.source_doc_id,
            page_no=sentence.page_no,
            provenance=Provenance.HEURISTIC,
        )

    def generate(
        self,
        passages: Sequence[SourcePassage],
        num_questions: int,
        distribution: Distribution,
    ) -> List[Question]:
        """Generate up to num_questions questions, MCQs first, then SAQs, then LAQs.

        The output is shorter than requested when the passages hold too few
        usable sentences; sentences are never reused.
        """
        sentences = split_sentences(passages)
        mcq, saq, laq = clamp_targets(num_questions, distribution)

        selected = self.rng.sample(sentences, min(mcq + saq + laq, len(sentences)))

        questions = [self.make_mcq(s) for s in selected[:mcq]]
        questions += [self.make_saq(s) for s in selected[mcq:mcq + saq]]
        questions += [self.make_laq(s) for s in selected[mcq + saq:]]

        logger.info(
            "heuristic_questions_generated",
            sentence_pool=len(sentences),
            requested=num_questions,
            generated=len(questions),
        )

        return questions
