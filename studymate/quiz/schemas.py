"""Pydantic models for quizzes, questions and attempts."""
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator


class QuestionType(str, Enum):
    MCQ = "MCQ"
    SAQ = "SAQ"
    LAQ = "LAQ"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class Provenance(str, Enum):
    PROVIDER = "provider"
    HEURISTIC = "heuristic"


FREE_FORM_ANSWER = "Answers may vary; grade against the key idea of the source passage."


class Distribution(BaseModel):
    """Requested number of questions per type."""

    mcq: int = Field(default=0, ge=0)
    saq: int = Field(default=0, ge=0)
    laq: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.mcq + self.saq + self.laq

    @classmethod
    def default_for(cls, num_questions: int) -> "Distribution":
        """Split a question count 6:3:1 across MCQ, SAQ and LAQ."""
        mcq = round(num_questions * 0.6)
        saq = min(round(num_questions * 0.3), num_questions - mcq)
        return cls(mcq=mcq, saq=saq, laq=num_questions - mcq - saq)


class ProviderQuestion(BaseModel):
    """One question object as the generation provider must return it."""

    type: QuestionType
    stem: str = Field(min_length=1)
    choices: Optional[List[str]] = None
    correct_index: Optional[int] = None
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    source_doc: str = Field(min_length=1)
    page_no: int = Field(ge=1)
    difficulty: Difficulty = Difficulty.MEDIUM

    @field_validator("type", mode="before")
    @classmethod
    def _upper_type(cls, value):
        return value.upper() if isinstance(value, str) else value

    @field_validator("difficulty", mode="before")
    @classmethod
    def _lower_difficulty(cls, value):
        return value.lower() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _check_choices(self) -> "ProviderQuestion":
        if self.type == QuestionType.MCQ:
            if not self.choices or not 2 <= len(self.choices) <= 6:
                raise ValueError("MCQ needs between 2 and 6 choices")
            if self.correct_index is None or not 0 <= self.correct_index < len(self.choices):
                raise ValueError("MCQ correct_index out of range")
        return self


class Question(BaseModel):
    """A quiz question ready for display or persistence."""

    type: QuestionType
    stem: str
    choices: List[str] = Field(default_factory=list)
    correct_index: Optional[int] = None
    correct_answer: str
    explanation: str = ""
    difficulty: Difficulty
    source_doc: str
    source_doc_id: Optional[int] = None
    page_no: int
    provenance: Provenance

    @classmethod
    def from_provider(
        cls, item: ProviderQuestion, source_doc_id: Optional[int] = None
    ) -> "Question":
        if item.type == QuestionType.MCQ:
            choices = list(item.choices)
            correct_answer = choices[item.correct_index]
            correct_index = item.correct_index
        else:
            choices = []
            correct_answer = item.correct_answer or FREE_FORM_ANSWER
            correct_index = None
        return cls(
            type=item.type,
            stem=item.stem,
            choices=choices,
            correct_index=correct_index,
            correct_answer=correct_answer,
            explanation=item.explanation or "",
            difficulty=item.difficulty,
            source_doc=item.source_doc,
            source_doc_id=source_doc_id,
            page_no=item.page_no,
            provenance=Provenance.PROVIDER,
        )


class Quiz(BaseModel):
    """A persisted quiz with its ordered questions."""

    id: int
    owner: Optional[str] = None
    doc_id: Optional[int] = None
    name: str
    distribution: Distribution
    num_questions: int
    provenance: Provenance
    created_at: str
    questions: List[Question] = Field(default_factory=list)


class QuestionResult(BaseModel):
    """Grading outcome for one answered question."""

    position: int
    user_answer: Optional[str] = None
    correct_answer: str
    is_correct: Optional[bool] = None  # None for free-form questions
    explanation: str = ""


class Attempt(BaseModel):
    """A scored quiz attempt; never modified after it is recorded."""

    id: int
    quiz_id: int
    owner: Optional[str] = None
    answers: List[Union[int, str, None]]
    results: List[QuestionResult]
    score: int
    started_at: Optional[str] = None
    finished_at: str
