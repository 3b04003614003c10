"""Persistence for quizzes, questions and scored attempts.

Choices, metadata and answers are JSON-encoded only in this module.
"""
import json
import sqlite3
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence, Union
import structlog

from studymate.db import Database
from studymate.errors import NotFound, ValidationError
from studymate.quiz.schemas import (
    Attempt,
    Distribution,
    Provenance,
    Question,
    QuestionResult,
    QuestionType,
    Quiz,
)
from studymate.quiz.synthesizer import QuizDraft

logger = structlog.get_logger()

AnswerValue = Union[int, str, None]


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def grade_answer(question: Question, answer: AnswerValue) -> Optional[bool]:
    """Grade one answer; None for free-form questions.

    MCQ answers may be the choice index or the choice text.
    """
    if question.type != QuestionType.MCQ:
        return None
    if answer is None:
        return False
    if isinstance(answer, int) and not isinstance(answer, bool):
        return answer == question.correct_index
    return str(answer).strip() == question.correct_answer


class QuizRepository:
    """Stores generated quizzes and records attempts against them."""

    def __init__(self, database: Database):
        self.database = database

    def save_quiz(
        self,
        draft: QuizDraft,
        owner: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Quiz:
        """Persist a generated quiz with its ordered questions.

        Returns:
            The stored Quiz
        """
        created_at = _utcnow()
        name = name or f"Quiz {datetime.now().strftime('%Y-%m-%d')}"
        metadata = {
            "distribution": draft.distribution.model_dump(),
            "num_questions": draft.num_questions,
            "provenance": draft.provenance.value,
            "doc_ids": draft.doc_ids,
        }

        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO quizzes (owner, doc_id, name, metadata_json, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    owner,
                    draft.doc_ids[0] if draft.doc_ids else None,
                    name,
                    json.dumps(metadata),
                    created_at,
                ),
            )
            quiz_id = cursor.lastrowid

            conn.executemany(
                """
                INSERT INTO questions (
                    quiz_id, position, type, prompt_text, choices_json,
                    correct_index, correct_answer, explanation, difficulty,
                    source_doc, source_doc_id, page_no, provenance
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        quiz_id,
                        position,
                        q.type.value,
                        q.stem,
                        json.dumps(q.choices),
                        q.correct_index,
                        q.correct_answer,
                        q.explanation,
                        q.difficulty.value,
                        q.source_doc,
                        q.source_doc_id,
                        q.page_no,
                        q.provenance.value,
                    )
                    for position, q in enumerate(draft.questions)
                ],
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("quiz_save_failed", error=str(e))
            raise
        finally:
            conn.close()

        logger.info(
            "quiz_saved",
            quiz_id=quiz_id,
            question_count=len(draft.questions),
            provenance=draft.provenance.value,
        )

        return Quiz(
            id=quiz_id,
            owner=owner,
            doc_id=draft.doc_ids[0] if draft.doc_ids else None,
            name=name,
            distribution=draft.distribution,
            num_questions=draft.num_questions,
            provenance=draft.provenance,
            created_at=created_at,
            questions=list(draft.questions),
        )

    def _row_to_quiz(self, row: sqlite3.Row, questions: List[Question]) -> Quiz:
        metadata = json.loads(row["metadata_json"] or "{}")
        return Quiz(
            id=row["id"],
            owner=row["owner"],
            doc_id=row["doc_id"],
            name=row["name"],
            distribution=Distribution(**metadata.get("distribution", {})),
            num_questions=metadata.get("num_questions", len(questions)),
            provenance=Provenance(metadata.get("provenance", Provenance.HEURISTIC.value)),
            created_at=row["created_at"],
            questions=questions,
        )

    @staticmethod
    def _row_to_question(row: sqlite3.Row) -> Question:
        return Question(
            type=row["type"],
            stem=row["prompt_text"],
            choices=json.loads(row["choices_json"] or "[]"),
            correct_index=row["correct_index"],
            correct_answer=row["correct_answer"],
            explanation=row["explanation"] or "",
            difficulty=row["difficulty"],
            source_doc=row["source_doc"],
            source_doc_id=row["source_doc_id"],
            page_no=row["page_no"],
            provenance=row["provenance"],
        )

    def get_quiz(self, quiz_id: int, owner: Optional[str] = None) -> Quiz:
        """Load a quiz with its questions in order.

        Raises:
            NotFound: If no such quiz exists for the owner
        """
        conn = self.database.get_connection()
        try:
            if owner is None:
                row = conn.execute(
                    "SELECT * FROM quizzes WHERE id = ?", (quiz_id,)
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT * FROM quizzes WHERE id = ? AND owner = ?",
                    (quiz_id, owner),
                ).fetchone()

            if row is None:
                raise NotFound(f"Quiz {quiz_id} not found")

            question_rows = conn.execute(
                "SELECT * FROM questions WHERE quiz_id = ? ORDER BY position",
                (quiz_id,),
            ).fetchall()
        finally:
            conn.close()

        return self._row_to_quiz(row, [self._row_to_question(r) for r in question_rows])

    def list_quizzes(self, owner: Optional[str] = None) -> List[Quiz]:
        """List quizzes newest first, without their questions."""
        conn = self.database.get_connection()
        try:
            if owner is None:
                rows = conn.execute("SELECT * FROM quizzes ORDER BY id DESC").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM quizzes WHERE owner = ? ORDER BY id DESC", (owner,)
                ).fetchall()
        finally:
            conn.close()

        return [self._row_to_quiz(row, []) for row in rows]

    def delete_quiz(self, quiz_id: int, owner: Optional[str] = None) -> None:
        """Delete a quiz together with its questions and attempts.

        Raises:
            NotFound: If no such quiz exists for the owner
        """
        self.get_quiz(quiz_id, owner)

        conn = self.database.get_connection()
        try:
            conn.execute("DELETE FROM attempts WHERE quiz_id = ?", (quiz_id,))
            conn.execute("DELETE FROM questions WHERE quiz_id = ?", (quiz_id,))
            conn.execute("DELETE FROM quizzes WHERE id = ?", (quiz_id,))
            conn.commit()
            logger.info("quiz_deleted", quiz_id=quiz_id)
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("quiz_delete_failed", error=str(e), quiz_id=quiz_id)
            raise
        finally:
            conn.close()

    def record_attempt(
        self,
        quiz_id: int,
        answers: Sequence[AnswerValue],
        owner: Optional[str] = None,
        started_at: Optional[str] = None,
    ) -> Attempt:
        """Score answers against a quiz and store the attempt.

        Only MCQs are auto-graded; the score is the percentage of MCQs
        answered correctly (0 when the quiz has none).

        Raises:
            NotFound: If the quiz doesn't exist
            ValidationError: If answers don't align with the questions
        """
        quiz = self.get_quiz(quiz_id, owner)

        if len(answers) != len(quiz.questions):
            raise ValidationError(
                f"Expected {len(quiz.questions)} answers, got {len(answers)}"
            )

        results = []
        for position, (question, answer) in enumerate(zip(quiz.questions, answers)):
            results.append(
                QuestionResult(
                    position=position,
                    user_answer=None if answer is None else str(answer),
                    correct_answer=question.correct_answer,
                    is_correct=grade_answer(question, answer),
                    explanation=question.explanation,
                )
            )

        graded = [r for r in results if r.is_correct is not None]
        correct = sum(1 for r in graded if r.is_correct)
        score = round(correct / len(graded) * 100) if graded else 0
        finished_at = _utcnow()

        conn = self.database.get_connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO attempts (
                    owner, quiz_id, score, answers_json, results_json,
                    started_at, finished_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    owner,
                    quiz_id,
                    score,
                    json.dumps(list(answers)),
                    json.dumps([r.model_dump() for r in results]),
                    started_at,
                    finished_at,
                ),
            )
            conn.commit()
            attempt_id = cursor.lastrowid
        except sqlite3.Error as e:
            conn.rollback()
            logger.error("attempt_insert_failed", error=str(e), quiz_id=quiz_id)
            raise
        finally:
            conn.close()

        logger.info(
            "attempt_recorded",
            attempt_id=attempt_id,
            quiz_id=quiz_id,
            score=score,
            graded=len(graded),
        )

        return Attempt(
            id=attempt_id,
            quiz_id=quiz_id,
            owner=owner,
            answers=list(answers),
            results=results,
            score=score,
            started_at=started_at,
            finished_at=finished_at,
        )

    def list_attempts(self, quiz_id: int, owner: Optional[str] = None) -> List[Attempt]:
        """Attempts for a quiz, most recent first."""
        conn = self.database.get_connection()
        try:
            params: List[Any] = [quiz_id]
            sql = "SELECT * FROM attempts WHERE quiz_id = ?"
            if owner is not None:
                sql += " AND owner = ?"
                params.append(owner)
            rows = conn.execute(sql + " ORDER BY id DESC", params).fetchall()
        finally:
            conn.close()

        return [
            Attempt(
                id=row["id"],
                quiz_id=row["quiz_id"],
                owner=row["owner"],
                answers=json.loads(row["answers_json"]),
                results=[QuestionResult(**r) for r in json.loads(row["results_json"])],
                score=row["score"],
                started_at=row["started_at"],
                finished_at=row["finished_at"],
            )
            for row in rows
        ]
