"""Exception taxonomy shared by the ingestion, retrieval and quiz layers."""
from typing import Optional


class StudyMateError(Exception):
    """Base exception for all StudyMate errors."""

    def __init__(self, message: str, detail: Optional[str] = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class ProviderUnavailable(StudyMateError):
    """Raised when every candidate of a provider list failed."""

    def __init__(self, message: str = "Provider unavailable", attempts: Optional[list] = None):
        self.attempts = attempts or []
        detail = "; ".join(self.attempts) if self.attempts else None
        super().__init__(message=message, detail=detail)


class ParseError(StudyMateError):
    """Raised when provider output cannot be parsed into the expected structure.

    Always handled inside the quiz synthesizer.
    """


class NotFound(StudyMateError):
    """Raised when no documents, passages or quizzes match the requested scope."""


class ValidationError(StudyMateError):
    """Raised on invalid caller input or inconsistent stored vectors."""
