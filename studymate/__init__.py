"""StudyMate: document ingestion, retrieval-augmented answers and quiz generation."""

__version__ = "0.1.0"
