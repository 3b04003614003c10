"""Service facade wiring the ingestion, retrieval, chat and quiz components.

Every collaborator is constructed once here and passed by reference, so
tests can substitute the provider client or the random source.
"""
import random
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union
import structlog

from studymate.db import Database
from studymate.llm_client import ProviderClient
from studymate.memory.manager import ChatMessage, ChatSession, ConversationManager
from studymate.quiz.heuristic import HeuristicQuestionGenerator
from studymate.quiz.repository import AnswerValue, QuizRepository
from studymate.quiz.schemas import Attempt, Distribution, Quiz
from studymate.quiz.synthesizer import QuizDraft, QuizSynthesizer
from studymate.rag.answering import Answer, AnswerOrchestrator
from studymate.rag.chat import ChatReply, ChatResponder
from studymate.rag.embedder import EmbeddingGenerator
from studymate.rag.ingest import IngestPipeline, IngestResult
from studymate.rag.ranker import RankedPassage
from studymate.rag.retriever import Retriever
from studymate.rag.segmenter import TextSegmenter
from studymate.rag.store import Document, VectorStore

logger = structlog.get_logger()


class StudyService:
    """Entry point for callers: ingest, search, answer, chat and quiz."""

    def __init__(
        self,
        client: Optional[ProviderClient] = None,
        db_path: Optional[Path] = None,
        rng: Optional[random.Random] = None,
        embedding_models: Optional[Sequence[str]] = None,
        segmenter: Optional[TextSegmenter] = None,
    ):
        """Build the component graph.

        Args:
            client: Provider client for chat and embeddings (default from config)
            db_path: SQLite file (default from config)
            rng: Random source for the heuristic quiz fallback
            embedding_models: Explicit embedding candidates, overriding config
            segmenter: Text segmenter (default windows from config)
        """
        self.client = client or ProviderClient()
        self.database = Database(db_path)
        self.database.init_schema()

        self.store = VectorStore(self.database)
        if embedding_models is not None:
            self.embedder = EmbeddingGenerator(
                self.client, primary_model=embedding_models[0],
                fallback_models=embedding_models[1:],
            )
        else:
            self.embedder = EmbeddingGenerator(self.client)

        self.ingest_pipeline = IngestPipeline(self.store, self.embedder, segmenter)
        self.retriever = Retriever(self.store, self.embedder)
        self.orchestrator = AnswerOrchestrator(self.retriever, self.client)
        self.synthesizer = QuizSynthesizer(
            self.retriever, self.client, HeuristicQuestionGenerator(rng)
        )
        self.quizzes = QuizRepository(self.database)
        self.conversations = ConversationManager(self.database)
        self.chat = ChatResponder(self.retriever, self.client, self.conversations)

        logger.info("study_service_initialized", db_path=str(self.database.db_path))

    async def aclose(self) -> None:
        await self.client.aclose()

    def register_document(
        self,
        title: str,
        total_pages: int,
        storage_ref: Optional[str] = None,
        owner: Optional[str] = None,
    ) -> int:
        return self.store.register_document(title, total_pages, storage_ref, owner)

    def get_document(self, doc_id: int) -> Document:
        return self.store.get_document(doc_id)

    def list_documents(self, owner: Optional[str] = None) -> List[Document]:
        return self.store.list_documents(owner)

    def delete_document(self, doc_id: int) -> int:
        return self.store.delete_document(doc_id)

    async def ingest_document(self, text: str, total_pages: int, doc_id: int) -> IngestResult:
        return await self.ingest_pipeline.ingest_document(text, total_pages, doc_id)

    async def search(
        self,
        query: str,
        doc_ids: Optional[Sequence[int]] = None,
        top_k: Optional[int] = None,
    ) -> List[RankedPassage]:
        return await self.retriever.search(query, doc_ids=doc_ids, top_k=top_k)

    async def answer(
        self,
        query: str,
        doc_ids: Optional[Sequence[int]] = None,
        top_k: Optional[int] = None,
    ) -> Answer:
        return await self.orchestrator.answer(query, doc_ids=doc_ids, top_k=top_k)

    async def generate_quiz(
        self,
        doc_ids: Sequence[int],
        num_questions: int = 10,
        distribution: Union[Distribution, Dict[str, int], None] = None,
        owner: Optional[str] = None,
        save: bool = False,
        name: Optional[str] = None,
    ) -> Union[QuizDraft, Quiz]:
        """Generate questions for a document scope.

        Returns:
            The QuizDraft, or the stored Quiz when save is True
        """
        draft = await self.synthesizer.generate(doc_ids, num_questions, distribution)
        if save:
            return self.quizzes.save_quiz(draft, owner=owner, name=name)
        return draft

    def submit_attempt(
        self,
        quiz_id: int,
        answers: Sequence[AnswerValue],
        owner: Optional[str] = None,
        started_at: Optional[str] = None,
    ) -> Attempt:
        return self.quizzes.record_attempt(quiz_id, answers, owner, started_at)

    def create_chat(self, title: Optional[str] = None, owner: Optional[str] = None) -> ChatSession:
        return self.conversations.create_session(title, owner)

    def list_chats(self, owner: Optional[str] = None) -> List[ChatSession]:
        return self.conversations.list_sessions(owner)

    def get_chat_messages(self, chat_id: int, owner: Optional[str] = None) -> List[ChatMessage]:
        return self.conversations.get_messages(chat_id, owner)

    def delete_chat(self, chat_id: int, owner: Optional[str] = None) -> int:
        return self.conversations.delete_session(chat_id, owner)

    async def send_message(
        self,
        chat_id: int,
        message: str,
        doc_ids: Optional[Sequence[int]] = None,
        owner: Optional[str] = None,
    ) -> ChatReply:
        return await self.chat.send_message(chat_id, message, doc_ids=doc_ids, owner=owner)

    def get_stats(self) -> Dict[str, Any]:
        """Store totals plus the ingestion counters of this service."""
        return {**self.store.get_stats(), "ingest": self.ingest_pipeline.get_stats()}
