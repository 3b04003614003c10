"""Chat turns over a session, optionally grounded on document passages."""
from dataclasses import asdict, dataclass, field
from typing import List, Optional, Sequence
import structlog

from studymate import config
from studymate.errors import ValidationError
from studymate.llm_client import ProviderClient
from studymate.memory.manager import ConversationManager
from studymate.rag.answering import Citation
from studymate.rag.retriever import Retriever, format_context

logger = structlog.get_logger()


CHAT_SYSTEM_PROMPT = (
    "You are StudyMate, an educational assistant for students. Help them understand "
    "concepts from their course material, answer questions, and provide study guidance. "
    "Be encouraging and clear in your explanations."
)


@dataclass
class ChatReply:
    """Assistant reply for one chat turn."""

    chat_id: int
    message: str
    citations: List[Citation] = field(default_factory=list)

    @property
    def used_context(self) -> bool:
        return bool(self.citations)


def build_chat_prompt(message: str, context: str = "") -> str:
    """Build the user prompt for a chat turn."""
    if context:
        return f"Context: {context}\n\nStudent question: {message}"
    return f"Student question: {message}"


class ChatResponder:
    """Answers chat messages with session history and optional document context."""

    def __init__(
        self,
        retriever: Retriever,
        client: ProviderClient,
        conversations: ConversationManager,
        model: str = None,
        temperature: float = None,
        max_tokens: int = None,
        top_k: int = None,
    ):
        self.retriever = retriever
        self.client = client
        self.conversations = conversations
        self.model = model or config.CHAT_MODEL
        self.temperature = temperature if temperature is not None else config.CHAT_TEMPERATURE
        self.max_tokens = max_tokens or config.CHAT_MAX_TOKENS
        self.top_k = top_k or config.CHAT_CONTEXT_TOP_K

    async def send_message(
        self,
        chat_id: int,
        message: str,
        doc_ids: Optional[Sequence[int]] = None,
        owner: Optional[str] = None,
    ) -> ChatReply:
        """Store a user message and the assistant's reply to it.

        The user message is stored before the provider is called, so it
        survives a failed generation.

        Args:
            chat_id: Session to post to
            message: User message text
            doc_ids: Documents to draw context from (no retrieval when empty)
            owner: Session owner, checked when given

        Returns:
            ChatReply with the citations of any context passages used

        Raises:
            ValidationError: On an empty message
            NotFound: If the session doesn't exist for the owner
            ProviderUnavailable: If embedding or generation failed
        """
        if not message or not message.strip():
            raise ValidationError("Message is required")

        self.conversations.get_session(chat_id, owner)

        history = self.conversations.format_conversation_history(chat_id)
        self.conversations.add_message(chat_id, "user", message)

        passages = []
        if doc_ids:
            passages = await self.retriever.search(message, doc_ids=doc_ids, top_k=self.top_k)

        reply_text = await self.client.chat(
            CHAT_SYSTEM_PROMPT,
            build_chat_prompt(message, format_context(passages)),
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            history=history,
        )

        citations = [Citation.from_passage(p) for p in passages]
        self.conversations.add_message(
            chat_id, "assistant", reply_text, sources=[asdict(c) for c in citations]
        )

        logger.info(
            "chat_response_generated",
            chat_id=chat_id,
            used_context=bool(citations),
            history_messages=len(history),
            reply_length=len(reply_text),
        )

        return ChatReply(chat_id=chat_id, message=reply_text, citations=citations)
