"""Chat session and message persistence."""
from studymate.memory.manager import ChatMessage, ChatSession, ConversationManager

__all__ = ["ChatMessage", "ChatSession", "ConversationManager"]
