"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("STUDYMATE_DATA_DIR", str(BASE_DIR / "data")))

# Provider configuration (OpenAI-compatible API, OpenRouter by default)
OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")
OPENROUTER_SITE_URL = os.getenv("OPENROUTER_SITE_URL", "http://localhost")
APP_TITLE = os.getenv("APP_TITLE", "StudyMate-AI")
CHAT_MODEL = os.getenv("OPENROUTER_CHAT_MODEL", "openai/gpt-3.5-turbo")

# Embeddings: configured primary first, then the fixed fallbacks
EMBEDDING_MODEL = os.getenv("OPENROUTER_EMBED_MODEL", "")
EMBEDDING_FALLBACK_MODELS = [
    "openai/text-embedding-3-small",
    "openai/text-embedding-3-large",
    "voyage/voyage-3-lite-embedding",
]

# Segmentation parameters (word-based windows)
CHUNK_WORDS = int(os.getenv("CHUNK_WORDS", "500"))
CHUNK_OVERLAP_WORDS = int(os.getenv("CHUNK_OVERLAP_WORDS", "100"))

# Retrieval
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "4"))
SNIPPET_CHARS = int(os.getenv("SNIPPET_CHARS", "200"))

# Timeouts and concurrency
PROVIDER_TIMEOUT = float(os.getenv("PROVIDER_TIMEOUT", "60.0"))
EMBEDDING_TIMEOUT = float(os.getenv("EMBEDDING_TIMEOUT", "30.0"))
INGEST_CONCURRENCY = int(os.getenv("INGEST_CONCURRENCY", "4"))

# Generation parameters
ANSWER_TEMPERATURE = float(os.getenv("ANSWER_TEMPERATURE", "0.7"))
ANSWER_MAX_TOKENS = int(os.getenv("ANSWER_MAX_TOKENS", "500"))
QUIZ_TEMPERATURE = float(os.getenv("QUIZ_TEMPERATURE", "0.8"))
QUIZ_MAX_TOKENS = int(os.getenv("QUIZ_MAX_TOKENS", "2000"))
QUIZ_SEED_QUERY = os.getenv(
    "QUIZ_SEED_QUERY", "key concepts laws principles definitions formulas"
)
QUIZ_MAX_PASSAGES = int(os.getenv("QUIZ_MAX_PASSAGES", "20"))

# Chat sessions
CHAT_TEMPERATURE = float(os.getenv("CHAT_TEMPERATURE", "0.7"))
CHAT_MAX_TOKENS = int(os.getenv("CHAT_MAX_TOKENS", "300"))
CHAT_CONTEXT_TOP_K = int(os.getenv("CHAT_CONTEXT_TOP_K", "3"))
CHAT_HISTORY_MESSAGES = int(os.getenv("CHAT_HISTORY_MESSAGES", "6"))

# Database
DB_PATH = DATA_DIR / "studymate.sqlite"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
