"""Pytest configuration and fixtures."""
import asyncio
import random
from typing import Callable, List, Optional

import httpx
import pytest

from studymate.rag.segmenter import TextSegmenter
from studymate.rag.store import StoredPassage
from studymate.service import StudyService


VOCAB = ["force", "mass", "energy", "momentum", "velocity", "heat", "light", "wave"]

PHYSICS_TEXT = (
    "Force equals mass times acceleration in classical mechanics. "
    "Momentum is the product of mass and velocity for a moving body. "
    "Energy can neither be created nor destroyed in an isolated system. "
    "Heat flows spontaneously from a hotter body to a colder body. "
    "Light behaves both as a particle and as a wave in experiments. "
    "A wave transports energy without transporting matter along its path. "
    "Velocity describes both the speed and the direction of motion. "
    "Friction opposes the relative motion between two surfaces in contact. "
    "Gravity attracts every mass in the universe toward every other mass. "
    "Work is done when a force moves an object through a distance."
)


def bag_of_words(text: str) -> List[float]:
    """Deterministic toy embedding: vocabulary counts plus a constant bias."""
    lowered = text.lower()
    return [float(lowered.count(word)) for word in VOCAB] + [0.5]


class FakeProviderClient:
    """Stands in for ProviderClient and records every call."""

    def __init__(
        self,
        chat_reply: str = 'The answer. [Physics Notes] p.1: "Force equals mass"',
        chat_error: Optional[Exception] = None,
        failing_models=(),
        embed_fn: Callable[[str], list] = bag_of_words,
        fail_when: Optional[Callable[[str], bool]] = None,
        delay_fn: Optional[Callable[[str], float]] = None,
    ):
        self.chat_reply = chat_reply
        self.chat_error = chat_error
        self.failing_models = set(failing_models)
        self.embed_fn = embed_fn
        self.fail_when = fail_when
        self.delay_fn = delay_fn
        self.chat_calls = []
        self.embedding_calls = []

    async def chat(self, system_prompt, user_prompt, model=None, temperature=None,
                   max_tokens=None, timeout=None, history=None):
        self.chat_calls.append({
            "system": system_prompt,
            "user": user_prompt,
            "model": model,
            "history": list(history or []),
        })
        if self.chat_error is not None:
            raise self.chat_error
        return self.chat_reply

    async def embeddings(self, text, model, timeout=None):
        self.embedding_calls.append((model, text))
        if self.delay_fn is not None:
            await asyncio.sleep(self.delay_fn(text))
        if model in self.failing_models:
            raise httpx.ConnectError(f"{model} unreachable")
        if self.fail_when is not None and self.fail_when(text):
            raise httpx.ReadTimeout(f"{model} timed out")
        return self.embed_fn(text)

    async def aclose(self):
        pass


@pytest.fixture
def fake_client() -> FakeProviderClient:
    return FakeProviderClient()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "studymate-test.sqlite"


@pytest.fixture
def small_segmenter() -> TextSegmenter:
    """Small windows so PHYSICS_TEXT spans several chunks."""
    return TextSegmenter(window_words=20, overlap_words=5)


@pytest.fixture
def make_service(db_path, small_segmenter):
    """Factory building a StudyService around a given fake client."""

    def _make(client: FakeProviderClient, seed: int = 42) -> StudyService:
        return StudyService(
            client=client,
            db_path=db_path,
            rng=random.Random(seed),
            embedding_models=["test/embed-primary"],
            segmenter=small_segmenter,
        )

    return _make


@pytest.fixture
def service(make_service, fake_client) -> StudyService:
    return make_service(fake_client)


@pytest.fixture
def physics_passages() -> List[StoredPassage]:
    """Two passages from one document, as the store would return them."""
    sentences = PHYSICS_TEXT.split(". ")
    return [
        StoredPassage(
            id=1, doc_id=1, doc_title="Physics Notes", page_no=1,
            text=". ".join(sentences[:5]) + ".", vector=[1.0, 0.0], chunk_index=1,
        ),
        StoredPassage(
            id=2, doc_id=1, doc_title="Physics Notes", page_no=2,
            text=". ".join(sentences[5:]), vector=[0.0, 1.0], chunk_index=2,
        ),
    ]
