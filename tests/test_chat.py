"""Tests for chat sessions and grounded chat replies."""
import asyncio

import pytest

from conftest import PHYSICS_TEXT, FakeProviderClient
from studymate.errors import NotFound, ProviderUnavailable, ValidationError
from studymate.rag.chat import CHAT_SYSTEM_PROMPT, build_chat_prompt


def test_create_chat_defaults_title(service):
    chat = service.create_chat(owner="alice")

    assert chat.title.startswith("Chat ")
    assert chat.owner == "alice"
    assert service.get_chat_messages(chat.id, owner="alice") == []


def test_chats_are_listed_per_owner_newest_first(service):
    older = service.create_chat("Kinematics", owner="alice")
    newer = service.create_chat("Optics", owner="alice")
    service.create_chat("Theirs", owner="bob")

    assert [c.id for c in service.list_chats(owner="alice")] == [newer.id, older.id]
    assert len(service.list_chats()) == 3
    with pytest.raises(NotFound):
        service.get_chat_messages(older.id, owner="bob")


def test_message_without_documents_skips_retrieval(service, fake_client):
    chat = service.create_chat()

    reply = asyncio.run(service.send_message(chat.id, "How should I revise?"))

    assert reply.message == fake_client.chat_reply
    assert not reply.used_context
    assert fake_client.embedding_calls == []
    call = fake_client.chat_calls[0]
    assert call["system"] == CHAT_SYSTEM_PROMPT
    assert call["user"] == "Student question: How should I revise?"
    assert call["history"] == []


def test_message_with_documents_uses_top_passages(service, fake_client):
    doc_id = service.register_document("Physics Notes", 3)
    asyncio.run(service.ingest_document(PHYSICS_TEXT, 3, doc_id))
    assert service.store.count_passages(doc_id) > 3
    chat = service.create_chat()

    reply = asyncio.run(service.send_message(chat.id, "momentum of a moving body", doc_ids=[doc_id]))

    assert reply.used_context
    assert len(reply.citations) == 3
    assert all(c.doc_id == doc_id for c in reply.citations)
    prompt = fake_client.chat_calls[0]["user"]
    assert prompt.startswith("Context: [Physics Notes, p.")
    assert prompt.endswith("Student question: momentum of a moving body")

    user_msg, assistant_msg = service.get_chat_messages(chat.id)
    assert (user_msg.role, assistant_msg.role) == ("user", "assistant")
    assert [s["snippet"] for s in assistant_msg.sources] == [c.snippet for c in reply.citations]


def test_earlier_turns_are_sent_as_history(service, fake_client):
    chat = service.create_chat()
    asyncio.run(service.send_message(chat.id, "What is momentum?"))

    asyncio.run(service.send_message(chat.id, "And impulse?"))

    assert fake_client.chat_calls[1]["history"] == [
        {"role": "user", "content": "What is momentum?"},
        {"role": "assistant", "content": fake_client.chat_reply},
    ]
    assert len(service.get_chat_messages(chat.id)) == 4


def test_history_is_limited_to_recent_messages(service, fake_client):
    chat = service.create_chat()
    service.conversations.context_window_size = 2
    for n in range(3):
        asyncio.run(service.send_message(chat.id, f"question {n}"))

    history = fake_client.chat_calls[-1]["history"]

    assert [m["content"] for m in history] == ["question 1", fake_client.chat_reply]


def test_blank_message_is_rejected(service):
    chat = service.create_chat()

    with pytest.raises(ValidationError):
        asyncio.run(service.send_message(chat.id, "   "))
    assert service.get_chat_messages(chat.id) == []


def test_unknown_chat_raises_not_found(service, fake_client):
    with pytest.raises(NotFound):
        asyncio.run(service.send_message(999, "hello"))
    assert fake_client.chat_calls == []


def test_provider_failure_keeps_user_message(make_service):
    client = FakeProviderClient(chat_error=ProviderUnavailable("down", attempts=["m"]))
    service = make_service(client)
    chat = service.create_chat()

    with pytest.raises(ProviderUnavailable):
        asyncio.run(service.send_message(chat.id, "Explain heat flow"))

    messages = service.get_chat_messages(chat.id)
    assert [(m.role, m.content) for m in messages] == [("user", "Explain heat flow")]


def test_delete_chat_removes_messages(service):
    chat = service.create_chat(owner="alice")
    asyncio.run(service.send_message(chat.id, "What is work?", owner="alice"))

    with pytest.raises(NotFound):
        service.delete_chat(chat.id, owner="bob")

    assert service.delete_chat(chat.id, owner="alice") == 2
    assert service.list_chats(owner="alice") == []
    with pytest.raises(NotFound):
        service.get_chat_messages(chat.id)
    with pytest.raises(NotFound):
        service.delete_chat(chat.id)


def test_build_chat_prompt_without_context():
    assert build_chat_prompt("Why?") == "Student question: Why?"
    assert build_chat_prompt("Why?", "[A, p.1]: \"x\"") == "Context: [A, p.1]: \"x\"\n\nStudent question: Why?"
