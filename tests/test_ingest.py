"""Tests for ingestion, the passage store and scoped retrieval."""
import asyncio
import time

import pytest

from conftest import PHYSICS_TEXT, FakeProviderClient, bag_of_words
from studymate.errors import NotFound, ProviderUnavailable, ValidationError
from studymate.db import Database
from studymate.rag.store import PassageRecord, VectorStore


def test_ingest_stores_one_passage_per_chunk(service, fake_client, small_segmenter):
    doc_id = service.register_document("Physics Notes", 3)
    expected = small_segmenter.segment(PHYSICS_TEXT, 3)

    result = asyncio.run(service.ingest_document(PHYSICS_TEXT, 3, doc_id))

    assert result.status == "ok"
    assert result.chunks_stored == len(expected)
    assert len(fake_client.embedding_calls) == len(expected)
    assert service.store.count_passages(doc_id) == len(expected)


def test_reingest_is_a_no_op(service, fake_client):
    doc_id = service.register_document("Physics Notes", 3)
    first = asyncio.run(service.ingest_document(PHYSICS_TEXT, 3, doc_id))
    calls_after_first = len(fake_client.embedding_calls)

    second = asyncio.run(service.ingest_document(PHYSICS_TEXT, 3, doc_id))

    assert second.status == "already_processed"
    assert second.chunks_stored == first.chunks_stored
    assert len(fake_client.embedding_calls) == calls_after_first
    assert service.store.count_passages(doc_id) == first.chunks_stored


def test_reingest_with_different_text_keeps_stored_passages(service, fake_client, small_segmenter):
    doc_id = service.register_document("Greek Letters", 1)
    original = "alpha " * 30
    first = asyncio.run(service.ingest_document(original, 1, doc_id))
    calls_after_first = len(fake_client.embedding_calls)

    second = asyncio.run(service.ingest_document("beta " * 200, 1, doc_id))

    assert second.status == "already_processed"
    assert second.chunks_stored == first.chunks_stored
    assert len(fake_client.embedding_calls) == calls_after_first
    stored = service.store.fetch_candidates([doc_id])
    assert [p.text for p in stored] == [c.text for c in small_segmenter.segment(original, 1)]


def test_partial_failure_keeps_stored_chunks_and_resumes(make_service, small_segmenter):
    client = FakeProviderClient(fail_when=lambda text: "Gravity" in text)
    service = make_service(client)
    doc_id = service.register_document("Physics Notes", 3)
    chunks = small_segmenter.segment(PHYSICS_TEXT, 3)
    failing = [c for c in chunks if "Gravity" in c.text]
    assert failing

    with pytest.raises(ProviderUnavailable):
        asyncio.run(service.ingest_document(PHYSICS_TEXT, 3, doc_id))

    assert service.store.count_passages(doc_id) == len(chunks) - len(failing)

    client.fail_when = None
    client.embedding_calls.clear()
    result = asyncio.run(service.ingest_document(PHYSICS_TEXT, 3, doc_id))

    assert result.status == "resumed"
    assert result.chunks_stored == len(chunks)
    assert sorted(text for _, text in client.embedding_calls) == sorted(c.text for c in failing)
    assert service.store.existing_chunk_indexes(doc_id) == {c.chunk_index for c in chunks}


def test_concurrent_ingest_keeps_chunks_aligned(make_service, small_segmenter):
    # Shorter texts finish first so completion order differs from chunk order
    client = FakeProviderClient(delay_fn=lambda text: 0.001 * len(text) / 10)
    service = make_service(client)
    doc_id = service.register_document("Physics Notes", 3)

    asyncio.run(service.ingest_document(PHYSICS_TEXT, 3, doc_id))

    by_index = {c.chunk_index: c for c in small_segmenter.segment(PHYSICS_TEXT, 3)}
    stored = service.store.fetch_candidates([doc_id])

    assert [p.chunk_index for p in stored] == sorted(by_index)
    for passage in stored:
        chunk = by_index[passage.chunk_index]
        assert passage.text == chunk.text
        assert passage.page_no == chunk.estimated_page
        assert passage.vector == bag_of_words(chunk.text)


def test_empty_text_ingests_nothing(service, fake_client):
    doc_id = service.register_document("Blank", 1)

    result = asyncio.run(service.ingest_document("   ", 1, doc_id))

    assert result.status == "empty"
    assert result.chunks_stored == 0
    assert fake_client.embedding_calls == []


def test_ingest_unknown_document_raises_not_found(service):
    with pytest.raises(NotFound):
        asyncio.run(service.ingest_document(PHYSICS_TEXT, 3, 999))


def test_delete_document_removes_passages(service):
    doc_id = service.register_document("Physics Notes", 3)
    result = asyncio.run(service.ingest_document(PHYSICS_TEXT, 3, doc_id))

    removed = service.delete_document(doc_id)

    assert removed == result.chunks_stored
    assert service.store.fetch_candidates([doc_id]) == []
    with pytest.raises(NotFound):
        service.get_document(doc_id)
    with pytest.raises(NotFound):
        service.delete_document(doc_id)


def test_documents_are_listed_per_owner(service):
    service.register_document("Mine", 1, owner="alice")
    service.register_document("Theirs", 1, owner="bob")

    assert [d.title for d in service.list_documents(owner="alice")] == ["Mine"]
    assert len(service.list_documents()) == 2


def test_search_is_scoped_to_requested_documents(service):
    physics = service.register_document("Physics Notes", 3)
    optics = service.register_document("Optics", 1)
    asyncio.run(service.ingest_document(PHYSICS_TEXT, 3, physics))
    asyncio.run(service.ingest_document("Light is a wave. Light bends through lenses.", 1, optics))

    scoped = asyncio.run(service.search("light wave", doc_ids=[optics], top_k=10))
    everything = asyncio.run(service.search("light wave", top_k=50))

    assert scoped and all(p.doc_id == optics for p in scoped)
    assert {p.doc_id for p in everything} == {physics, optics}


def test_search_top_k_limits_results(service):
    doc_id = service.register_document("Physics Notes", 3)
    asyncio.run(service.ingest_document(PHYSICS_TEXT, 3, doc_id))

    results = asyncio.run(service.search("mass and force", doc_ids=[doc_id], top_k=2))

    assert len(results) == 2
    assert results[0].score >= results[1].score


def test_search_without_passages_skips_embedding(service, fake_client):
    doc_id = service.register_document("Empty", 1)

    assert asyncio.run(service.search("anything", doc_ids=[doc_id])) == []
    assert fake_client.embedding_calls == []


def test_search_rejects_blank_query(service):
    with pytest.raises(ValidationError):
        asyncio.run(service.search("   "))


def test_mixed_dimensions_are_reported(service):
    doc_id = service.register_document("Mixed", 1)
    service.store.store([
        PassageRecord(doc_id=doc_id, page_no=1, text="force mass", vector=bag_of_words("force mass"), chunk_index=1),
        PassageRecord(doc_id=doc_id, page_no=1, text="short vector", vector=[1.0, 0.0], chunk_index=2),
    ])

    with pytest.raises(ValidationError):
        asyncio.run(service.search("force", doc_ids=[doc_id]))


def test_duplicate_chunk_index_is_ignored(service):
    doc_id = service.register_document("Dupes", 1)
    record = PassageRecord(doc_id=doc_id, page_no=1, text="heat", vector=[1.0], chunk_index=1)

    assert service.store.store([record]) == 1
    assert service.store.store([record]) == 0
    assert service.store.count_passages(doc_id) == 1


def test_store_stats(service):
    doc_id = service.register_document("Physics Notes", 3)
    asyncio.run(service.ingest_document(PHYSICS_TEXT, 3, doc_id))

    stats = service.store.get_stats()

    assert stats["document_count"] == 1
    assert stats["passage_count"] == service.store.count_passages(doc_id)
    assert stats["dimensions"] == [len(bag_of_words(""))]


def test_service_stats_include_ingest_counters(service):
    doc_id = service.register_document("Physics Notes", 3)
    result = asyncio.run(service.ingest_document(PHYSICS_TEXT, 3, doc_id))

    stats = service.get_stats()

    assert stats["passage_count"] == result.chunks_stored
    assert stats["ingest"]["documents_processed"] == 1
    assert stats["ingest"]["embeddings_generated"] == result.chunks_stored
    assert stats["ingest"]["embeddings_failed"] == 0


def test_readers_are_not_blocked_by_an_open_write(service, db_path):
    doc_a = service.register_document("Being Written", 1)
    doc_b = service.register_document("Already Stored", 1)
    service.store.store([
        PassageRecord(doc_id=doc_b, page_no=1, text="heat flows", vector=[1.0, 0.0], chunk_index=1),
    ])

    writer = service.database.get_connection()
    try:
        assert writer.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        writer.execute("BEGIN EXCLUSIVE")
        writer.execute(
            """
            INSERT INTO passages (doc_id, page_no, text, embedding_json, dimension, chunk_index, created_at)
            VALUES (?, 1, 'uncommitted', '[0.0, 1.0]', 2, 1, '2024-01-01T00:00:00')
            """,
            (doc_a,),
        )

        # A short busy timeout makes a blocked read fail instead of waiting
        reader = VectorStore(Database(db_path, timeout=0.2))
        start = time.monotonic()
        scoped = reader.fetch_candidates([doc_b])
        elapsed = time.monotonic() - start

        assert [p.text for p in scoped] == ["heat flows"]
        assert elapsed < 0.2
        assert reader.fetch_candidates([doc_a]) == []
    finally:
        writer.rollback()
        writer.close()
