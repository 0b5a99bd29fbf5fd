"""End-to-end tests for answer_query with every upstream mocked."""

from unittest.mock import MagicMock

import pytest

from conftest import hit
from legal_rag.config import settings
from legal_rag.generation import GeneratedAnswer
from legal_rag.pipeline import NO_CONTEXT_ANSWER, answer_query
from legal_rag.router import REFUSAL_ANSWER, GateDecision

ANSWER = (
    "1. Miranda warnings are required before custodial interrogation "
    "[Source: Miranda Guide, Section: When Required]."
)


@pytest.fixture
def gate(monkeypatch):
    decision = MagicMock(return_value=GateDecision("YES"))
    monkeypatch.setattr("legal_rag.pipeline.classify_query", decision)
    return decision


@pytest.fixture
def record(monkeypatch):
    mock = MagicMock(return_value="42")
    monkeypatch.setattr("legal_rag.pipeline.record_query", mock)
    return mock


@pytest.fixture
def channels(monkeypatch, fake_session_scope):
    """vector [c1, c3], lexical [c3, c2]."""
    monkeypatch.setattr("legal_rag.retrieval.session_scope", fake_session_scope)
    monkeypatch.setattr("legal_rag.retrieval.embed_query", lambda q: [0.1] * 4)
    monkeypatch.setattr(
        "legal_rag.retrieval.vector_search",
        lambda db, emb, k: [hit(1, 0.91, title="c1"), hit(3, 0.77, title="c3")],
    )
    monkeypatch.setattr(
        "legal_rag.retrieval.lexical_search",
        lambda db, q, k: [hit(3, title="c3"), hit(2, title="c2")],
    )


@pytest.fixture
def generator(monkeypatch):
    mock = MagicMock(return_value=GeneratedAnswer(text=ANSWER, tokens_used=321))
    monkeypatch.setattr("legal_rag.pipeline.generate_answer", mock)
    return mock


def test_miranda_query_with_rerank_unavailable(monkeypatch, make_chat_client, gate, record, channels, generator):
    """Rerank times out, so the fused order c3, c1, c2 reaches the answer."""
    # Arrange
    client = make_chat_client(error=TimeoutError("rerank timed out"))
    monkeypatch.setattr("legal_rag.reranker.get_client", lambda: client)

    # Act
    resp = answer_query("What are the Miranda requirements?", user_id="officer-1")

    # Assert
    assert resp.answer == ANSWER
    assert [s.title for s in resp.sources] == ["c3", "c1", "c2"]
    assert [s.similarity for s in resp.sources] == [pytest.approx(0.77), pytest.approx(0.91), None]
    assert resp.query_id == "42"
    assert 0.0 <= resp.confidence <= 1.0
    client.chat.completions.create.assert_called_once()

    logged = record.call_args.kwargs
    assert logged["classification"] == "YES"
    assert logged["tokens_used"] == 321
    assert logged["chunks_processed"] == 3
    assert logged["user_id"] == "officer-1"


def test_rerank_order_is_used_for_generation(monkeypatch, make_chat_client, gate, record, channels, generator):
    client = make_chat_client('{"ranked_ids": ["2", "1", "3"]}')
    monkeypatch.setattr("legal_rag.reranker.get_client", lambda: client)

    resp = answer_query("q")

    assert [s.title for s in resp.sources] == ["c2", "c1", "c3"]
    passed = generator.call_args[0][1]
    assert [c.chunk_id for c in passed] == [2, 1, 3]


def test_reranker_disabled_skips_call(monkeypatch, make_chat_client, gate, record, channels, generator):
    client = make_chat_client('{"ranked_ids": ["2"]}')
    monkeypatch.setattr("legal_rag.reranker.get_client", lambda: client)
    monkeypatch.setattr(settings, "RERANKER_ENABLED", False)

    resp = answer_query("q")

    client.chat.completions.create.assert_not_called()
    assert [s.title for s in resp.sources] == ["c3", "c1", "c2"]


def test_rejected_query_gets_refusal_without_retrieval(monkeypatch, record, generator):
    monkeypatch.setattr("legal_rag.pipeline.classify_query", MagicMock(return_value=GateDecision("NO")))
    search = MagicMock()
    monkeypatch.setattr("legal_rag.pipeline.hybrid_search", search)

    resp = answer_query("What's the weather?")

    assert resp.answer == REFUSAL_ANSWER
    assert resp.confidence == 1.0
    assert resp.sources == []
    assert resp.query_id is None
    search.assert_not_called()
    generator.assert_not_called()
    record.assert_not_called()


def test_no_candidates_returns_no_context_answer(monkeypatch, gate, record, generator):
    monkeypatch.setattr("legal_rag.pipeline.hybrid_search", lambda q, k: [])

    resp = answer_query("q")

    assert resp.answer == NO_CONTEXT_ANSWER
    assert resp.confidence == 0.0
    assert resp.query_id == "42"
    generator.assert_not_called()


def test_generation_failure_degrades_to_refusal(monkeypatch, make_chat_client, gate, record, channels):
    monkeypatch.setattr("legal_rag.reranker.get_client", lambda: make_chat_client(error=TimeoutError()))
    monkeypatch.setattr(
        "legal_rag.pipeline.generate_answer", MagicMock(side_effect=ConnectionError("model unavailable"))
    )

    resp = answer_query("q")

    assert resp.answer == REFUSAL_ANSWER
    assert resp.query_id is None


def test_log_write_failure_still_answers(monkeypatch, make_chat_client, gate, channels, generator):
    monkeypatch.setattr("legal_rag.reranker.get_client", lambda: make_chat_client(error=TimeoutError()))
    monkeypatch.setattr("legal_rag.pipeline.record_query", MagicMock(return_value=None))

    resp = answer_query("q")

    assert resp.answer == ANSWER
    assert resp.query_id is None


def test_cached_answer_skips_retrieval(monkeypatch, gate, record, generator):
    cached = {"answer": "cached", "sources": [], "confidence": 0.7, "query_id": "9"}
    monkeypatch.setattr("legal_rag.pipeline.get_cached_response", lambda q: cached)
    search = MagicMock()
    monkeypatch.setattr("legal_rag.pipeline.hybrid_search", search)

    resp = answer_query("q", user_id="officer-2")

    assert resp.answer == "cached"
    search.assert_not_called()
    generator.assert_not_called()


def test_cached_answer_gets_its_own_log_entry(monkeypatch, gate, record):
    """A cache hit never hands back the id of the request that filled the cache."""
    # Arrange
    cached = {"answer": "cached", "sources": [{"title": "Doc"}], "confidence": 0.7, "query_id": "9"}
    monkeypatch.setattr("legal_rag.pipeline.get_cached_response", lambda q: cached)

    # Act
    resp = answer_query("q", user_id="officer-2")

    # Assert
    assert resp.query_id == "42"
    record.assert_called_once()
    logged = record.call_args.kwargs
    assert logged["answer"] == "cached"
    assert logged["user_id"] == "officer-2"
    assert logged["sources"][0]["title"] == "Doc"


def test_cached_answer_with_failed_log_write_has_no_id(monkeypatch, gate):
    cached = {"answer": "cached", "sources": [], "confidence": 0.7, "query_id": "9"}
    monkeypatch.setattr("legal_rag.pipeline.get_cached_response", lambda q: cached)
    monkeypatch.setattr("legal_rag.pipeline.record_query", MagicMock(return_value=None))

    assert answer_query("q").query_id is None
