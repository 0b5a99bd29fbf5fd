"""
Shared test fixtures and configuration for the test suite.

Provides: SQLite-backed session factory patched into legal_rag.db, sample
retrieval hits, and OpenAI chat client mocks.
Dependencies: pytest, sqlalchemy, unittest.mock
System role: Test infrastructure; no network, Redis, Postgres or Langfuse needed
"""

import os

# Must be set before legal_rag.config builds its settings
os.environ.setdefault("RUNNING_IN_DOCKER", "1")
os.environ.setdefault("CACHE_ENABLED", "false")
os.environ.setdefault("OPENAI_API_KEY", "sk-test")
os.environ.setdefault("LANGFUSE_HOST", "")

from contextlib import contextmanager
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import legal_rag.db as db_module
from legal_rag import models  # noqa: F401  (registers tables)
from legal_rag.db import Base
from legal_rag.fusion import RankedCandidate, SearchHit


@pytest.fixture
def sqlite_sessions(tmp_path, monkeypatch):
    """
    File-backed SQLite database with all tables, patched in as SessionLocal.

    A file (not :memory:) so that several threads can hold their own
    connections in concurrency tests.

    Yields:
        sessionmaker: Factory bound to the test engine.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'legal_rag_test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        future=True,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(
        autocommit=False, autoflush=False, expire_on_commit=False, bind=engine, future=True
    )
    monkeypatch.setattr(db_module, "SessionLocal", factory)
    yield factory
    engine.dispose()


@pytest.fixture
def fake_session_scope():
    """Context manager replacing session_scope with a MagicMock session."""
    session = MagicMock()

    @contextmanager
    def _scope():
        yield session

    _scope.session = session
    return _scope


def chat_response(content, total_tokens: int = 0):
    """Build an object shaped like an OpenAI chat completion response."""
    message = SimpleNamespace(content=content)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message)],
        usage=SimpleNamespace(total_tokens=total_tokens),
    )


@pytest.fixture
def make_chat_client():
    """Factory for a mock OpenAI client whose completion returns `content` or raises."""

    def _make(content=None, error: Exception | None = None, total_tokens: int = 0):
        client = MagicMock()
        if error is not None:
            client.chat.completions.create.side_effect = error
        else:
            client.chat.completions.create.return_value = chat_response(content, total_tokens)
        return client

    return _make


def hit(chunk_id: int, similarity=None, title: str | None = None) -> SearchHit:
    return SearchHit(
        chunk_id=chunk_id,
        content=f"content of chunk {chunk_id}",
        metadata={"document_title": title or f"Doc {chunk_id}", "category": "criminal"},
        similarity=similarity,
    )


def candidate(chunk_id: int, content: str | None = None, score: float = 0.0) -> RankedCandidate:
    return RankedCandidate(
        chunk_id=chunk_id,
        content=content or f"content of chunk {chunk_id}",
        metadata={"document_title": f"Doc {chunk_id}"},
        fused_score=score,
    )
