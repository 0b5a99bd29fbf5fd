"""Tests for the append-only query audit log."""

from contextlib import contextmanager

from sqlalchemy import select

from legal_rag.db import session_scope
from legal_rag.models import QueryLog
from legal_rag.query_log import record_query, write_failure_count


def test_record_query_inserts_row(sqlite_sessions):
    # Act
    query_id = record_query(
        query="What is OUI?",
        classification="YES",
        answer="Operating under the influence...",
        confidence=0.8,
        sources=[{"title": "OUI Manual"}],
        response_time_ms=120,
        user_id="officer-3",
        chunks_processed=5,
        tokens_used=400,
    )

    # Assert
    assert query_id is not None
    with session_scope() as db:
        row = db.execute(select(QueryLog)).scalar_one()
    assert str(row.id) == query_id
    assert row.classification == "YES"
    assert row.sources == [{"title": "OUI Manual"}]
    assert row.tokens_used == 400


def test_each_call_appends_a_new_row(sqlite_sessions):
    first = record_query(query="a", classification="NO")
    second = record_query(query="b", classification="NO")

    assert first != second
    with session_scope() as db:
        assert len(db.execute(select(QueryLog)).scalars().all()) == 2


def test_write_failure_is_counted_not_raised(monkeypatch):
    @contextmanager
    def _broken_scope():
        raise ConnectionError("database unavailable")
        yield  # pragma: no cover

    monkeypatch.setattr("legal_rag.query_log.session_scope", _broken_scope)
    before = write_failure_count()

    assert record_query(query="q", classification="YES") is None
    assert write_failure_count() == before + 1
