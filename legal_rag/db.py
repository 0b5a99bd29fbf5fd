"""Database setup and session utilities for SQLAlchemy.

This module centralizes engine/session initialization, metadata base, and helpers:
- init_db: Ensures the pgvector extension exists, creates the tables, the IVFFLAT
  index over chunks.embedding and the GIN full-text index over chunks.content.
- session_scope: Context-managed transactional scope for imperative workflows.
- get_db: FastAPI dependency to yield a per-request SQLAlchemy Session.

Configuration is read from legal_rag.config.settings.DATABASE_URL.
"""
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker, declarative_base

from legal_rag.config import settings

engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True, future=True)
# expire_on_commit=False: jobs and documents are handed across short-lived scopes
SessionLocal = sessionmaker(
    autocommit=False, autoflush=False, expire_on_commit=False, bind=engine, future=True
)
Base = declarative_base()


def init_db() -> None:
    """Initialize database extensions, tables, and search indexes.

    Ensures the pgvector extension is available, creates tables from SQLAlchemy
    metadata, then creates the vector (IVFFLAT, cosine) and lexical (GIN over
    to_tsvector('english', content)) indexes used by the two retrieval channels.

    This function is idempotent and safe to run multiple times.
    """
    with engine.connect() as conn:
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        conn.commit()

    # Import models after Base is defined
    from legal_rag import models  # noqa: F401

    Base.metadata.create_all(bind=engine)

    with engine.connect() as conn:
        conn.execute(
            text(
                """
                DO $$
                BEGIN
                    IF NOT EXISTS (
                        SELECT 1 FROM pg_indexes WHERE indexname = 'idx_chunks_embedding_ivfflat'
                    ) THEN
                        CREATE INDEX idx_chunks_embedding_ivfflat
                        ON chunks USING ivfflat (embedding vector_cosine_ops)
                        WITH (lists = 100);
                    END IF;
                END$$;
                """
            )
        )
        conn.execute(
            text(
                """
                CREATE INDEX IF NOT EXISTS idx_chunks_content_fts
                ON chunks USING gin (to_tsvector('english', content))
                """
            )
        )
        conn.commit()


@contextmanager
def session_scope():
    """Provide a transactional scope around a series of operations.

    Yields:
        Session: A SQLAlchemy session bound to the configured engine.

    Notes:
        - Commits on successful exit.
        - Rolls back and re-raises on exception.
        - Always closes the session at the end.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator:
    """FastAPI dependency that yields a SQLAlchemy Session.

    Yields:
        Session: A session tied to the current request lifecycle.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
