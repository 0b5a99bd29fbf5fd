"""Database ORM models.

Defines the persistent entities used by the query pipeline and the ingestion queue:
- Document: uploaded source text plus its ingestion status label.
- Chunk: a semantically searchable content chunk with JSON metadata and a pgvector
  embedding. Append-only; read by both retrieval channels.
- ProcessingJob: a unit of queued work claimed by exactly one worker at a time.
- QueryLog: append-only audit record of classification decisions and answers.
"""
import enum
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from pgvector.sqlalchemy import Vector

from legal_rag.db import Base
from legal_rag.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _values(enum_cls):
    return [m.value for m in enum_cls]


class IngestionStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(str, enum.Enum):
    DOCUMENT_PROCESSING = "document_processing"


class JobStatus(str, enum.Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Document(Base):
    """Source document referenced by ingestion jobs.

    The pipeline reads `content` to produce chunks and writes the ingestion status
    back. `content_hash` (SHA-256 of the content) detects duplicate uploads.
    """
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(512), nullable=False)
    category = Column(String(128), nullable=True)
    content = Column(Text, nullable=True)
    content_type = Column(String(32), nullable=False, default="markdown")  # markdown | html | text
    content_hash = Column(String(64), nullable=True, unique=True)

    ingestion_status = Column(
        Enum(IngestionStatus, native_enum=False, values_callable=_values, length=32),
        nullable=False,
        default=IngestionStatus.PENDING,
    )
    chunked = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Chunk(Base):
    """Vector-embedded document chunk used for retrieval.

    Each row carries the chunk text, hierarchical metadata (document title,
    category, H1/H2 headers, position) and an embedding vector for ANN search.
    Full-text search runs over `content` through a GIN index created in init_db.

    Notes:
        The embedding dimension is derived from settings.EMBEDDING_DIM and must
        match the embedding model configured in legal_rag.config.Settings.
    """
    __tablename__ = "chunks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    chunk_index = Column(Integer, nullable=False, default=0)  # order within a doc
    content = Column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)

    embedding = Column(Vector(dim=settings.EMBEDDING_DIM), nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_chunks_document", "document_id"),
    )


class ProcessingJob(Base):
    """Durable queue entry.

    Lifecycle: queued -> processing (atomic claim, stamps worker_id) ->
    completed | failed. Failed jobs only re-enter `queued` through the operator
    cleanup operation.
    """
    __tablename__ = "processing_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_type = Column(
        Enum(JobType, native_enum=False, values_callable=_values, length=64),
        nullable=False,
    )
    job_data = Column(JSON, nullable=False, default=dict)
    status = Column(
        Enum(JobStatus, native_enum=False, values_callable=_values, length=32),
        nullable=False,
        default=JobStatus.QUEUED,
    )
    worker_id = Column(String(128), nullable=True)
    attempts = Column(Integer, nullable=False, default=0)
    result = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)

    claimed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_jobs_status_type_created", "status", "job_type", "created_at"),
    )


class QueryLog(Base):
    """Append-only audit record; never updated after insert."""
    __tablename__ = "query_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), nullable=True)
    query = Column(Text, nullable=False)
    classification = Column(String(8), nullable=True)  # YES | NO
    answer = Column(Text, nullable=True)
    confidence = Column(Float, nullable=True)
    sources = Column(JSON, nullable=False, default=list)
    response_time_ms = Column(Integer, nullable=True)
    chunks_processed = Column(Integer, nullable=True)
    tokens_used = Column(Integer, nullable=True)
    error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
