"""Document ingestion worker driven by the processing job queue.

Each invocation handles at most one job: claim it, chunk and embed the referenced
document, store the chunks, then report completion. Any failure marks the
document failed, records the error on the job with fail_job, and re-raises so
the invoking scheduler sees it. There is no poll loop; cron, a queue trigger or
an operator re-invokes the worker.

Main functions:
- register_document: store a document (deduplicated by content hash) and enqueue it
- ingest_document: chunk, embed and persist one document
- process_job: run one already-claimed job to completion or failure
- process_next_job: claim + process_job

Usage:
  python -m legal_rag.ingestion.worker process [--worker-id ID] [--job-types a,b]
  python -m legal_rag.ingestion.worker enqueue --document-id 42
  python -m legal_rag.ingestion.worker cleanup [--action reset|delete] [--max-attempts 3]
  python -m legal_rag.ingestion.worker release-stale [--lease-seconds 900]
"""
from __future__ import annotations

import argparse
import logging
import os
import socket
import time
import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from legal_rag.config import settings
from legal_rag.db import init_db, session_scope
from legal_rag.embedding import embed_texts
from legal_rag.errors import DocumentNotFoundError, EmptyDocumentError, IngestionError
from legal_rag.ingestion.chunking import chunk_legal_document, content_hash
from legal_rag.jobs import (
    claim_next_job,
    cleanup_failed_jobs,
    complete_job,
    enqueue_job,
    fail_job,
    release_stale_jobs,
)
from legal_rag.models import Chunk, Document, IngestionStatus, JobType, ProcessingJob
from legal_rag.obs import configure_logging

logger = logging.getLogger(__name__)


def default_worker_id() -> str:
    return f"ingest-{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:8]}"


def register_document(
    db: Session,
    title: str,
    content: str,
    category: Optional[str] = None,
    content_type: str = "markdown",
) -> Tuple[Document, bool]:
    """Store a document and enqueue its processing job, unless it is a duplicate.

    Returns:
        Tuple[Document, bool]: The document and whether it was newly created.
    """
    digest = content_hash(content)
    existing = db.execute(select(Document).where(Document.content_hash == digest)).scalar_one_or_none()
    if existing is not None:
        logger.info("Duplicate document (hash=%s) matches document %s", digest[:12], existing.id)
        return existing, False

    doc = Document(
        title=title,
        category=category,
        content=content,
        content_type=content_type,
        content_hash=digest,
        ingestion_status=IngestionStatus.PENDING,
    )
    db.add(doc)
    db.flush()
    enqueue_job(db, JobType.DOCUMENT_PROCESSING, {"document_id": doc.id})
    return doc, True


def _set_status(document_id: int, status: IngestionStatus) -> None:
    with session_scope() as db:
        doc = db.get(Document, document_id)
        if doc is not None:
            doc.ingestion_status = status


def _embed_in_batches(texts: Sequence[str]) -> List[List[float]]:
    batch = max(1, settings.EMBEDDING_BATCH_SIZE)
    vectors: List[List[float]] = []
    for i in range(0, len(texts), batch):
        logger.debug("Embedding batch %d/%d", i // batch + 1, -(-len(texts) // batch))
        vectors.extend(embed_texts(list(texts[i : i + batch])))
    return vectors


def ingest_document(document_id: int) -> Dict[str, Any]:
    """Chunk, embed and store one document, replacing any earlier chunks.

    Args:
        document_id: Primary key of the document.

    Returns:
        Dict[str, Any]: {document_id, chunks_created, message}.

    Raises:
        DocumentNotFoundError, EmptyDocumentError, IngestionError, or any upstream error.
    """
    t0 = time.time()
    with session_scope() as db:
        doc = db.get(Document, document_id)
        if doc is None:
            raise DocumentNotFoundError(document_id)
        if not doc.content or not doc.content.strip():
            raise EmptyDocumentError(document_id)
        doc.ingestion_status = IngestionStatus.PROCESSING
        content, content_type = doc.content, doc.content_type
        base_meta = {"document_id": doc.id, "document_title": doc.title, "category": doc.category}

    drafts = chunk_legal_document(content, base_meta, settings.CHUNK_MAX_CHARS, content_type)
    if not drafts:
        raise IngestionError("Chunking produced no chunks", {"document_id": document_id})
    logger.info("Document %s => %d chunks", document_id, len(drafts))

    embeddings = _embed_in_batches([d.text for d in drafts])

    with session_scope() as db:
        # A reset job may re-run a document; chunks are replaced as a whole
        db.execute(delete(Chunk).where(Chunk.document_id == document_id))
        for draft, emb in zip(drafts, embeddings):
            db.add(
                Chunk(
                    document_id=document_id,
                    chunk_index=draft.metadata["chunk_index"],
                    content=draft.text,
                    metadata_=draft.metadata,
                    embedding=emb,
                )
            )
        doc = db.get(Document, document_id)
        doc.ingestion_status = IngestionStatus.COMPLETED
        doc.chunked = True

    logger.info("Ingested document %s: %d chunks in %.1fs", document_id, len(drafts), time.time() - t0)
    return {
        "document_id": document_id,
        "chunks_created": len(drafts),
        "message": "Document processed successfully",
    }


def process_job(job: ProcessingJob) -> Dict[str, Any]:
    """Run one claimed job and report the outcome to the queue.

    Every path ends in complete_job or fail_job; failures are re-raised. When
    complete_job is ignored (the job was released as stale meanwhile) the result
    carries `job_completion_ignored: True`.
    """
    document_id = (job.job_data or {}).get("document_id")
    try:
        if not document_id:
            raise IngestionError("No document ID in job data", {"job_id": job.id})
        result = ingest_document(int(document_id))
        with session_scope() as db:
            completed = complete_job(db, job.id, result, worker_id=job.worker_id)
        if not completed:
            # Lease expired or an operator moved the job; its failed status stands
            logger.warning("Job %s finished but completion was ignored; job stays failed", job.id)
            result = dict(result, job_completion_ignored=True)
        return result
    except Exception as e:
        logger.exception("Job %s failed", job.id)
        if document_id:
            try:
                _set_status(int(document_id), IngestionStatus.FAILED)
            except Exception:
                logger.exception("Could not mark document %s failed", document_id)
        try:
            with session_scope() as db:
                fail_job(db, job.id, str(e), worker_id=job.worker_id)
        except Exception:
            logger.exception("Could not record failure for job %s", job.id)
        raise


def process_next_job(
    worker_id: Optional[str] = None, job_types: Optional[Sequence[str]] = None
) -> Optional[Dict[str, Any]]:
    """Claim and process one job.

    Returns:
        Optional[Dict[str, Any]]: {job_id, document_id, result}, or None when no job
        was available.
    """
    worker_id = worker_id or default_worker_id()
    types = list(job_types) if job_types else settings.worker_job_types
    with session_scope() as db:
        job = claim_next_job(db, worker_id, types)
    if job is None:
        logger.info("No jobs available for processing")
        return None

    result = process_job(job)
    return {"job_id": job.id, "document_id": (job.job_data or {}).get("document_id"), "result": result}


def main():
    parser = argparse.ArgumentParser(description="Ingestion queue worker and operator commands.")
    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity (default: settings.LOG_LEVEL)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_process = sub.add_parser("process", help="Claim and process one job")
    p_process.add_argument("--worker-id", default=None)
    p_process.add_argument("--job-types", default=settings.WORKER_JOB_TYPES, help="Comma separated")

    p_enqueue = sub.add_parser("enqueue", help="Queue a document for processing")
    p_enqueue.add_argument("--document-id", type=int, required=True)

    p_cleanup = sub.add_parser("cleanup", help="Reset or delete failed jobs")
    p_cleanup.add_argument("--action", choices=["reset", "delete"], default="reset")
    p_cleanup.add_argument("--job-types", default=None, help="Comma separated")
    p_cleanup.add_argument("--error-contains", default=None)
    p_cleanup.add_argument("--max-attempts", type=int, default=None)

    p_release = sub.add_parser("release-stale", help="Fail jobs whose lease expired")
    p_release.add_argument("--lease-seconds", type=int, default=settings.JOB_LEASE_SECONDS)

    args = parser.parse_args()
    configure_logging(args.log_level)
    init_db()

    if args.command == "process":
        types = [t.strip() for t in args.job_types.split(",") if t.strip()]
        outcome = process_next_job(args.worker_id, types)
        if outcome is None:
            print("[WORKER] No jobs available")
        else:
            print(f"[WORKER] job {outcome['job_id']} -> {outcome['result']['chunks_created']} chunks")
    elif args.command == "enqueue":
        with session_scope() as db:
            job = enqueue_job(db, JobType.DOCUMENT_PROCESSING, {"document_id": args.document_id})
            job_id = job.id
        print(f"[ENQUEUE] document {args.document_id} -> job {job_id}")
    elif args.command == "cleanup":
        types = [t.strip() for t in args.job_types.split(",")] if args.job_types else None
        with session_scope() as db:
            n = cleanup_failed_jobs(
                db,
                action=args.action,
                job_types=types,
                error_contains=args.error_contains,
                max_attempts=args.max_attempts,
            )
        print(f"[CLEANUP] {args.action}: {n} jobs")
    elif args.command == "release-stale":
        with session_scope() as db:
            n = release_stale_jobs(db, args.lease_seconds)
        print(f"[RELEASE] {n} stale jobs failed")


if __name__ == "__main__":
    main()
