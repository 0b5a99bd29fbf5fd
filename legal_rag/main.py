"""FastAPI application entrypoint and routes.

Exposes /health, /query, and the ingestion queue triggers. Handlers are thin:
the query pipeline lives in legal_rag.pipeline and the queue in legal_rag.jobs /
legal_rag.ingestion.worker. Logging and the database schema are initialized at
startup.
"""
import logging
from typing import Dict

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from legal_rag.db import get_db, init_db
from legal_rag.ingestion.worker import process_next_job
from legal_rag.jobs import cleanup_failed_jobs, enqueue_job, job_status_counts, release_stale_jobs
from legal_rag.models import Document
from legal_rag.obs import configure_logging
from legal_rag.pipeline import answer_query
from legal_rag.schemas import (
    AffectedResponse,
    CleanupRequest,
    EnqueueRequest,
    JobResponse,
    ProcessJobResponse,
    QueryRequest,
    QueryResponse,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Legal RAG API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_credentials=True,
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    """Configure logging and ensure DB schema and indexes exist."""
    configure_logging()
    init_db()


@app.get("/health")
def health():
    """Liveness probe endpoint."""
    return {"status": "ok"}


@app.post("/query", response_model=QueryResponse)
def query(req: QueryRequest) -> QueryResponse:
    """Answer a question; upstream failures come back as the refusal answer, not a 5xx."""
    return answer_query(req.query, req.user_id)


@app.post("/jobs", response_model=JobResponse)
def create_job(req: EnqueueRequest, db: Session = Depends(get_db)) -> JobResponse:
    """Queue a document for (re)processing."""
    if db.get(Document, req.document_id) is None:
        raise HTTPException(status_code=404, detail="Document not found")
    try:
        job = enqueue_job(db, req.job_type, {"document_id": req.document_id})
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown job type: {req.job_type}")
    db.commit()
    return JobResponse(
        id=job.id,
        job_type=job.job_type.value,
        status=job.status.value,
        job_data=job.job_data,
        worker_id=job.worker_id,
        attempts=job.attempts,
        error_message=job.error_message,
    )


@app.post("/jobs/process", response_model=ProcessJobResponse)
def process_job_endpoint() -> ProcessJobResponse:
    """Claim and process at most one job. Meant to be hit by a scheduler or trigger."""
    try:
        outcome = process_next_job()
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
    if outcome is None:
        return ProcessJobResponse(message="No jobs available", processed=0)
    return ProcessJobResponse(
        message="Job processed successfully",
        processed=1,
        job_id=outcome["job_id"],
        document_id=outcome["document_id"],
        result=outcome["result"],
    )


@app.post("/jobs/cleanup", response_model=AffectedResponse)
def cleanup_jobs(req: CleanupRequest, db: Session = Depends(get_db)) -> AffectedResponse:
    try:
        affected = cleanup_failed_jobs(
            db,
            action=req.action,
            job_types=req.job_types,
            error_contains=req.error_contains,
            max_attempts=req.max_attempts,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    db.commit()
    return AffectedResponse(affected=affected)


@app.post("/jobs/release-stale", response_model=AffectedResponse)
def release_stale(db: Session = Depends(get_db)) -> AffectedResponse:
    affected = release_stale_jobs(db)
    db.commit()
    return AffectedResponse(affected=affected)


@app.get("/jobs/stats")
def job_stats(db: Session = Depends(get_db)) -> Dict[str, int]:
    return job_status_counts(db)
