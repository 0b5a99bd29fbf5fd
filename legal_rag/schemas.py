"""Pydantic request/response schemas for the API.

Defines the public contracts used by the FastAPI endpoints:
- QueryRequest: Input payload for the question-answering endpoint.
- Source: A ranked chunk reference returned alongside answers.
- QueryResponse: Output payload with the answer, sources and confidence.
- EnqueueRequest / JobResponse / ProcessJobResponse: ingestion queue contracts.
- CleanupRequest / AffectedResponse: operator recovery contracts.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class QueryRequest(BaseModel):
    """Request body for asking a question.

    Attributes:
        query: The officer's question.
        user_id: Optional caller id recorded in the audit log.
    """
    query: str = Field(..., min_length=1, description="User question")
    user_id: Optional[str] = None


class Source(BaseModel):
    title: str
    category: Optional[str] = None
    content: Optional[str] = None
    similarity: Optional[float] = None


class QueryResponse(BaseModel):
    """Response body returned by the query pipeline.

    Attributes:
        answer: Generated answer, or the canned refusal.
        sources: Chunks the answer was grounded on, in final ranking order.
        confidence: 0..1; 1.0 for refusals.
        query_id: Audit log id of the answer entry, None for refusals.
    """
    answer: str
    sources: List[Source] = Field(default_factory=list)
    confidence: float
    query_id: Optional[str] = None


class EnqueueRequest(BaseModel):
    document_id: int
    job_type: str = "document_processing"


class JobResponse(BaseModel):
    id: int
    job_type: str
    status: str
    job_data: Dict[str, Any]
    worker_id: Optional[str] = None
    attempts: int = 0
    error_message: Optional[str] = None


class ProcessJobResponse(BaseModel):
    message: str
    processed: int
    job_id: Optional[int] = None
    document_id: Optional[int] = None
    result: Optional[Dict[str, Any]] = None


class CleanupRequest(BaseModel):
    """Operator recovery of failed jobs.

    Attributes:
        action: 'reset' re-queues matching jobs; 'delete' removes them.
        job_types: Restrict to these job types.
        error_contains: Only jobs whose error message contains this text.
        max_attempts: Only jobs that have failed fewer than this many times.
    """
    action: Literal["reset", "delete"] = "reset"
    job_types: Optional[List[str]] = None
    error_contains: Optional[str] = None
    max_attempts: Optional[int] = Field(default=None, ge=1)


class AffectedResponse(BaseModel):
    affected: int
