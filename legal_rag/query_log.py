"""Append-only query audit log written as a side channel.

record_query inserts one QueryLog row in its own transaction. Logging is
observability, not a dependency of the pipeline: a failed write is logged,
counted, and reported as None, and never propagates to the caller.
"""
import logging
import threading
from typing import Any, Dict, List, Optional

from legal_rag.db import session_scope
from legal_rag.models import QueryLog

logger = logging.getLogger(__name__)

_failures = 0
_failures_lock = threading.Lock()


def write_failure_count() -> int:
    """Number of query log writes that failed in this process."""
    with _failures_lock:
        return _failures


def _count_failure() -> None:
    global _failures
    with _failures_lock:
        _failures += 1


def record_query(
    query: str,
    classification: Optional[str] = None,
    answer: Optional[str] = None,
    confidence: Optional[float] = None,
    sources: Optional[List[Dict[str, Any]]] = None,
    response_time_ms: Optional[int] = None,
    user_id: Optional[str] = None,
    chunks_processed: Optional[int] = None,
    tokens_used: Optional[int] = None,
    error: Optional[str] = None,
) -> Optional[str]:
    """Append one audit entry.

    Returns:
        Optional[str]: The new entry id, or None if the write failed.
    """
    try:
        with session_scope() as db:
            row = QueryLog(
                user_id=user_id,
                query=query,
                classification=classification,
                answer=answer,
                confidence=confidence,
                sources=sources or [],
                response_time_ms=response_time_ms,
                chunks_processed=chunks_processed,
                tokens_used=tokens_used,
                error=error,
            )
            db.add(row)
            db.flush()
            return str(row.id)
    except Exception:
        _count_failure()
        logger.exception("Failed to write query log entry")
        return None
