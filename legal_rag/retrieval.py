"""Hybrid retrieval: vector channel + lexical channel merged with rank fusion.

This module implements:
- vector_search: pgvector cosine search (similarity = 1 - distance)
- lexical_search: PostgreSQL full-text search with websearch query syntax
- hybrid_search: both channels run concurrently, then reciprocal rank fusion

Each channel uses its own session. A failing channel is logged and contributes an
empty list so the other channel still answers.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from legal_rag.config import settings
from legal_rag.db import session_scope
from legal_rag.embedding import embed_query
from legal_rag.fusion import RankedCandidate, SearchHit, reciprocal_rank_fusion

logger = logging.getLogger(__name__)

VECTOR_SQL = text(
    """
    SELECT id, content, metadata,
        (embedding <=> CAST(:qvec AS vector)) AS distance
    FROM chunks
    ORDER BY embedding <=> CAST(:qvec AS vector), id
    LIMIT :limit
    """
)

LEXICAL_SQL = text(
    """
    SELECT id, content, metadata
    FROM chunks
    WHERE to_tsvector('english', content) @@ websearch_to_tsquery('english', :query)
    ORDER BY ts_rank(to_tsvector('english', content), websearch_to_tsquery('english', :query)) DESC, id
    LIMIT :limit
    """
)


def _vector_literal(vec: List[float]) -> str:
    return "[" + ",".join(f"{x:.6f}" for x in vec) + "]"


def _metadata(raw: Any) -> Dict[str, Any]:
    return dict(raw) if isinstance(raw, dict) else {}


def vector_search(db: Session, embedding: List[float], match_count: int) -> List[SearchHit]:
    """Top-K chunks by cosine similarity to a precomputed query embedding.

    Args:
        db: SQLAlchemy session.
        embedding: Query vector; must match the index dimension.
        match_count: K.

    Returns:
        List[SearchHit]: Ordered by descending similarity, ties by insertion order.
    """
    rows = db.execute(
        VECTOR_SQL, {"qvec": _vector_literal(embedding), "limit": match_count}
    ).mappings().all()
    hits: List[SearchHit] = []
    for r in rows:
        sim = min(1.0, max(0.0, 1.0 - float(r["distance"])))
        hits.append(
            SearchHit(
                chunk_id=int(r["id"]),
                content=r["content"],
                metadata=_metadata(r["metadata"]),
                similarity=sim,
            )
        )
    return hits


def lexical_search(db: Session, query_text: str, limit: int) -> List[SearchHit]:
    """Top-K chunks by full-text relevance. Never sets similarity."""
    if not query_text or not query_text.strip():
        return []
    rows = db.execute(LEXICAL_SQL, {"query": query_text, "limit": limit}).mappings().all()
    return [
        SearchHit(chunk_id=int(r["id"]), content=r["content"], metadata=_metadata(r["metadata"]))
        for r in rows
    ]


def _run_vector_channel(query: str, match_count: int) -> List[SearchHit]:
    try:
        qvec = embed_query(query)
        with session_scope() as db:
            return vector_search(db, qvec, match_count)
    except Exception:
        logger.exception("Vector channel failed; continuing with lexical results only")
        return []


def _run_lexical_channel(query: str, match_count: int) -> List[SearchHit]:
    try:
        with session_scope() as db:
            return lexical_search(db, query, match_count)
    except Exception:
        logger.exception("Lexical channel failed; continuing with vector results only")
        return []


def hybrid_search(query: str, match_count: Optional[int] = None) -> List[RankedCandidate]:
    """Run both channels concurrently and fuse their rankings.

    Args:
        query: Raw user question.
        match_count: Per-channel K; defaults to settings.MATCH_COUNT.

    Returns:
        List[RankedCandidate]: Fused candidates (at most 20), best first.
    """
    k = match_count or settings.MATCH_COUNT
    t0 = time.time()
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="retrieval") as pool:
        vec_future = pool.submit(_run_vector_channel, query, k)
        lex_future = pool.submit(_run_lexical_channel, query, k)
        vector_hits = vec_future.result()
        lexical_hits = lex_future.result()

    fused = reciprocal_rank_fusion(vector_hits, lexical_hits)
    logger.info(
        "Hybrid search: vector=%d lexical=%d fused=%d (%.0f ms)",
        len(vector_hits),
        len(lexical_hits),
        len(fused),
        (time.time() - t0) * 1000.0,
    )
    return fused
