"""Query pipeline: classification gate, hybrid retrieval, rerank, grounded answer.

answer_query always returns a well-formed QueryResponse. The gate may short-circuit
with the canned refusal; after the gate, any unexpected upstream failure degrades to
that same refusal instead of surfacing an error.
"""
import logging
import time
from typing import List, Optional

from legal_rag.cache import get_cached_response, set_cached_response
from legal_rag.config import settings
from legal_rag.fusion import RankedCandidate
from legal_rag.generation import build_sources, generate_answer, score_confidence
from legal_rag.obs import Trace, span
from legal_rag.query_log import record_query
from legal_rag.reranker import rerank
from legal_rag.retrieval import hybrid_search
from legal_rag.router import classify_query, refusal_response
from legal_rag.schemas import QueryResponse, Source

logger = logging.getLogger(__name__)

NO_CONTEXT_ANSWER = (
    "Based on the available context, I cannot provide an answer to your question. "
    "No relevant Massachusetts legal documents were found. I recommend consulting additional "
    "Massachusetts legal resources or seeking guidance from your department's legal counsel."
)


def _elapsed_ms(t0: float) -> int:
    return int((time.time() - t0) * 1000)


def _retrieve(query: str, trace: Trace) -> List[RankedCandidate]:
    with span("retrieve", {"match_count": settings.MATCH_COUNT}):
        candidates = hybrid_search(query, settings.MATCH_COUNT)
    trace.event("retrieval_result", {"num_candidates": len(candidates)})

    if settings.RERANKER_ENABLED and candidates:
        with span("rerank", {"candidates": len(candidates)}):
            reranked = rerank(query, candidates)
        changed = [c.chunk_id for c in reranked] != [c.chunk_id for c in candidates]
        trace.event("rerank", {"reordered": changed})
        candidates = reranked
    return candidates


def answer_query(query: str, user_id: Optional[str] = None) -> QueryResponse:
    """Answer an officer's question end to end.

    Workflow:
    - Classify the query; rejected or unclassifiable queries get the refusal
    - Serve a cached answer when present
    - Hybrid retrieval (vector + lexical, RRF), optional LLM rerank
    - Generate a grounded answer from the top CONTEXT_CHUNKS chunks
    - Build sources and confidence, append the answer to the query log, cache it

    Args:
        query: Raw user question.
        user_id: Optional caller id for the audit log.

    Returns:
        QueryResponse: Never raises for upstream failures.
    """
    t0 = time.time()
    trace = Trace("query", input={"query": query})

    decision = classify_query(query, user_id)
    trace.event("classification", {"classification": decision.classification, "error": decision.error})
    if not decision.accepted:
        trace.end(output={"refused": True})
        return refusal_response()

    cached = get_cached_response(query)
    if cached:
        try:
            resp = QueryResponse(**cached)
        except (TypeError, ValueError):
            logger.warning("Ignoring malformed cached response")
        else:
            # The cached query_id belongs to the earlier request; log this one on its own
            resp.query_id = record_query(
                query=query,
                classification=decision.classification,
                answer=resp.answer,
                confidence=resp.confidence,
                sources=[s.model_dump() for s in resp.sources],
                response_time_ms=_elapsed_ms(t0),
                user_id=user_id,
                chunks_processed=0,
                tokens_used=0,
            )
            trace.event("cache_hit", {"latency_ms": _elapsed_ms(t0)})
            trace.end(output={"used_cache": True})
            return resp

    try:
        candidates = _retrieve(query, trace)

        if not candidates:
            query_id = record_query(
                query=query,
                classification=decision.classification,
                answer=NO_CONTEXT_ANSWER,
                confidence=0.0,
                sources=[],
                response_time_ms=_elapsed_ms(t0),
                user_id=user_id,
                chunks_processed=0,
                tokens_used=0,
            )
            trace.end(output={"no_context": True})
            return QueryResponse(answer=NO_CONTEXT_ANSWER, sources=[], confidence=0.0, query_id=query_id)

        top = candidates[: settings.CONTEXT_CHUNKS]
        with span("generate", {"chunks": len(top)}):
            generated = generate_answer(query, top)
        sources = build_sources(top)
        confidence = score_confidence(generated.text)

        query_id = record_query(
            query=query,
            classification=decision.classification,
            answer=generated.text,
            confidence=confidence,
            sources=sources,
            response_time_ms=_elapsed_ms(t0),
            user_id=user_id,
            chunks_processed=len(candidates),
            tokens_used=generated.tokens_used,
        )
        resp = QueryResponse(
            answer=generated.text,
            sources=[Source(**s) for s in sources],
            confidence=confidence,
            query_id=query_id,
        )
    except Exception:
        logger.exception("Query pipeline failed after classification; returning refusal")
        trace.event("pipeline_error", {})
        trace.end(output={"refused": True})
        return refusal_response()

    trace.generation("answer", prompt=query, output=resp.answer, metadata={"candidates": len(candidates)})
    trace.end(output={"used_cache": False, "latency_ms": _elapsed_ms(t0)})
    set_cached_response(query, resp.model_dump())
    logger.info("Answered query in %d ms with %d sources", _elapsed_ms(t0), len(resp.sources))
    return resp
