"""Listwise LLM reranking of fused candidates.

Provides:
- parse_ranked_ids: Parse the model reply into Ok(list of ids) or ParseError.
- apply_ranking: Rebuild the candidate list from a returned id ordering.
- rerank: Best-effort rerank that falls back to the input order on any failure.

rerank is a total function: network errors, timeouts, malformed JSON and id
lists unrelated to the input all return the input list unchanged. Candidates
are never dropped; ids the model omits are appended in their input order.
"""
import json
import logging
from typing import Dict, List, Sequence

from legal_rag.config import settings
from legal_rag.fusion import RankedCandidate
from legal_rag.generation import get_client
from legal_rag.parsing import Ok, ParseError, ParseResult

logger = logging.getLogger(__name__)

RERANK_SYSTEM_PROMPT = (
    "You are a legal research assistant that ranks document chunks by relevance to legal "
    "queries. Always respond with valid JSON."
)


def _build_prompt(query: str, candidates: Sequence[RankedCandidate]) -> str:
    max_chars = settings.RERANK_MAX_CHARS
    listed = "\n".join(
        f"{i}. ID: {c.chunk_id}\nContent: {c.content[:max_chars]}\n"
        for i, c in enumerate(candidates, start=1)
    )
    return (
        "You are a legal research assistant specializing in Massachusetts criminal law and "
        "law enforcement procedures.\n\n"
        f'Your task is to rank the following document chunks by their relevance to this legal query: "{query}"\n\n'
        "Consider these factors when ranking:\n"
        "1. Direct relevance to the legal query\n"
        "2. Practical application for law enforcement\n"
        "3. Massachusetts-specific legal precedents and statutes\n"
        "4. Procedural guidance and requirements\n"
        "5. Case law citations and legal authority\n\n"
        f"Document chunks to rank:\n{listed}\n"
        "Rank these chunks from most relevant to least relevant for the given query.\n\n"
        "Respond with a JSON object containing only the ranked IDs in order of relevance:\n"
        '{"ranked_ids": ["id1", "id2", "id3", ...]}'
    )


def parse_ranked_ids(raw: str | None) -> ParseResult:
    """Parse a `{"ranked_ids": [...]}` reply.

    Args:
        raw: Message content returned by the model.

    Returns:
        Ok[List[str]] with ids as strings, or ParseError describing the problem.
    """
    if not raw or not raw.strip():
        return ParseError("empty response", raw)
    try:
        payload = json.loads(raw)
    except ValueError:
        return ParseError("response is not JSON", raw)
    if not isinstance(payload, dict):
        return ParseError("response is not a JSON object", raw)
    ids = payload.get("ranked_ids")
    if not isinstance(ids, list):
        return ParseError("ranked_ids missing or not a list", raw)
    if not all(isinstance(i, (str, int)) and not isinstance(i, bool) for i in ids):
        return ParseError("ranked_ids contains non-scalar ids", raw)
    return Ok([str(i).strip() for i in ids])


def apply_ranking(candidates: Sequence[RankedCandidate], ranked_ids: Sequence[str]) -> List[RankedCandidate]:
    """Order candidates by ranked_ids, skipping unknown/duplicate ids and appending omitted ones."""
    by_id: Dict[str, RankedCandidate] = {str(c.chunk_id): c for c in candidates}
    out: List[RankedCandidate] = []
    used = set()
    for cid in ranked_ids:
        cand = by_id.get(cid)
        if cand is not None and cid not in used:
            out.append(cand)
            used.add(cid)
    for c in candidates:
        if str(c.chunk_id) not in used:
            out.append(c)
    return out


def rerank(query: str, candidates: List[RankedCandidate]) -> List[RankedCandidate]:
    """Rerank candidates with the LLM; return the input unchanged on any failure.

    Args:
        query: User question.
        candidates: Fused candidates, best first.

    Returns:
        List[RankedCandidate]: A permutation of `candidates`.
    """
    if not candidates:
        return candidates

    try:
        resp = get_client().chat.completions.create(
            model=settings.RERANKER_MODEL,
            messages=[
                {"role": "system", "content": RERANK_SYSTEM_PROMPT},
                {"role": "user", "content": _build_prompt(query, candidates)},
            ],
            temperature=0,
            response_format={"type": "json_object"},
        )
        raw = resp.choices[0].message.content
    except Exception:
        logger.exception("Rerank call failed, using original order")
        return candidates

    parsed = parse_ranked_ids(raw)
    if isinstance(parsed, ParseError):
        logger.warning("Rerank response unusable (%s), using original order", parsed.reason)
        return candidates

    known = {str(c.chunk_id) for c in candidates}
    if not known.intersection(parsed.value):
        logger.warning("Rerank returned no known ids, using original order")
        return candidates

    return apply_ranking(candidates, parsed.value)
