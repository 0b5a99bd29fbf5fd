"""Reciprocal Rank Fusion over the vector and lexical channel outputs.

Defines:
- SearchHit: one row returned by a retrieval channel.
- RankedCandidate: a fused candidate living for the duration of one query.
- reciprocal_rank_fusion: additive, rank-based merge of two ranked lists.

Fusion is rank-based, not score-based: each hit at zero-based rank r contributes
1 / (k + r + 1), contributions are summed per chunk id, and similarity is carried
along for display only.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

RRF_K = 60
FUSION_LIMIT = 20


@dataclass
class SearchHit:
    """A chunk returned by one retrieval channel, in channel rank order.

    Attributes:
        chunk_id: Primary key of the chunk.
        content: Chunk text.
        metadata: Opaque chunk metadata (title, headers, category...).
        similarity: Cosine similarity in [0, 1]; only the vector channel sets it.
    """
    chunk_id: int
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    similarity: Optional[float] = None


@dataclass
class RankedCandidate:
    chunk_id: int
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    similarity: Optional[float] = None
    fused_score: float = 0.0


def rrf_score(rank: int, k: int = RRF_K) -> float:
    """Partial score for a zero-based rank."""
    return 1.0 / (k + rank + 1)


def reciprocal_rank_fusion(
    vector_hits: Sequence[SearchHit],
    lexical_hits: Sequence[SearchHit],
    k: int = RRF_K,
    limit: int = FUSION_LIMIT,
) -> List[RankedCandidate]:
    """Merge two ranked lists into one deterministic ranking.

    Args:
        vector_hits: Vector channel output, best first.
        lexical_hits: Lexical channel output, best first.
        k: RRF constant.
        limit: Maximum number of candidates returned.

    Returns:
        List[RankedCandidate]: Distinct candidates by descending fused score. Equal
        scores keep combination order (vector hits first, then lexical-only hits).
    """
    combined: Dict[int, RankedCandidate] = {}

    for source in (vector_hits, lexical_hits):
        for rank, hit in enumerate(source):
            score = rrf_score(rank, k)
            existing = combined.get(hit.chunk_id)
            if existing is None:
                combined[hit.chunk_id] = RankedCandidate(
                    chunk_id=hit.chunk_id,
                    content=hit.content,
                    metadata=dict(hit.metadata or {}),
                    similarity=hit.similarity,
                    fused_score=score,
                )
            else:
                existing.fused_score += score
                if existing.similarity is None and hit.similarity is not None:
                    existing.similarity = hit.similarity

    # sorted() is stable, so ties keep dict insertion order
    ranked = sorted(combined.values(), key=lambda c: c.fused_score, reverse=True)
    return ranked[:limit]
