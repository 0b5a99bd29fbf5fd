"""Embedding utilities wrapping OpenAI's embeddings API.

Provides:
- get_client: Cached OpenAI client dedicated to embeddings (no retries).
- embed_texts: Batch embedding for a list of strings.
- embed_query: Convenience helper to embed a single query string.

The client never retries on its own; re-invocation is the caller's decision.
Models and dimensions are configured via legal_rag.config.settings.
"""
from typing import List

from openai import OpenAI

from legal_rag.config import settings
from legal_rag.errors import EmbeddingError


_client: OpenAI | None = None


def get_client() -> OpenAI:
    """Return a cached OpenAI client for embedding calls.

    Returns:
        OpenAI: Client with max_retries=0 and the configured request timeout.
    """
    global _client
    if _client is None:
        _client = OpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.OPENAI_TIMEOUT_SECONDS,
            max_retries=0,
        )
    return _client


def _check_dim(vector: List[float]) -> List[float]:
    if len(vector) != settings.EMBEDDING_DIM:
        raise EmbeddingError(
            "Embedding dimension does not match the index",
            {"expected": settings.EMBEDDING_DIM, "got": len(vector)},
        )
    return vector


def embed_texts(texts: List[str]) -> List[List[float]]:
    """Embed a batch of texts using the configured OpenAI embedding model.

    Args:
        texts: List of input strings to embed.

    Returns:
        List[List[float]]: One embedding vector per input text, in input order.

    Raises:
        EmbeddingError: If the response size or any vector dimension is wrong.
    """
    if not texts:
        return []
    resp = get_client().embeddings.create(model=settings.OPENAI_EMBEDDING_MODEL, input=texts)
    if len(resp.data) != len(texts):
        raise EmbeddingError(
            "Embedding response size mismatch", {"expected": len(texts), "got": len(resp.data)}
        )
    ordered = sorted(resp.data, key=lambda d: d.index)
    return [_check_dim(list(d.embedding)) for d in ordered]


def embed_query(text: str) -> List[float]:
    """Embed a single query string and return its embedding vector.

    Args:
        text: The query to embed.

    Returns:
        List[float]: The embedding vector for the query.
    """
    resp = get_client().embeddings.create(model=settings.OPENAI_EMBEDDING_MODEL, input=[text])
    if not resp.data:
        raise EmbeddingError("Empty embedding response")
    return _check_dim(list(resp.data[0].embedding))
