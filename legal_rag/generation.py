"""Answer generation utilities using OpenAI chat completions.

Provides:
- get_client: Cached OpenAI client shared by the gate, reranker and generator
- _build_context: Formatting of ranked chunks into a titled context block
- generate_answer: Grounded answer generation constrained to provided context
- build_sources: Source entries returned to the caller, in ranking order
- score_confidence: Heuristic confidence from citations, length and hedging

Configuration is read from legal_rag.config.settings.
"""
import re
from dataclasses import dataclass
from typing import Dict, List, Sequence

from openai import OpenAI

from legal_rag.config import settings
from legal_rag.fusion import RankedCandidate

_client: OpenAI | None = None

LEGAL_ASSISTANT_SYSTEM_PROMPT = """You are SHIFT, an expert AI legal assistant specifically designed for Massachusetts law enforcement professionals. You provide accurate, reliable, and actionable legal guidance based exclusively on Massachusetts state law and regulations.

## Core Directive
You MUST only use information provided in the context documents. Do not rely on your training data or general knowledge about law. If the provided context does not contain sufficient information to answer a question, you must explicitly state this limitation.

## Citation Requirements
- Every legal statement MUST include a proper citation using this exact format: [Source: {document_title}, Section: {section_header}]
- Use the document title and the relevant H1 header or section identifier from the source material
- Multiple citations should be listed separately

## Response Format
1. Provide direct, actionable answers in numbered lists when appropriate
2. Use clear, professional language suitable for law enforcement officers
3. Highlight critical timing requirements, deadlines, or procedural steps
4. When discussing criminal charges, include elements that must be proven

## Handling Uncertainty
When the provided context is insufficient to fully answer a question, respond with:
"Based on the available context, I cannot provide a complete answer to your question about [specific topic]. I recommend consulting additional Massachusetts legal resources or seeking guidance from your department's legal counsel for a comprehensive answer."
"""

CITATION_RE = re.compile(r"\[Source:\s*([^,\]]+),\s*Section:\s*([^\]]+)\]")
UNCERTAINTY_PHRASES = ("cannot provide", "insufficient", "recommend consulting", "seek guidance")
SNIPPET_CHARS = 450


@dataclass
class GeneratedAnswer:
    text: str
    tokens_used: int = 0


def get_client() -> OpenAI:
    """Return a cached OpenAI Chat Completions client using the configured API key.

    Returns:
        OpenAI: Client instance reused across calls, with the configured timeout.
    """
    global _client
    if _client is None:
        _client = OpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.OPENAI_TIMEOUT_SECONDS,
            max_retries=settings.OPENAI_MAX_RETRIES,
        )
    return _client


def _title(meta: Dict) -> str:
    return meta.get("document_title") or meta.get("title") or "Unknown Document"


def _section(meta: Dict) -> str:
    return meta.get("h1_header") or meta.get("h2_header") or "Unknown Section"


def _build_context(cands: Sequence[RankedCandidate]) -> str:
    """Create an enumerated context block with title/section/page headers per chunk."""
    blocks: List[str] = []
    for i, c in enumerate(cands, start=1):
        meta = c.metadata or {}
        blocks.append(
            f"## Document {i}\n"
            f"**Title:** {_title(meta)}\n"
            f"**Section:** {_section(meta)}\n"
            f"**Page:** {meta.get('page_number') or 'Unknown'}\n\n"
            f"**Content:**\n{c.content}\n\n---"
        )
    return "\n\n".join(blocks)


def generate_answer(question: str, candidates: Sequence[RankedCandidate]) -> GeneratedAnswer:
    """Generate an answer grounded strictly in provided candidate chunks.

    Args:
        question: Officer's question.
        candidates: Ranked chunks to ground the answer (already cut to CONTEXT_CHUNKS).

    Returns:
        GeneratedAnswer: Answer text and total tokens reported by the API.
    """
    context = _build_context(candidates)
    user = f"## Context Documents:\n{context}\n\n## Officer's Query:\n{question}\n\n## Response:"

    resp = get_client().chat.completions.create(
        model=settings.OPENAI_MODEL,
        messages=[
            {"role": "system", "content": LEGAL_ASSISTANT_SYSTEM_PROMPT},
            {"role": "user", "content": user},
        ],
        temperature=0.1,
        max_tokens=settings.MAX_OUTPUT_TOKENS,
    )
    content = (resp.choices[0].message.content or "").strip()
    usage = getattr(resp, "usage", None)
    tokens = int(getattr(usage, "total_tokens", 0) or 0) if usage is not None else 0
    return GeneratedAnswer(text=content, tokens_used=tokens)


def build_sources(candidates: Sequence[RankedCandidate]) -> List[Dict]:
    """Source entries for the response, one per candidate, in the given order."""
    sources: List[Dict] = []
    for c in candidates:
        meta = c.metadata or {}
        snippet = (c.content or "").strip()
        if len(snippet) > SNIPPET_CHARS:
            snippet = snippet[:SNIPPET_CHARS].rstrip() + "..."
        sources.append(
            {
                "title": _title(meta),
                "category": meta.get("category"),
                "content": snippet,
                "similarity": c.similarity,
            }
        )
    return sources


def count_citations(answer: str) -> int:
    return len(CITATION_RE.findall(answer or ""))


def score_confidence(answer: str) -> float:
    """Heuristic confidence in [0, 1].

    Base 0.5, +0.1 per citation (max +0.3), +0.1 over 500 chars, +0.1 over 1000
    chars, -0.2 when the answer hedges.
    """
    confidence = 0.5
    confidence += min(count_citations(answer) * 0.1, 0.3)
    if len(answer) > 500:
        confidence += 0.1
    if len(answer) > 1000:
        confidence += 0.1
    lowered = answer.lower()
    if any(p in lowered for p in UNCERTAINTY_PHRASES):
        confidence -= 0.2
    return round(max(0.0, min(1.0, confidence)), 4)
