"""Classification gate deciding whether a query is in-domain before retrieval.

Defines:
- GateDecision: Dataclass carrying the YES/NO outcome and any upstream error.
- parse_classification: Strict parser for the single-token classifier reply.
- classify_query: Fail-closed LLM classification; logs exactly one QueryLog entry.
- refusal_response: Canned out-of-domain answer returned on rejection or failure.

Only an exact `YES` (after trimming and upper-casing) accepts the query. Empty
replies, anything else, and every transport/API error reject it.
"""
import logging
import time
from dataclasses import dataclass
from typing import Literal, Optional

from legal_rag.config import settings
from legal_rag.generation import get_client
from legal_rag.parsing import Ok, ParseError, ParseResult
from legal_rag.query_log import record_query
from legal_rag.schemas import QueryResponse

logger = logging.getLogger(__name__)

Classification = Literal["YES", "NO"]

CLASSIFIER_SYSTEM_PROMPT = "You are a query classifier. You must respond with only YES or NO, nothing else."

REFUSAL_ANSWER = (
    "I can only answer questions about Massachusetts criminal law and procedure. "
    "Please rephrase your question or ask about specific laws, procedures, or legal concepts."
)

ROUTED_MARKER = "ROUTED_TO_LEGAL_QUERY"
REJECTED_MARKER = "REJECTED_NON_LEGAL"


@dataclass
class GateDecision:
    """Outcome of the classification gate.

    Attributes:
        classification: 'YES' or 'NO'.
        error: Upstream or parse error text when the call did not yield a clean reply.
        response_time_ms: Time spent classifying.
    """
    classification: Classification
    error: Optional[str] = None
    response_time_ms: int = 0

    @property
    def accepted(self) -> bool:
        return self.classification == "YES"


def _user_prompt(query: str) -> str:
    return (
        "Is this query asking about Massachusetts criminal law, procedure, or law enforcement? "
        f"Answer only YES or NO.\n\nQuery: {query}"
    )


def parse_classification(raw: Optional[str]) -> ParseResult:
    """Parse the classifier reply into Ok('YES'|'NO') or ParseError for empty output."""
    if raw is None or not raw.strip():
        return ParseError("empty classification", raw)
    return Ok("YES" if raw.strip().upper() == "YES" else "NO")


def refusal_response() -> QueryResponse:
    return QueryResponse(answer=REFUSAL_ANSWER, sources=[], confidence=1.0, query_id=None)


def classify_query(query: str, user_id: Optional[str] = None) -> GateDecision:
    """Classify a query as in-domain (YES) or not (NO), failing closed.

    Args:
        query: Raw user question.
        user_id: Optional caller id recorded on the audit entry.

    Returns:
        GateDecision: Never raises; errors yield classification 'NO'.
    """
    t0 = time.time()
    classification: Classification = "NO"
    error: Optional[str] = None

    try:
        resp = get_client().chat.completions.create(
            model=settings.CLASSIFIER_MODEL,
            messages=[
                {"role": "system", "content": CLASSIFIER_SYSTEM_PROMPT},
                {"role": "user", "content": _user_prompt(query)},
            ],
            max_tokens=5,
            temperature=0,
        )
        parsed = parse_classification(resp.choices[0].message.content)
        if isinstance(parsed, Ok):
            classification = parsed.value
        else:
            error = parsed.reason
    except Exception as e:
        logger.exception("Classification call failed; rejecting query")
        error = f"{type(e).__name__}: {e}"

    elapsed_ms = int((time.time() - t0) * 1000)
    decision = GateDecision(classification=classification, error=error, response_time_ms=elapsed_ms)
    logger.info("Classification=%s (%d ms)%s", classification, elapsed_ms, f" error={error}" if error else "")

    record_query(
        query=query,
        classification=classification,
        answer=ROUTED_MARKER if decision.accepted else REJECTED_MARKER,
        confidence=None if decision.accepted else 1.0,
        sources=[],
        response_time_ms=elapsed_ms,
        user_id=user_id,
        chunks_processed=0,
        tokens_used=None if decision.accepted else 0,
        error=error,
    )
    return decision
