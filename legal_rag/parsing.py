"""Tagged results for parsing untrusted LLM output.

Parsers return either Ok(value) or ParseError(reason, raw); callers branch on
both arms with isinstance instead of trusting the payload's shape.
"""
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class ParseError:
    reason: str
    raw: Optional[Any] = None


ParseResult = Union[Ok[T], ParseError]
