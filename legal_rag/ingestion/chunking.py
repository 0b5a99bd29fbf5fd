"""Chunking helpers for legal documents.

This module provides:
- content_hash: SHA-256 hex digest used for duplicate document detection
- html_to_sections: HTML to (section, text) extraction using BeautifulSoup
- markdown_sections: H1 -> H2 hierarchical split of markdown text
- split_large_text: paragraph then sentence splitting under a character budget
- chunk_legal_document: full pipeline producing chunk texts with metadata
"""
import hashlib
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup
from bs4.element import Tag

H1_RE = re.compile(r"^#\s+(.*)$")
H2_RE = re.compile(r"^##\s+(.*)$")


@dataclass
class ChunkDraft:
    """Chunk text plus metadata, before embedding."""
    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def estimate_tokens(text: str) -> int:
    """Rough token count, 1 token per 4 characters."""
    return -(-len(text) // 4)


def html_to_sections(html: str) -> List[Tuple[Optional[str], str]]:
    """Convert HTML into (section_title, text_block) pairs.

    Headings h1..h4 start sections; text is gathered from paragraph-like elements.
    Falls back to a single untitled block with the whole page text.
    """
    soup = BeautifulSoup(html, "lxml")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()

    blocks: List[Tuple[Optional[str], str]] = []
    current_section: Optional[str] = None
    buffer: List[str] = []

    def flush():
        nonlocal buffer
        if buffer:
            text = re.sub(r"\s+", " ", " ".join(buffer)).strip()
            if text:
                blocks.append((current_section, text))
        buffer = []

    for el in soup.body.descendants if soup.body else soup.descendants:
        if isinstance(el, Tag):
            if el.name in ["h1", "h2", "h3", "h4"]:
                flush()
                current_section = el.get_text(" ", strip=True) or None
            elif el.name in ["p", "li", "td"]:
                txt = el.get_text(" ", strip=True)
                if txt:
                    buffer.append(txt)

    flush()
    if not blocks:
        text = re.sub(r"\s+", " ", soup.get_text(" ", strip=True)).strip()
        if text:
            blocks = [(None, text)]
    return blocks


def _split_by_headers(text: str, pattern: re.Pattern) -> List[Tuple[Optional[str], str]]:
    sections: List[Tuple[Optional[str], str]] = []
    header: Optional[str] = None
    lines: List[str] = []
    started = False
    for line in text.split("\n"):
        m = pattern.match(line)
        if m:
            if lines or header:
                sections.append((header, "\n".join(lines).strip()))
            header = m.group(1).strip() or None
            lines = []
            started = True
        else:
            lines.append(line)
    if lines or started:
        sections.append((header, "\n".join(lines).strip()))
    return [(h, body) for h, body in sections if body]


def markdown_sections(text: str) -> List[Tuple[Optional[str], Optional[str], str]]:
    """Split markdown into (h1_header, h2_header, body) triples."""
    out: List[Tuple[Optional[str], Optional[str], str]] = []
    for h1, h1_body in _split_by_headers(text, H1_RE):
        for h2, body in _split_by_headers(h1_body, H2_RE):
            out.append((h1, h2, body))
    return out


def _split_paragraphs(text: str) -> List[str]:
    return [p.strip() for p in re.split(r"\n\s*\n", text) if p.strip()]


def _split_sentences(text: str) -> List[str]:
    parts = [s.strip() for s in re.split(r"\.\s+", text) if s.strip()]
    out = []
    for i, s in enumerate(parts):
        if i < len(parts) - 1 or not re.search(r"[.!?]$", s):
            s = s + "."
        out.append(s)
    return out


def _pack(pieces: List[str], sep: str, max_chars: int) -> List[str]:
    chunks: List[str] = []
    current = ""
    for piece in pieces:
        candidate = current + (sep if current else "") + piece
        if len(candidate) > max_chars and current:
            chunks.append(current)
            current = piece
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


def split_large_text(text: str, max_chars: int) -> List[str]:
    """Split text under max_chars, by paragraphs first, then sentences.

    A single paragraph/sentence longer than max_chars is kept whole.
    """
    text = text.strip()
    if len(text) <= max_chars:
        return [text] if text else []
    paragraphs = _split_paragraphs(text)
    if len(paragraphs) > 1:
        return _pack(paragraphs, "\n\n", max_chars)
    sentences = _split_sentences(text)
    if len(sentences) > 1:
        return _pack(sentences, " ", max_chars)
    return [text]


def chunk_legal_document(
    text: str,
    metadata: Dict[str, Any],
    max_chars: int,
    content_type: str = "markdown",
) -> List[ChunkDraft]:
    """Chunk a document while keeping its H1/H2 context on every chunk.

    Args:
        text: Document content.
        metadata: Document-level metadata (document_id, document_title, category).
        max_chars: Character budget per chunk.
        content_type: 'markdown', 'text' or 'html'.

    Returns:
        List[ChunkDraft]: Chunks in document order with chunk_index, headers and counts.
    """
    if content_type == "html":
        sections = [(title, None, body) for title, body in html_to_sections(text)]
    else:
        sections = markdown_sections(text)

    drafts: List[ChunkDraft] = []
    for h1, h2, body in sections:
        for piece in split_large_text(body, max_chars):
            meta = dict(metadata)
            meta.update(
                {
                    "h1_header": h1,
                    "h2_header": h2,
                    "chunk_index": len(drafts),
                    "word_count": len(piece.split()),
                    "char_count": len(piece),
                }
            )
            drafts.append(ChunkDraft(text=piece, metadata=meta))
    return drafts
