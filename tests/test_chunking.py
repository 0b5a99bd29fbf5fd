"""Unit tests for legal document chunking."""

from legal_rag.ingestion.chunking import (
    chunk_legal_document,
    content_hash,
    estimate_tokens,
    html_to_sections,
    markdown_sections,
    split_large_text,
)

DOC = """# Search and Seizure

Intro text.

## Warrants

Warrant text.

## Exceptions

Exception text.
"""


def test_markdown_sections_keep_header_hierarchy():
    sections = markdown_sections(DOC)

    assert sections == [
        ("Search and Seizure", None, "Intro text."),
        ("Search and Seizure", "Warrants", "Warrant text."),
        ("Search and Seizure", "Exceptions", "Exception text."),
    ]


def test_text_without_headers_is_one_section():
    assert markdown_sections("Just a paragraph.") == [(None, None, "Just a paragraph.")]


def test_split_large_text_packs_paragraphs_under_budget():
    paragraphs = ["a" * 100 for _ in range(5)]

    chunks = split_large_text("\n\n".join(paragraphs), max_chars=250)

    assert len(chunks) == 3
    assert all(len(c) <= 250 for c in chunks)
    assert chunks[0] == "a" * 100 + "\n\n" + "a" * 100


def test_split_large_text_falls_back_to_sentences():
    text = " ".join(f"Sentence number {i} talks about probable cause." for i in range(20))

    chunks = split_large_text(text, max_chars=200)

    assert len(chunks) > 1
    assert all(len(c) <= 200 for c in chunks)
    assert all(c.endswith(".") for c in chunks)


def test_short_text_is_single_chunk():
    assert split_large_text("  short  ", 100) == ["short"]
    assert split_large_text("   ", 100) == []


def test_chunk_metadata():
    drafts = chunk_legal_document(DOC, {"document_id": 7, "document_title": "4th Amendment"}, 3200)

    assert [d.metadata["chunk_index"] for d in drafts] == [0, 1, 2]
    second = drafts[1].metadata
    assert second["document_id"] == 7
    assert second["document_title"] == "4th Amendment"
    assert second["h1_header"] == "Search and Seizure"
    assert second["h2_header"] == "Warrants"
    assert second["word_count"] == 2
    assert second["char_count"] == len("Warrant text.")


def test_chunk_does_not_mutate_base_metadata():
    base = {"document_id": 1}

    chunk_legal_document(DOC, base, 3200)

    assert base == {"document_id": 1}


def test_html_sections():
    html = (
        "<html><head><script>var x = 1;</script></head><body>"
        "<h1>Arrest</h1><p>Officers may arrest.</p>"
        "<h2>Warrant</h2><p>A warrant is needed.</p><ul><li>Exception one</li></ul>"
        "</body></html>"
    )

    sections = html_to_sections(html)

    assert sections == [
        ("Arrest", "Officers may arrest."),
        ("Warrant", "A warrant is needed. Exception one"),
    ]


def test_html_document_chunks_use_section_as_h1():
    drafts = chunk_legal_document("<h1>Arrest</h1><p>Officers may arrest.</p>", {}, 3200, content_type="html")

    assert len(drafts) == 1
    assert drafts[0].metadata["h1_header"] == "Arrest"
    assert drafts[0].metadata["h2_header"] is None


def test_content_hash_is_stable_sha256():
    assert content_hash("abc") == content_hash("abc")
    assert content_hash("abc") != content_hash("abd")
    assert len(content_hash("abc")) == 64


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("abcde") == 2
    assert estimate_tokens("") == 0
