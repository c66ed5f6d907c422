"""Text helpers: tokenization, content normalization and snippets."""

from __future__ import annotations

import re
from typing import List

EMPHASIS = "**"

_NON_WORD_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")
_TRAILING_WS_RE = re.compile(r"[ \t]+$", re.MULTILINE)
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_SENTENCE_RE = re.compile(r"[.!?]+")
_FTS_TERM_RE = re.compile(r"\w+")


def preprocess(text: str) -> str:
    """Lowercase, replace punctuation with spaces and collapse whitespace."""
    lowered = _NON_WORD_RE.sub(" ", text.lower())
    return _WHITESPACE_RE.sub(" ", lowered).strip()


def tokenize(text: str) -> List[str]:
    cleaned = preprocess(text)
    return cleaned.split(" ") if cleaned else []


def normalize_content(text: str) -> str:
    """Normalize line endings and blank runs, strip trailing whitespace."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _TRAILING_WS_RE.sub("", text)
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()


def query_terms(query: str) -> List[str]:
    return [term for term in query.lower().split() if term]


def fts_query(query: str) -> str:
    """Quote every word of ``query`` as an FTS5 string, implicitly ANDed.

    Punctuation and FTS5 operators in free text (``?``, ``-``, ``'``, ``OR``)
    are treated as separators or plain words rather than query syntax.
    """
    return " ".join(f'"{term}"' for term in _FTS_TERM_RE.findall(query))


def highlight_terms(text: str, terms: List[str]) -> str:
    """Wrap every case-insensitive occurrence of ``terms`` in emphasis markers."""
    unique = sorted({term for term in terms if term}, key=len, reverse=True)
    if not unique:
        return text
    pattern = re.compile("|".join(re.escape(term) for term in unique), re.IGNORECASE)
    return pattern.sub(lambda match: f"{EMPHASIS}{match.group(0)}{EMPHASIS}", text)


def extract_snippet(content: str, query: str, *, max_length: int = 200) -> str:
    """Pick the sentence with the most query-term hits and highlight it.

    Sentences are split on ``.``, ``!`` and ``?``; the first sentence wins
    ties. The chosen sentence is truncated to ``max_length`` characters plus
    an ellipsis before highlighting.
    """
    if not content:
        return ""

    terms = query_terms(query)
    sentences = _SENTENCE_RE.split(content)
    best = sentences[0]
    best_hits = 0
    for sentence in sentences:
        lowered = sentence.lower()
        hits = sum(lowered.count(term) for term in terms)
        if hits > best_hits:
            best, best_hits = sentence, hits

    snippet = best.strip()
    if len(snippet) > max_length:
        snippet = snippet[:max_length] + "..."
    return highlight_terms(snippet, terms)


def clean_snippet(snippet: str | None) -> str:
    """Collapse whitespace in a full-text snippet."""
    if not snippet:
        return ""
    return _WHITESPACE_RE.sub(" ", snippet).strip()
