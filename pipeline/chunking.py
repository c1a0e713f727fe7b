"""
Split long extraction input into pieces the extractor accepts.

Paragraph boundaries are preferred, then sentence boundaries; a single
sentence longer than the limit is hard-split.
"""

import re

_PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def _pack(pieces: list[str], max_chars: int, joiner: str) -> list[str]:
    chunks = []
    current = ""
    for piece in pieces:
        candidate = f"{current}{joiner}{piece}" if current else piece
        if len(candidate) <= max_chars:
            current = candidate
            continue
        if current:
            chunks.append(current)
        current = piece
    if current:
        chunks.append(current)
    return chunks


def _split_long(paragraph: str, max_chars: int) -> list[str]:
    sentences = []
    for sentence in _SENTENCE_SPLIT.split(paragraph):
        while len(sentence) > max_chars:
            sentences.append(sentence[:max_chars])
            sentence = sentence[max_chars:]
        if sentence:
            sentences.append(sentence)
    return _pack(sentences, max_chars, " ")


def chunk_text(text: str, max_chars: int = 8000) -> list[str]:
    """Chunks in input order, each at most max_chars long. Empty input gives []."""
    text = text.strip()
    if not text:
        return []
    if len(text) <= max_chars:
        return [text]

    pieces = []
    for paragraph in _PARAGRAPH_SPLIT.split(text):
        paragraph = paragraph.strip()
        if not paragraph:
            continue
        if len(paragraph) > max_chars:
            pieces.extend(_split_long(paragraph, max_chars))
        else:
            pieces.append(paragraph)
    return _pack(pieces, max_chars, "\n\n")
