"""Sentence and paragraph splitting for transcript replies."""

import re

# Sentence boundary: terminal punctuation (optionally closed by a quote or
# bracket) followed by whitespace.
_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?…])[\"')\]]?\s+")

SENTENCES_PER_PARAGRAPH = 4


def split_sentences(text: str) -> list[str]:
    """Split text into trimmed, non-empty sentences."""
    if not text or not text.strip():
        return []
    return [s.strip() for s in _SENTENCE_BOUNDARY.split(text.strip()) if s.strip()]


def group_paragraphs(
    sentences: list[str], size: int = SENTENCES_PER_PARAGRAPH
) -> list[str]:
    """Join every `size` consecutive sentences into one paragraph."""
    if size < 1:
        raise ValueError("Paragraph size must be at least 1")
    return [
        " ".join(sentences[i : i + size]) for i in range(0, len(sentences), size)
    ]


def format_paragraphs(text: str, size: int = SENTENCES_PER_PARAGRAPH) -> str:
    """
    Reflow a transcript into short paragraphs separated by blank lines.

    Voice-to-text output is one long run of sentences; grouping it keeps
    long transcripts readable in a chat bubble.

    Args:
        text: Raw transcript text
        size: Sentences per paragraph

    Returns:
        str: Reflowed text, or the stripped input when it has no sentences
    """
    paragraphs = group_paragraphs(split_sentences(text), size)
    if not paragraphs:
        return (text or "").strip()
    return "\n\n".join(paragraphs)
