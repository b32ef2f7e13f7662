"""
Query Processor

Turns a free-text question into an ordered list of keywords and scores text
against those keywords. Pure functions, no I/O.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, List


MAX_KEYWORDS = 10
MIN_KEYWORD_LENGTH = 3

# Common English function words plus interrogatives
STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
    "with", "by", "is", "are", "was", "were", "be", "been", "being", "have",
    "has", "had", "do", "does", "did", "will", "would", "could", "should",
    "may", "might", "can", "this", "that", "these", "those",
    "how", "what", "when", "where", "which", "who", "whom", "why",
})

_NON_WORD_RE = re.compile(r"[^\w\s]")


def extract_keywords(text: str) -> List[str]:
    """
    Extract salient terms from free text.

    Lower-cases, turns punctuation into whitespace, drops short tokens and
    stop words, and keeps the first ``MAX_KEYWORDS`` survivors in order.
    Duplicates are kept: a repeated word weighs twice in relevance scoring.
    """
    words = _NON_WORD_RE.sub(" ", text.lower()).split()
    keywords = [
        w for w in words
        if len(w) >= MIN_KEYWORD_LENGTH and w not in STOP_WORDS
    ]
    return keywords[:MAX_KEYWORDS]


def calculate_relevance(content: str, keywords: Iterable[str]) -> int:
    """
    Total number of keyword occurrences in ``content``.

    Case-insensitive, non-overlapping, and not word-boundary aware:
    "system" also counts inside "subsystems".
    """
    content_lower = content.lower()
    return sum(content_lower.count(keyword) for keyword in keywords if keyword)


@dataclass
class ParsedQuery:
    """Parsed representation of a user query"""
    original: str
    keywords: List[str] = field(default_factory=list)

    @property
    def is_searchable(self) -> bool:
        """False when nothing in the query is worth searching for"""
        return bool(self.keywords)


class QueryProcessor:
    """
    Processes user questions for knowledge base search.

    Wraps extract_keywords so callers can pass the parsed form around.
    """

    STOP_WORDS = STOP_WORDS

    def parse(self, query: str) -> ParsedQuery:
        """
        Parse a user query into structured form.

        Args:
            query: Raw user query string

        Returns:
            ParsedQuery with the original text and its keywords
        """
        return ParsedQuery(
            original=query,
            keywords=extract_keywords(query),
        )
