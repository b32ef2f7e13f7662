"""
Synthesizer

Template-based answer synthesis from ranked search results.
Quotes the most relevant sentence of the best result and cites the files
the answer was drawn from.

Confidence is the best result's relevance divided by 10, capped at 1.
"""

import logging
import random
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from .query_processor import calculate_relevance, extract_keywords
from .searcher import ScoredResult

logger = logging.getLogger("keeper.retriever.synthesizer")

ANSWER_EXCERPT_LENGTH = 300
DOCUMENT_EXCERPT_LENGTH = 150
MIN_SENTENCE_LENGTH = 10
TOP_RESULTS = 3
DOCUMENT_RESULTS = 2

NOT_FOUND_TEXT = (
    "I couldn't find specific information about that in the knowledge base. "
    "Try rephrasing your question or asking about different topics."
)

ANSWER_TEMPLATES = [
    "Based on the knowledge base, {excerpt}",
    "According to the available information, {excerpt}",
    "From the documentation, {excerpt}",
    "The knowledge base indicates that {excerpt}",
]

# A sentence body followed by its run of terminators (if any)
_SENTENCE_RE = re.compile(r"([^.!?]+)([.!?]*)")


@dataclass
class DocumentExcerpt:
    """A short quote from one source file"""
    name: str
    excerpt: str


@dataclass
class SynthesizedAnswer:
    """Synthesized answer with its citations"""
    text: str
    confidence: float  # 0.0 to 1.0
    sources: List[str] = field(default_factory=list)
    documents: List[DocumentExcerpt] = field(default_factory=list)


def split_sentences(content: str) -> List[str]:
    """
    Split text at runs of '.', '!' and '?', keeping each terminator run on
    its sentence. Fragments of ``MIN_SENTENCE_LENGTH`` characters or fewer
    (not counting the terminators) are dropped.
    """
    return [
        body + terminators
        for body, terminators in _SENTENCE_RE.findall(content)
        if len(body.strip()) > MIN_SENTENCE_LENGTH
    ]


def extract_relevant_excerpt(
    content: str,
    query: str,
    max_length: int = ANSWER_EXCERPT_LENGTH,
) -> str:
    """
    Pick the sentence of ``content`` that best matches ``query``.

    Keywords are recomputed from the query. The first sentence is the
    default; a later one replaces it only with a strictly higher score.
    Without any usable sentence, the first ``max_length`` characters are
    used. Results longer than ``max_length`` end in "...".
    """
    keywords = extract_keywords(query)
    sentences = split_sentences(content)

    best_sentence = sentences[0] if sentences else content[:max_length]
    best_score = 0

    for sentence in sentences:
        score = calculate_relevance(sentence, keywords)
        if score > best_score:
            best_score = score
            best_sentence = sentence

    if len(best_sentence) > max_length:
        best_sentence = best_sentence[:max_length - 3] + "..."

    return best_sentence.strip()


def unique_sources(results: Sequence[ScoredResult]) -> List[str]:
    """Source file names in order of first appearance"""
    return list(dict.fromkeys(r.source_file_name for r in results))


class Synthesizer:
    """
    Composes a natural-language answer from ranked results.

    Phrasing is picked at random among ANSWER_TEMPLATES; pass ``choose`` to
    make it deterministic.
    """

    def __init__(
        self,
        choose: Optional[Callable[[Sequence[str]], str]] = None,
        top_results: int = TOP_RESULTS,
        document_results: int = DOCUMENT_RESULTS,
    ):
        """
        Initialize synthesizer.

        Args:
            choose: Picks one template from a sequence (default random.choice)
            top_results: How many ranked results may be cited
            document_results: How many results get a document excerpt
        """
        self._choose = choose or random.choice
        self._top_results = top_results
        self._document_results = document_results

    def synthesize(self, results: Sequence[ScoredResult], query: str) -> SynthesizedAnswer:
        """
        Synthesize an answer from ranked results.

        Args:
            results: Ranked results, best first (only the top few are used)
            query: The user's question

        Returns:
            SynthesizedAnswer with text, confidence, sources and documents
        """
        top = list(results[:self._top_results])

        if not top:
            return SynthesizedAnswer(text=NOT_FOUND_TEXT, confidence=0.0)

        best = top[0]
        logger.debug("Answering from %s (relevance %d)", best.source_file_name, best.relevance)
        excerpt = extract_relevant_excerpt(best.content, query, ANSWER_EXCERPT_LENGTH)
        template = self._choose(ANSWER_TEMPLATES)

        documents = [
            DocumentExcerpt(
                name=r.source_file_name,
                excerpt=extract_relevant_excerpt(r.content, query, DOCUMENT_EXCERPT_LENGTH),
            )
            for r in top[:self._document_results]
        ]

        return SynthesizedAnswer(
            text=template.format(excerpt=excerpt),
            confidence=self._calculate_confidence(best),
            sources=unique_sources(top),
            documents=documents,
        )

    def _calculate_confidence(self, best: ScoredResult) -> float:
        """Linear in the best relevance, capped at 1"""
        return min(best.relevance / 10, 1.0)


def format_answer_for_display(answer) -> str:
    """Format an answer (SynthesizedAnswer or ChatResponse) for CLI/UI display"""
    lines = [
        answer.text,
        "",
        f"**Confidence**: {answer.confidence:.0%}",
    ]

    if answer.sources:
        lines.append("")
        lines.append("**Sources**:")
        for s in answer.sources:
            lines.append(f"  - {s}")

    if answer.documents:
        lines.append("")
        lines.append("**Excerpts**:")
        for d in answer.documents:
            lines.append(f"  - {d.name}: {d.excerpt}")

    return "\n".join(lines)
