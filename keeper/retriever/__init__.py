"""
Retriever - Knowledge Question Answering

Answers questions from an employee's captured documents.

Key Components:
- QueryProcessor: Extracts keywords from the question
- Searcher: Per-keyword store search, dedup, relevance ranking
- Synthesizer: Excerpt extraction and templated answer
- ChatService: One chat turn end to end, including history

Pipeline:
1. Extract keywords (none -> ask the user to be more specific)
2. Search the store once per keyword, concurrently
3. Deduplicate and rank by keyword occurrences
4. Quote the best sentence, cite the source files
"""

from .query_processor import QueryProcessor, ParsedQuery, extract_keywords, calculate_relevance
from .searcher import Searcher, ScoredResult
from .synthesizer import Synthesizer, SynthesizedAnswer, DocumentExcerpt, extract_relevant_excerpt, format_answer_for_display
from .chat import ChatService, ChatResponse, ChatInputError

__all__ = [
    "QueryProcessor",
    "ParsedQuery",
    "extract_keywords",
    "calculate_relevance",
    "Searcher",
    "ScoredResult",
    "Synthesizer",
    "SynthesizedAnswer",
    "DocumentExcerpt",
    "extract_relevant_excerpt",
    "format_answer_for_display",
    "ChatService",
    "ChatResponse",
    "ChatInputError",
]
