"""
Knowledge Keeper

Captures documents per employee and answers questions from them.

Philosophy:
- Every answer is traceable to the file it was quoted from
- Keyword matching only; no embeddings, no model calls
- One SQLite file holds the whole knowledge base

Usage:
    from keeper.common import load_config, KnowledgeStore
    from keeper.scribe import CaptureService, TextExtractor
    from keeper.retriever import Searcher, Synthesizer, ChatService
"""

__version__ = "0.1.0"
