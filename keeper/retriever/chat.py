"""
Chat Service

One chat turn: validate the request, retrieve, synthesize, record the turn.

Failure model:
- Missing message or employee id -> ChatInputError, before any store access
- No keywords in the message -> clarification prompt, nothing recorded
- Any other fault -> failed ChatResponse with a generic message; the turn
  is not recorded
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..common.config import RetrieverConfig
from ..common.store import KnowledgeStore
from .query_processor import QueryProcessor
from .searcher import Searcher
from .synthesizer import DocumentExcerpt, Synthesizer

logger = logging.getLogger("keeper.retriever.chat")

CLARIFICATION_TEXT = "Could you please provide more specific details in your question?"
FAILURE_TEXT = "Failed to process chat message"


class ChatInputError(ValueError):
    """The chat request is missing a required field"""
    pass


@dataclass
class ChatResponse:
    """What the caller gets back for one chat turn"""
    success: bool
    text: str = ""
    sources: List[str] = field(default_factory=list)
    documents: List[DocumentExcerpt] = field(default_factory=list)
    confidence: float = 0.0
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if self.error is None:
            data.pop("error")
        return data


class ChatService:
    """
    Answers questions from one employee's knowledge.

    Wires QueryProcessor -> Searcher -> Synthesizer and appends every
    answered turn to the store's chat history.
    """

    def __init__(
        self,
        store: KnowledgeStore,
        searcher: Optional[Searcher] = None,
        synthesizer: Optional[Synthesizer] = None,
        config: Optional[RetrieverConfig] = None,
        debug: bool = False,
    ):
        """
        Initialize chat service.

        Args:
            store: Knowledge store (searched and written to)
            searcher: Retrieval engine (default: Searcher over ``store``)
            synthesizer: Answer composer (default: random phrasing)
            config: Retrieval limits and timeouts
            debug: Append internal error detail to failure messages
        """
        config = config or RetrieverConfig()
        self._store = store
        self._processor = QueryProcessor()
        self._searcher = searcher or Searcher(store, config, self._processor)
        self._synthesizer = synthesizer or Synthesizer(
            top_results=config.top_results,
            document_results=config.document_results,
        )
        self._top_results = config.top_results
        self._debug = debug

    async def ask(self, message: Optional[str], employee_id: Optional[str]) -> ChatResponse:
        """
        Answer a question.

        Args:
            message: The user's question
            employee_id: Whose knowledge to search

        Returns:
            ChatResponse; ``success`` is False only for internal faults

        Raises:
            ChatInputError: if message or employee_id is missing
        """
        if not message or not employee_id:
            raise ChatInputError("Message and employee ID are required")

        parsed = self._processor.parse(message)
        if not parsed.is_searchable:
            return ChatResponse(success=True, text=CLARIFICATION_TEXT)

        try:
            ranked = await self._searcher.search(employee_id, parsed)
            answer = self._synthesizer.synthesize(ranked[:self._top_results], message)
            await asyncio.to_thread(
                self._store.save_chat_history, employee_id, message, answer.text, answer.sources
            )
        except Exception as e:
            logger.error("Chat error for %s: %s", employee_id, e, exc_info=True)
            error = f"{FAILURE_TEXT}: {e}" if self._debug else FAILURE_TEXT
            return ChatResponse(success=False, error=error)

        return ChatResponse(
            success=True,
            text=answer.text,
            sources=answer.sources,
            documents=answer.documents,
            confidence=answer.confidence,
        )
