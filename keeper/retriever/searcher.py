"""
Searcher

Retrieves candidate knowledge for a question from the knowledge store.
Runs one substring search per keyword, merges the hits, deduplicates them
and ranks them by keyword relevance.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

from ..common.config import RetrieverConfig
from ..common.schemas import KnowledgeHit
from ..common.store import KnowledgeStore
from .query_processor import ParsedQuery, QueryProcessor, calculate_relevance

logger = logging.getLogger("keeper.retriever.searcher")

DEDUP_KEY_LENGTH = 100


@dataclass
class ScoredResult:
    """A knowledge hit with its relevance to the query"""
    content: str
    source_file_name: str
    relevance: int
    content_type: str = "text"
    metadata: Dict[str, Any] = field(default_factory=dict)


class Searcher:
    """
    Searches one employee's knowledge using keyword substring matching.

    Each keyword is searched independently (newest ``keyword_limit`` matches
    per keyword) and only then ranked globally. A record that is not among
    the newest matches of any single keyword never becomes a candidate,
    however relevant it would score.
    """

    def __init__(
        self,
        store: KnowledgeStore,
        config: Optional[RetrieverConfig] = None,
        query_processor: Optional[QueryProcessor] = None,
    ):
        """
        Initialize searcher.

        Args:
            store: Knowledge store to search
            config: Limits and timeouts (defaults from RetrieverConfig)
            query_processor: Keyword extraction (default QueryProcessor)
        """
        self._store = store
        self._config = config or RetrieverConfig()
        self._processor = query_processor or QueryProcessor()

    async def retrieve(self, employee_id: str, query: str) -> List[ScoredResult]:
        """
        Find and rank knowledge relevant to a question.

        Args:
            employee_id: Knowledge partition to search
            query: Raw user question

        Returns:
            Ranked results, best first. Empty when the question has no
            keywords (the store is not touched) or nothing matched.
        """
        parsed = self._processor.parse(query)
        return await self.search(employee_id, parsed)

    async def search(self, employee_id: str, query: ParsedQuery) -> List[ScoredResult]:
        """Same as retrieve() for an already parsed query"""
        if not query.is_searchable:
            return []

        hits = await self._search_all(employee_id, query.keywords)
        unique = self._deduplicate(hits)

        results = [
            ScoredResult(
                content=hit.content,
                source_file_name=hit.source_file_name,
                relevance=calculate_relevance(hit.content, query.keywords),
                content_type=hit.content_type,
                metadata=hit.metadata,
            )
            for hit in unique
        ]

        # list.sort is stable: equal scores keep their merge order
        results.sort(key=lambda r: r.relevance, reverse=True)

        logger.debug(
            "Retrieved %d candidates (%d unique) for %s with keywords %s",
            len(hits), len(results), employee_id, query.keywords,
        )
        return results

    async def _search_all(self, employee_id: str, keywords: List[str]) -> List[KnowledgeHit]:
        """
        Run every keyword search concurrently and wait for all of them.

        Searches that miss the per-keyword or per-request deadline count as
        empty. Store errors propagate.
        """
        tasks = [
            asyncio.create_task(self._search_single(employee_id, keyword))
            for keyword in keywords
        ]
        done, pending = await asyncio.wait(tasks, timeout=self._config.request_timeout)

        for task in pending:
            task.cancel()
        if pending:
            logger.warning(
                "Request deadline (%.1fs) hit: %d of %d keyword searches treated as empty",
                self._config.request_timeout, len(pending), len(tasks),
            )

        # Flatten in keyword order, not completion order
        hits: List[KnowledgeHit] = []
        for task in tasks:
            if task in done:
                hits.extend(task.result())
        return hits

    async def _search_single(self, employee_id: str, keyword: str) -> List[KnowledgeHit]:
        """One bounded keyword search, run in a worker thread."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(
                    self._store.search_knowledge,
                    employee_id,
                    keyword,
                    self._config.keyword_limit,
                ),
                timeout=self._config.search_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Keyword search for %r timed out after %.1fs; treating as no results",
                keyword, self._config.search_timeout,
            )
            return []

    def _deduplicate(self, hits: List[KnowledgeHit]) -> List[KnowledgeHit]:
        """Keep the first hit for each distinct opening of content."""
        seen = set()
        unique = []
        for hit in hits:
            key = hit.content[:DEDUP_KEY_LENGTH]
            if key not in seen:
                seen.add(key)
                unique.append(hit)
        return unique
