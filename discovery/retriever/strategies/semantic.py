"""
Semantic Search Strategy

Embeds the query once and runs a similarity search per entity type.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ...common.embedding_service import EmbeddingService
from ...common.schemas import ResultType, SearchResult, record_from_row
from ...common.store import Row, Store
from .base import SearchStrategy, load_contributions, load_person_ref, load_profile

logger = logging.getLogger("discovery.retriever.semantic")


class SemanticSearchStrategy(SearchStrategy):
    """Vector similarity over profiles, posts, projects and project requests."""

    name = "semantic"

    REASONS = {
        ResultType.PROFILE: "Semantic similarity to query",
        ResultType.POST: "Content matches query semantically",
        ResultType.PROJECT: "Project description matches query",
        ResultType.PROJECT_REQUEST: "Project request matches query",
    }

    def __init__(self, store: Store, embedder: EmbeddingService, limit: int = 20):
        self.store = store
        self.embedder = embedder
        self.limit = limit

    async def execute(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[SearchResult]:
        params = params or {}
        limit = params.get("limit", self.limit)

        if not self.embedder.is_available:
            logger.warning("Embedding service unavailable, skipping semantic search")
            return []
        try:
            vector = await self.embedder.embed_single(query)
        except RuntimeError as e:
            logger.warning("Query embedding failed, skipping semantic search: %s", e)
            return []

        profiles, posts, projects, requests = await asyncio.gather(
            self.store.match_by_embedding("profiles", vector, limit),
            self.store.match_by_embedding("posts", vector, limit),
            self.store.match_by_embedding("projects", vector, limit),
            self.store.match_by_embedding("project_requests", vector, limit),
        )

        batches = await asyncio.gather(
            asyncio.gather(*(self._profile_hit(r) for r in profiles)),
            asyncio.gather(*(self._post_hit(r) for r in posts)),
            asyncio.gather(*(self._project_hit(r) for r in projects)),
            asyncio.gather(*(self._request_hit(r) for r in requests)),
        )
        results = [hit for batch in batches for hit in batch]
        logger.debug("Semantic search returned %d hits", len(results))
        return results

    def _hit(self, result_type: ResultType, row: Row, record) -> SearchResult:
        return SearchResult(
            type=result_type,
            id=row["id"],
            data=record,
            relevance_score=float(row.get("similarity") or 0.0),
            match_reason=self.REASONS[result_type],
        )

    async def _profile_hit(self, row: Row) -> SearchResult:
        record = await load_profile(self.store, row, with_experiences=True, with_educations=True)
        return self._hit(ResultType.PROFILE, row, record)

    async def _post_hit(self, row: Row) -> SearchResult:
        return self._hit(ResultType.POST, row, record_from_row(ResultType.POST, row))

    async def _project_hit(self, row: Row) -> SearchResult:
        data = dict(row)
        data["contributions"] = await load_contributions(self.store, row["id"])
        return self._hit(ResultType.PROJECT, row, record_from_row(ResultType.PROJECT, data))

    async def _request_hit(self, row: Row) -> SearchResult:
        data = dict(row)
        data["creator"] = await load_person_ref(self.store, row.get("created_by"))
        return self._hit(ResultType.PROJECT_REQUEST, row, record_from_row(ResultType.PROJECT_REQUEST, data))
