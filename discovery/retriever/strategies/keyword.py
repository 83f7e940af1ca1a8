"""
Keyword Search Strategy

Substring search per entity type, optionally broadened through the
EntityExpander. Scores are the fraction of search terms a hit contains;
skill-table hits get a fixed high score and experience hits a flat one.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ...common.schemas import ResultType, SearchResult, record_from_row
from ...common.store import Row, Store
from ..entity_expander import EntityExpander
from ..query_parser import QueryParser
from .base import SearchStrategy, load_profile

logger = logging.getLogger("discovery.retriever.keyword")


def _matched(terms: List[str], *values: Optional[str]) -> List[str]:
    haystacks = [v.lower() for v in values if v]
    return [t for t in terms if any(t in h for h in haystacks)]


def _fraction(matched: List[str], terms: List[str]) -> float:
    return len(matched) / len(terms) if terms else 0.0


class KeywordSearchStrategy(SearchStrategy):
    """OR-pattern search over profiles, experiences, skills, posts and projects."""

    name = "keyword"

    SKILL_MATCH_SCORE = 0.9
    EXPERIENCE_MATCH_SCORE = 0.8

    def __init__(
        self,
        store: Store,
        expander: Optional[EntityExpander] = None,
        parser: Optional[QueryParser] = None,
        limit: int = 20,
        skill_limit: int = 30,
    ):
        self.store = store
        self.expander = expander or EntityExpander()
        self.parser = parser or QueryParser()
        self.limit = limit
        self.skill_limit = skill_limit

    def resolve_terms(self, query: str, params: Dict[str, Any]) -> List[str]:
        """Search terms from explicit ``keywords`` or the query, expanded unless disabled"""
        keywords = params.get("keywords") or self.parser.extract_keywords(query)
        if params.get("expand_terms", True):
            expanded = []
            for keyword in keywords:
                expanded.extend(self.expander.get_all_search_terms(keyword))
            keywords = expanded
        return list(dict.fromkeys(k.lower() for k in keywords if k))

    async def execute(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[SearchResult]:
        terms = self.resolve_terms(query, params or {})
        if not terms:
            return []

        batches = await asyncio.gather(
            self._search_profiles(terms),
            self._search_experiences(terms),
            self._search_skills(terms),
            self._search_posts(terms),
            self._search_projects(terms),
        )
        results = [hit for batch in batches for hit in batch]
        logger.debug("Keyword search over %d terms returned %d hits", len(terms), len(results))
        return results

    async def _search_profiles(self, terms: List[str]) -> List[SearchResult]:
        rows = await self.store.search_text("profiles", ["name", "title", "bio"], terms, limit=self.limit)
        records = await asyncio.gather(*(load_profile(self.store, r) for r in rows))

        results = []
        for record in records:
            matched = _matched(terms, record.title, record.bio, record.name, *record.skills)
            results.append(SearchResult(
                type=ResultType.PROFILE,
                id=record.id,
                data=record,
                relevance_score=_fraction(matched, terms),
                match_reason=f"Matches keywords: {', '.join(matched)}",
            ))
        return results

    async def _search_experiences(self, terms: List[str]) -> List[SearchResult]:
        rows = await self.store.search_text(
            "experiences", ["role", "company", "description"], terms, limit=self.limit
        )

        async def build(row: Row) -> SearchResult:
            data = dict(row)
            person = await self.store.get("profiles", row.get("profile_id"))
            if person:
                data["profile"] = await load_profile(self.store, person, with_experiences=False)
            record = record_from_row(ResultType.EXPERIENCE, data)
            matched = _matched(terms, record.role, record.description)
            return SearchResult(
                type=ResultType.EXPERIENCE,
                id=record.id,
                data=record,
                relevance_score=self.EXPERIENCE_MATCH_SCORE,
                match_reason=f"Experience matches: {', '.join(matched)}",
            )

        return list(await asyncio.gather(*(build(r) for r in rows)))

    async def _search_skills(self, terms: List[str]) -> List[SearchResult]:
        rows = await self.store.search_text("skills", ["skill"], terms, limit=self.skill_limit)

        # Group by profile so each person yields one hit
        matched_by_profile: Dict[str, List[str]] = {}
        for row in rows:
            matched_by_profile.setdefault(row["profile_id"], []).append(row["skill"])

        async def build(profile_id: str, matched: List[str]) -> Optional[SearchResult]:
            person = await self.store.get("profiles", profile_id)
            if not person:
                return None
            record = await load_profile(self.store, person)
            return SearchResult(
                type=ResultType.PROFILE,
                id=profile_id,
                data=record,
                relevance_score=self.SKILL_MATCH_SCORE,
                match_reason=f"Has skills: {', '.join(matched)}",
            )

        built = await asyncio.gather(*(build(pid, m) for pid, m in matched_by_profile.items()))
        return [hit for hit in built if hit is not None]

    async def _search_posts(self, terms: List[str]) -> List[SearchResult]:
        rows = await self.store.search_text(
            "posts", ["content"], terms, limit=self.limit, order_by="created_at"
        )
        results = []
        for row in rows:
            record = record_from_row(ResultType.POST, row)
            matched = _matched(terms, record.content)
            results.append(SearchResult(
                type=ResultType.POST,
                id=record.id,
                data=record,
                relevance_score=_fraction(matched, terms),
                match_reason=f"Post mentions: {', '.join(matched)}",
            ))
        return results

    async def _search_projects(self, terms: List[str]) -> List[SearchResult]:
        rows = await self.store.search_text("projects", ["title", "description"], terms, limit=self.limit)
        results = []
        for row in rows:
            record = record_from_row(ResultType.PROJECT, row)
            matched = _matched(terms, record.title, record.description)
            results.append(SearchResult(
                type=ResultType.PROJECT,
                id=record.id,
                data=record,
                relevance_score=_fraction(matched, terms),
                match_reason=f"Project involves: {', '.join(matched)}",
            ))
        return results
