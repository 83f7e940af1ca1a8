"""
Retrieval Agent

Coordinates the search strategies for one question:

1. Parse the query and build a SearchPlan
2. Run primary strategies concurrently (time-filtered when needed)
3. Enrich sparse results with a shallow graph traversal
4. Traverse from explicitly mentioned people and projects
5. Run the expansion pass when results are still thin
6. Deduplicate by (type, id) and organize into SearchResults
"""

import asyncio
import inspect
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..common.config import RetrievalConfig
from ..common.embedding_service import EmbeddingService
from ..common.schemas import (
    ProgressType,
    ProgressUpdate,
    Relationship,
    RelationshipType,
    ResultType,
    SearchResult,
    SearchResults,
)
from ..common.store import Store
from .entity_expander import EntityExpander
from .query_parser import EntityType, ParsedQuery, QueryParser
from .strategies import (
    GraphTraversalStrategy,
    KeywordSearchStrategy,
    SearchStrategy,
    SemanticSearchStrategy,
    TemporalFilter,
)

logger = logging.getLogger("discovery.retriever.agent")

ProgressCallback = Callable[[ProgressUpdate], Union[None, Awaitable[None]]]

ALL_ENTITY_TYPES = [t.value for t in ResultType]


@dataclass
class StrategyCall:
    strategy: str
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SearchPlan:
    """What will be run for a query; holds no results"""
    primary: List[StrategyCall] = field(default_factory=list)
    expansion: List[StrategyCall] = field(default_factory=list)
    graph_depth: int = 2
    entities: List[str] = field(default_factory=lambda: list(ALL_ENTITY_TYPES))


async def emit_progress(callback: Optional[ProgressCallback], update: ProgressUpdate) -> None:
    """Deliver a progress update to an optional sync or async sink"""
    if callback is None:
        return
    outcome = callback(update)
    if inspect.isawaitable(outcome):
        await outcome


class RetrievalAgent:
    """
    Multi-strategy retrieval over the people/projects/posts store.

    Progress events are advisory; results are identical with or
    without a progress callback.
    """

    RELATIONAL_CUES = re.compile(r"connect|network|collaborat", re.I)
    PRECISION_CUES = re.compile(r"direct|specific|exactly", re.I)

    def __init__(
        self,
        store: Store,
        embedder: EmbeddingService,
        config: Optional[RetrievalConfig] = None,
        parser: Optional[QueryParser] = None,
        expander: Optional[EntityExpander] = None,
        progress_callback: Optional[ProgressCallback] = None,
        strategies: Optional[Dict[str, SearchStrategy]] = None,
    ):
        self.store = store
        self.config = config or RetrievalConfig()
        self.parser = parser or QueryParser()
        self.expander = expander or EntityExpander()
        self.progress_callback = progress_callback

        self.strategies: Dict[str, SearchStrategy] = {
            "semantic": SemanticSearchStrategy(store, embedder, limit=self.config.semantic_limit),
            "keyword": KeywordSearchStrategy(
                store,
                expander=self.expander,
                parser=self.parser,
                limit=self.config.keyword_limit,
                skill_limit=self.config.skill_limit,
            ),
            "graph": GraphTraversalStrategy(store, post_limit=self.config.graph_post_limit),
        }
        if strategies:
            self.strategies.update(strategies)

    async def _progress(self, kind: ProgressType, message: str, emoji: str) -> None:
        await emit_progress(self.progress_callback, ProgressUpdate(kind, message, emoji))

    async def retrieve_information(
        self,
        query: str,
        parsed: Optional[ParsedQuery] = None,
    ) -> SearchResults:
        """
        Retrieve organized results for a question.

        Args:
            query: Question text
            parsed: Pre-parsed query (e.g. with request mentions applied)

        Returns:
            SearchResults with deduplicated, score-sorted buckets
        """
        await self._progress(ProgressType.ANALYZING, "Analyzing your query...", "🔍")
        parsed = parsed or self.parser.parse(query)
        plan = self.create_search_plan(parsed)
        logger.debug(
            "Plan for %r: primary=%s expansion=%d depth=%d",
            parsed.original_query,
            [c.strategy for c in plan.primary],
            len(plan.expansion),
            plan.graph_depth,
        )

        await self._progress(ProgressType.SEARCHING, "Searching across profiles, posts, and projects...", "📊")
        results = await self._run_calls(plan.primary, parsed)

        if 0 < len(results) < self.config.sparse_result_threshold and parsed.time_constraints is None:
            await self._progress(ProgressType.EXPLORING, "Exploring connections and relationships...", "🕸️")
            results.extend(await self._enrich_with_graph(results))

        if parsed.mentions.people or parsed.mentions.projects:
            results.extend(await self._traverse_mentions(parsed, plan.graph_depth))

        if len(results) < self.config.expansion_threshold and plan.expansion:
            await self._progress(ProgressType.SEARCHING, "Expanding search with related terms...", "🔄")
            results.extend(await self._run_calls(plan.expansion, parsed))

        await self._progress(ProgressType.SYNTHESIZING, "Finding the most relevant information...", "🎯")
        organized = self.organize_results(results)
        logger.debug("Organized %d hits into %d unique results", len(results), organized.total)
        return organized

    def meaningful_terms(self, parsed: ParsedQuery) -> List[str]:
        terms = list(parsed.keywords)
        for entity in parsed.entities:
            if entity.type == EntityType.TIMEFRAME:
                continue
            value = entity.value.lower()
            terms.append(value)
            words = value.split()
            if len(words) > 1:
                terms.extend(words)
        return [
            t for t in dict.fromkeys(terms)
            if t and t not in self.parser.STOP_WORDS
        ]

    def create_search_plan(self, parsed: ParsedQuery) -> SearchPlan:
        plan = SearchPlan()

        # Semantic search always runs over every entity type
        plan.primary.append(StrategyCall("semantic", {"limit": self.config.semantic_limit}))

        terms = self.meaningful_terms(parsed)
        if terms:
            plan.primary.append(StrategyCall("keyword", {"keywords": terms, "expand_terms": True}))

        is_complex = (
            len(parsed.entities) > 1
            and len(parsed.keywords) > 2
            and parsed.time_constraints is None
        )
        if is_complex:
            seeds = [
                e.value for e in parsed.entities
                if e.type in (EntityType.SKILL, EntityType.ROLE)
            ] or parsed.keywords
            expanded: List[str] = []
            for seed in seeds:
                expanded.extend(self.expander.get_all_search_terms(seed))
            plan.expansion.append(StrategyCall(
                "keyword", {"keywords": list(dict.fromkeys(expanded)), "expand_terms": False}
            ))
            if "software" in parsed.original_query.lower():
                plan.expansion.append(StrategyCall(
                    "keyword",
                    {
                        "keywords": self.expander.expand_software_query(parsed.original_query),
                        "expand_terms": False,
                    },
                ))

        if self.RELATIONAL_CUES.search(parsed.original_query):
            plan.graph_depth = 3
        elif self.PRECISION_CUES.search(parsed.original_query):
            plan.graph_depth = 1

        return plan

    def _strategy_for(self, name: str, parsed: ParsedQuery) -> SearchStrategy:
        strategy = self.strategies[name]
        if parsed.time_constraints is not None:
            strategy = TemporalFilter(strategy, parsed.time_constraints)
        return strategy

    async def _run_calls(self, calls: List[StrategyCall], parsed: ParsedQuery) -> List[SearchResult]:
        tasks = [
            asyncio.ensure_future(
                self._strategy_for(call.strategy, parsed).execute(parsed.original_query, call.params)
            )
            for call in calls
        ]
        try:
            batches = await asyncio.gather(*tasks)
        except BaseException:
            # One strategy failed or the caller was cancelled; stop the others
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        for call, batch in zip(calls, batches):
            logger.debug("%s returned %d hits", call.strategy, len(batch))
        return [hit for batch in batches for hit in batch]

    async def _enrich_with_graph(self, results: List[SearchResult]) -> List[SearchResult]:
        seeds = []
        seen = set()
        for hit in sorted(results, key=lambda r: r.relevance_score, reverse=True):
            if hit.key in seen:
                continue
            seen.add(hit.key)
            seeds.append({"type": hit.type.value, "id": hit.id})
            if len(seeds) >= self.config.graph_seed_count:
                break

        graph_results = await self.strategies["graph"].execute(
            "", {"seed_entities": seeds, "depth": self.config.enrichment_depth}
        )
        graph_results.sort(key=lambda r: r.relevance_score, reverse=True)
        return graph_results[: self.config.graph_result_cap]

    async def resolve_mentions(self, parsed: ParsedQuery) -> List[Dict[str, str]]:
        """Store ids for mentioned people and projects, matched by name"""
        seeds = []
        for name in parsed.mentions.people:
            rows = await self.store.search_text("profiles", ["name"], [name], limit=1)
            seeds.extend({"type": ResultType.PROFILE.value, "id": r["id"]} for r in rows)
        for name in parsed.mentions.projects:
            rows = await self.store.search_text("projects", ["title"], [name], limit=1)
            seeds.extend({"type": ResultType.PROJECT.value, "id": r["id"]} for r in rows)
        return seeds

    async def _traverse_mentions(self, parsed: ParsedQuery, depth: int) -> List[SearchResult]:
        seeds = await self.resolve_mentions(parsed)
        if not seeds:
            return []
        graph = self._strategy_for("graph", parsed)
        return await graph.execute("", {"seed_entities": seeds, "depth": depth})

    @staticmethod
    def organize_results(results: List[SearchResult]) -> SearchResults:
        """Deduplicate by (type, id) keeping the higher score, then bucket and sort"""
        best: Dict[str, SearchResult] = {}
        for result in results:
            existing = best.get(result.key)
            if existing is None or result.relevance_score > existing.relevance_score:
                best[result.key] = result

        organized = SearchResults()
        for result in best.values():
            record = result.data.model_copy(
                update={"score": result.relevance_score, "reason": result.match_reason}
            )
            organized.bucket(result.type).append(record)

        for result_type in ResultType:
            organized.bucket(result_type).sort(key=lambda r: r.score or 0.0, reverse=True)

        organized.relationships = RetrievalAgent.extract_relationships(organized)
        return organized

    @staticmethod
    def extract_relationships(results: SearchResults) -> List[Relationship]:
        """Edges visible in the organized result set"""
        relationships = []
        profile_ids = {p.id for p in results.profiles}

        for post in results.posts:
            if post.author_id and post.author_id in profile_ids:
                relationships.append(Relationship(post.author_id, post.id, RelationshipType.AUTHORED))

        for project in results.projects:
            for contribution in project.contributions or []:
                relationships.append(
                    Relationship(contribution.person_id, project.id, RelationshipType.CONTRIBUTES_TO)
                )

        return relationships
