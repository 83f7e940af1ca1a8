"""
Graph Traversal Strategy

Walks typed relationship edges outward from seed entities:

    profile --authored--> post --mentions--> profile / project
    profile --contributes_to--> project --contributor--> profile
    project <--references-- post

Scores are fixed per edge kind and reflect how indirect the connection
is, not the literal depth. A ``visited`` set keyed by ``type:id`` is
checked before any node is expanded, so cyclic graphs terminate.
"""

import logging
from typing import Any, Dict, List, Optional, Set

from ...common.schemas import PersonRef, ResultType, SearchResult, record_from_row
from ...common.store import Store
from .base import SearchStrategy, load_contributions, load_profile

logger = logging.getLogger("discovery.retriever.graph")


class GraphTraversalStrategy(SearchStrategy):
    """Depth-bounded traversal from ``params["seed_entities"]``."""

    name = "graph"

    PROJECT_SCORE = 0.8
    CONTRIBUTOR_SCORE = 0.75
    AUTHORED_POST_SCORE = 0.7
    PROJECT_POST_SCORE = 0.6

    def __init__(self, store: Store, post_limit: int = 10, default_depth: int = 2):
        self.store = store
        self.post_limit = post_limit
        self.default_depth = default_depth

    async def execute(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[SearchResult]:
        """
        Traverse from seeds.

        Args:
            query: Unused; traversal is driven by seeds
            params: ``seed_entities`` as ``[{"type": ..., "id": ...}]`` and ``depth``

        Returns:
            One hit per reached (type, id), keeping the strongest connection
        """
        params = params or {}
        depth = params.get("depth", self.default_depth)
        visited: Set[str] = set()
        found: Dict[str, SearchResult] = {}

        for seed in params.get("seed_entities", []):
            seed_type = ResultType(seed["type"])
            await self._traverse(seed_type, seed["id"], depth, visited, found)

        logger.debug("Graph traversal visited %d nodes, found %d results", len(visited), len(found))
        return list(found.values())

    @staticmethod
    def _emit(found: Dict[str, SearchResult], hit: SearchResult) -> None:
        existing = found.get(hit.key)
        if existing is None or hit.relevance_score > existing.relevance_score:
            found[hit.key] = hit

    async def _traverse(
        self,
        node_type: ResultType,
        node_id: str,
        depth: int,
        visited: Set[str],
        found: Dict[str, SearchResult],
    ) -> None:
        key = f"{node_type.value}:{node_id}"
        if key in visited or depth <= 0:
            return
        visited.add(key)

        if node_type == ResultType.PROFILE:
            await self._from_profile(node_id, depth, visited, found)
        elif node_type == ResultType.PROJECT:
            await self._from_project(node_id, depth, visited, found)
        elif node_type == ResultType.POST:
            await self._from_post(node_id, depth, visited, found)

    async def _from_profile(self, profile_id, depth, visited, found) -> None:
        posts = await self.store.find_where(
            "posts", {"author_id": profile_id}, order_by="created_at", limit=self.post_limit
        )
        for post in posts:
            self._emit(found, SearchResult(
                type=ResultType.POST,
                id=post["id"],
                data=record_from_row(ResultType.POST, post),
                relevance_score=self.AUTHORED_POST_SCORE,
                match_reason="Posted by related person",
            ))
            if depth > 1:
                await self._follow_post_links(post["id"], depth, visited, found)

        contributions = await self.store.find_where("contributions", {"person_id": profile_id})
        for contribution in contributions:
            project = await self.store.get("projects", contribution["project_id"])
            if project:
                self._emit(found, SearchResult(
                    type=ResultType.PROJECT,
                    id=project["id"],
                    data=record_from_row(ResultType.PROJECT, project),
                    relevance_score=self.PROJECT_SCORE,
                    match_reason="Related person contributes to this project",
                ))
            await self._traverse(ResultType.PROJECT, contribution["project_id"], depth - 1, visited, found)

    async def _from_project(self, project_id, depth, visited, found) -> None:
        project = await self.store.get("projects", project_id)
        if project is None:
            return

        contributions = await load_contributions(self.store, project_id)
        data = dict(project)
        data["contributions"] = contributions
        self._emit(found, SearchResult(
            type=ResultType.PROJECT,
            id=project_id,
            data=record_from_row(ResultType.PROJECT, data),
            relevance_score=self.PROJECT_SCORE,
            match_reason="Connected through graph traversal",
        ))

        for contribution in contributions:
            person = await self.store.get("profiles", contribution.person_id)
            if person:
                record = await load_profile(self.store, person, with_experiences=False)
                record.contribution_role = contribution.role
                record.contribution_description = contribution.description
                self._emit(found, SearchResult(
                    type=ResultType.PROFILE,
                    id=record.id,
                    data=record,
                    relevance_score=self.CONTRIBUTOR_SCORE,
                    match_reason=f"Contributes to related project as {contribution.role or 'contributor'}",
                ))
            await self._traverse(ResultType.PROFILE, contribution.person_id, depth - 1, visited, found)

        links = await self.store.find_where("post_projects", {"project_id": project_id}, limit=self.post_limit)
        for link in links:
            post = await self.store.get("posts", link["post_id"])
            if post is None:
                continue
            data = dict(post)
            author = await self.store.get("profiles", post.get("author_id")) if post.get("author_id") else None
            if author:
                data["author"] = PersonRef(id=author["id"], name=author.get("name"))
            self._emit(found, SearchResult(
                type=ResultType.POST,
                id=post["id"],
                data=record_from_row(ResultType.POST, data),
                relevance_score=self.PROJECT_POST_SCORE,
                match_reason="Mentions related project",
            ))
            if post.get("author_id"):
                await self._traverse(ResultType.PROFILE, post["author_id"], depth - 1, visited, found)

    async def _from_post(self, post_id, depth, visited, found) -> None:
        post = await self.store.get("posts", post_id)
        if post is None:
            return
        if post.get("author_id"):
            await self._traverse(ResultType.PROFILE, post["author_id"], depth - 1, visited, found)
        await self._follow_post_links(post_id, depth, visited, found)

    async def _follow_post_links(self, post_id, depth, visited, found) -> None:
        mentions = await self.store.find_where("post_mentions", {"post_id": post_id})
        for mention in mentions:
            await self._traverse(ResultType.PROFILE, mention["profile_id"], depth - 1, visited, found)

        links = await self.store.find_where("post_projects", {"post_id": post_id})
        for link in links:
            await self._traverse(ResultType.PROJECT, link["project_id"], depth - 1, visited, found)
