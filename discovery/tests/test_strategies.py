"""Tests for semantic, keyword, graph and temporal search strategies."""

from collections import Counter
from datetime import date, datetime
from unittest.mock import AsyncMock

import pytest

from discovery.common.embedding_service import EmbeddingService
from discovery.common.schemas import (
    ExperienceRecord,
    PostRecord,
    ProfileRecord,
    ResultType,
    SearchResult,
)
from discovery.retriever.query_parser import TimeConstraints
from discovery.retriever.strategies import (
    GraphTraversalStrategy,
    KeywordSearchStrategy,
    SearchStrategy,
    SemanticSearchStrategy,
    TemporalFilter,
)


class StaticStrategy(SearchStrategy):
    name = "static"

    def __init__(self, results):
        self.results = results

    async def execute(self, query, params=None):
        return list(self.results)


def _keys(results):
    return {(r.type, r.id) for r in results}


class TestSemanticSearch:
    @pytest.mark.asyncio
    async def test_scores_are_similarities(self, store, embedder):
        strategy = SemanticSearchStrategy(store, embedder, limit=20)
        results = await strategy.execute("react frontend")

        profiles = sorted(
            (r for r in results if r.type == ResultType.PROFILE),
            key=lambda r: r.relevance_score, reverse=True,
        )
        assert profiles[0].id == "p1"
        assert profiles[0].relevance_score == pytest.approx(1.0, abs=1e-5)
        assert embedder.calls == ["react frontend"]

    @pytest.mark.asyncio
    async def test_enriches_profiles_and_projects(self, store, embedder):
        results = await SemanticSearchStrategy(store, embedder).execute("atlas search")
        by_key = {(r.type, r.id): r for r in results}

        alice = by_key[(ResultType.PROFILE, "p1")].data
        assert [e.id for e in alice.experiences] == ["e1"]
        assert alice.skills == ["react", "typescript"]

        atlas = by_key[(ResultType.PROJECT, "pr1")].data
        assert {c.person_id for c in atlas.contributions} == {"p1", "p3"}
        assert {c.profile.name for c in atlas.contributions} == {"Alice Chen", "Carol Diaz"}

        request = by_key[(ResultType.PROJECT_REQUEST, "rq1")].data
        assert request.creator.name == "Carol Diaz"

    @pytest.mark.asyncio
    async def test_limit_per_type(self, store, embedder):
        results = await SemanticSearchStrategy(store, embedder).execute("react", {"limit": 1})
        counts = Counter(r.type for r in results)
        assert counts[ResultType.PROFILE] == 1
        assert counts[ResultType.POST] == 1

    @pytest.mark.asyncio
    async def test_unavailable_embedder_yields_nothing(self, store, caplog):
        results = await SemanticSearchStrategy(store, EmbeddingService(mode="openai", api_key=None)).execute("react")
        assert results == []
        assert "skipping semantic search" in caplog.text

    @pytest.mark.asyncio
    async def test_embedding_error_yields_nothing(self, store, embedder, caplog):
        embedder.embed_single = AsyncMock(side_effect=RuntimeError("rate limited"))
        results = await SemanticSearchStrategy(store, embedder).execute("react")
        assert results == []
        assert "rate limited" in caplog.text


class TestKeywordSearch:
    @pytest.mark.asyncio
    async def test_hits_across_tables(self, store):
        strategy = KeywordSearchStrategy(store)
        results = await strategy.execute("", {"keywords": ["react"], "expand_terms": False})

        keys = _keys(results)
        assert (ResultType.PROFILE, "p1") in keys
        assert (ResultType.POST, "po1") in keys
        assert (ResultType.EXPERIENCE, "e1") in keys

    @pytest.mark.asyncio
    async def test_skill_hits_score_high(self, store):
        results = await KeywordSearchStrategy(store).execute(
            "", {"keywords": ["typescript"], "expand_terms": False}
        )
        skill_hits = [r for r in results if r.match_reason.startswith("Has skills")]
        assert len(skill_hits) == 1
        assert skill_hits[0].id == "p1"
        assert skill_hits[0].relevance_score == KeywordSearchStrategy.SKILL_MATCH_SCORE
        assert skill_hits[0].match_reason == "Has skills: typescript"

    @pytest.mark.asyncio
    async def test_experience_hit_carries_profile(self, store):
        results = await KeywordSearchStrategy(store).execute(
            "", {"keywords": ["component"], "expand_terms": False}
        )
        experience = next(r for r in results if r.type == ResultType.EXPERIENCE)
        assert experience.relevance_score == KeywordSearchStrategy.EXPERIENCE_MATCH_SCORE
        assert experience.data.profile.name == "Alice Chen"

    @pytest.mark.asyncio
    async def test_fraction_score(self, store):
        results = await KeywordSearchStrategy(store).execute(
            "", {"keywords": ["atlas", "zebra"], "expand_terms": False}
        )
        project = next(r for r in results if r.type == ResultType.PROJECT)
        assert project.id == "pr1"
        assert project.relevance_score == pytest.approx(0.5)
        assert project.match_reason == "Project involves: atlas"

    def test_resolve_terms_expands(self, store):
        terms = KeywordSearchStrategy(store).resolve_terms("", {"keywords": ["React"]})
        assert terms[0] == "react"
        assert "reactjs" in terms
        assert len(terms) == len(set(terms))

    def test_resolve_terms_from_query(self, store):
        terms = KeywordSearchStrategy(store).resolve_terms("Atlas roadmap", {"expand_terms": False})
        assert terms == ["atlas", "roadmap"]

    @pytest.mark.asyncio
    async def test_no_terms_no_results(self, store):
        assert await KeywordSearchStrategy(store).execute("is it on the", {}) == []


class TestGraphTraversal:
    @pytest.mark.asyncio
    async def test_cycle_terminates_and_profile_appears_once(self, store):
        # p1 contributes to pr1, and po1 by p1 references pr1
        strategy = GraphTraversalStrategy(store)
        results = await strategy.execute("", {"seed_entities": [{"type": "profile", "id": "p1"}], "depth": 2})

        counts = Counter((r.type, r.id) for r in results)
        assert counts[(ResultType.PROFILE, "p1")] == 1
        assert all(n == 1 for n in counts.values())
        assert (ResultType.PROJECT, "pr1") in counts
        assert (ResultType.POST, "po1") in counts

    @pytest.mark.asyncio
    async def test_deep_traversal_terminates(self, store):
        results = await GraphTraversalStrategy(store).execute(
            "", {"seed_entities": [{"type": "project", "id": "pr1"}], "depth": 6}
        )
        assert len(results) == len(_keys(results))

    @pytest.mark.asyncio
    async def test_keeps_strongest_edge(self, store):
        results = await GraphTraversalStrategy(store).execute(
            "", {"seed_entities": [{"type": "profile", "id": "p1"}], "depth": 2}
        )
        po1 = next(r for r in results if r.id == "po1")
        assert po1.relevance_score == GraphTraversalStrategy.AUTHORED_POST_SCORE

    @pytest.mark.asyncio
    async def test_project_seed_emits_contributors(self, store):
        results = await GraphTraversalStrategy(store).execute(
            "", {"seed_entities": [{"type": "project", "id": "pr1"}], "depth": 1}
        )
        contributors = {r.id: r for r in results if r.type == ResultType.PROFILE}
        assert set(contributors) == {"p1", "p3"}
        assert contributors["p1"].data.contribution_role == "Frontend lead"
        assert contributors["p1"].relevance_score == GraphTraversalStrategy.CONTRIBUTOR_SCORE

    @pytest.mark.asyncio
    async def test_depth_zero(self, store):
        results = await GraphTraversalStrategy(store).execute(
            "", {"seed_entities": [{"type": "profile", "id": "p1"}], "depth": 0}
        )
        assert results == []

    @pytest.mark.asyncio
    async def test_missing_seed(self, store):
        results = await GraphTraversalStrategy(store).execute(
            "", {"seed_entities": [{"type": "project", "id": "nope"}], "depth": 2}
        )
        assert results == []


def _post(post_id, created_at):
    return SearchResult(
        type=ResultType.POST,
        id=post_id,
        data=PostRecord(id=post_id, content="x", created_at=created_at),
        relevance_score=0.5,
        match_reason="Post mentions: x",
    )


LAST_WEEK = TimeConstraints(
    start=datetime(2024, 6, 8, 12), end=datetime(2024, 6, 15, 12), relative="last week"
)


class TestTemporalFilter:
    @pytest.mark.asyncio
    async def test_drops_out_of_window_hits(self):
        inner = StaticStrategy([_post("new", datetime(2024, 6, 10)), _post("old", datetime(2024, 3, 1))])
        results = await TemporalFilter(inner, LAST_WEEK).execute("q")
        assert [r.id for r in results] == ["new"]
        assert results[0].match_reason == "Post mentions: x (last week)"

    @pytest.mark.asyncio
    async def test_undated_hits_pass(self):
        profile = SearchResult(ResultType.PROFILE, "p", ProfileRecord(id="p"), 0.5, "Semantic similarity to query")
        results = await TemporalFilter(StaticStrategy([profile]), LAST_WEEK).execute("q")
        assert results == [profile]
        assert results[0].match_reason == "Semantic similarity to query"

    @pytest.mark.asyncio
    async def test_experience_overlap(self):
        ongoing = SearchResult(
            ResultType.EXPERIENCE, "e1",
            ExperienceRecord(id="e1", start_date=date(2020, 1, 1)), 0.8, "Experience matches: x",
        )
        ended = SearchResult(
            ResultType.EXPERIENCE, "e2",
            ExperienceRecord(id="e2", start_date=date(2018, 1, 1), end_date=date(2021, 1, 1)),
            0.8, "Experience matches: x",
        )
        results = await TemporalFilter(StaticStrategy([ongoing, ended]), LAST_WEEK).execute("q")
        assert [r.id for r in results] == ["e1"]

    @pytest.mark.asyncio
    async def test_unbounded_constraint_passes_everything(self):
        hits = [_post("old", datetime(2020, 1, 1))]
        results = await TemporalFilter(StaticStrategy(hits), TimeConstraints(relative="march")).execute("q")
        assert [r.id for r in results] == ["old"]
        assert results[0].match_reason == "Post mentions: x"

    def test_name(self):
        assert TemporalFilter(StaticStrategy([]), LAST_WEEK).name == "static+temporal"
