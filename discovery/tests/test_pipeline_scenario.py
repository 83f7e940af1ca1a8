"""
Pipeline Scenario Tests

Walks the whole chat pipeline against a small seeded directory:
- Alice Chen (Frontend Engineer): React, contributes to Atlas
- Bob Stone (Data Scientist): Python and ML, contributes to Beacon
- Carol Diaz (Product Manager): owns the Atlas roadmap

Scenarios:
1. Skill lookup parses into a skill entity
2. Relative time plus a project mention
3. Empty directory answers without the LLM
4. Duplicate hits collapse to the strongest score
5. Graph traversal over a cycle terminates
"""

from datetime import timedelta

import pytest

from discovery.common.schemas import ProfileRecord, ResultType, SearchResult, SearchResults
from discovery.responder.response_agent import ResponseAgent
from discovery.retriever.query_parser import EntityType, ExtractedEntity, QueryIntent, QueryParser
from discovery.retriever.retrieval_agent import RetrievalAgent
from discovery.retriever.strategies import GraphTraversalStrategy, KeywordSearchStrategy
from discovery.server.orchestrator import ChatOrchestrator, ChatTurn

from conftest import NOW, clock


@pytest.fixture
def parser():
    return QueryParser(clock=clock)


class TestScenarios:
    def test_skill_lookup(self, parser):
        parsed = parser.parse("who knows React?")
        assert parsed.intent in (QueryIntent.GENERAL, QueryIntent.FIND_PEOPLE)
        assert ExtractedEntity(EntityType.SKILL, "react", 0.9) in parsed.entities

    def test_relative_time_and_project_mention(self, parser):
        parsed = parser.parse("what happened last week on Project Atlas")
        tc = parsed.time_constraints
        assert tc.relative == "last week"
        assert tc.end - tc.start == timedelta(days=7)
        assert tc.end == NOW
        assert "Atlas" in parsed.mentions.projects

    @pytest.mark.asyncio
    async def test_empty_directory(self, empty_store, embedder, llm, parser):
        results = await RetrievalAgent(empty_store, embedder, parser=parser).retrieve_information("who knows React?")
        synthesis = await ResponseAgent(llm, clock=clock).synthesize_response(
            results, parser.parse("who knows React?"), []
        )
        assert synthesis.needs_more_data is False
        assert synthesis.answer
        assert "?" in synthesis.answer
        assert llm.calls == []

    def test_duplicate_hits(self, store):
        organized = RetrievalAgent.organize_results([
            SearchResult(ResultType.PROFILE, "p1", ProfileRecord(id="p1"), 0.4, "Matches keywords: react"),
            SearchResult(ResultType.PROFILE, "p1", ProfileRecord(id="p1"), 0.9, "Has skills: react"),
        ])
        assert [(p.id, p.score) for p in organized.profiles] == [("p1", 0.9)]

    @pytest.mark.asyncio
    async def test_graph_cycle(self, store):
        results = await GraphTraversalStrategy(store).execute(
            "", {"seed_entities": [{"type": "profile", "id": "p1"}], "depth": 2}
        )
        profile_hits = [r for r in results if r.type == ResultType.PROFILE and r.id == "p1"]
        assert len(profile_hits) == 1


class TestConversation:
    @pytest.mark.asyncio
    async def test_project_team_question(self, store, embedder, llm):
        orchestrator = ChatOrchestrator(store, embedder, llm, clock=clock)

        result = await orchestrator.answer("projects about search", "u1")

        prompt = llm.calls[-1][-1]["content"]
        assert "=== PROJECTS ===" in prompt
        assert 'Project: "Atlas"' in prompt
        assert "Alice Chen (Frontend lead)" in prompt
        assert any(s.type == ResultType.PROJECT for s in result.sources)

    @pytest.mark.asyncio
    async def test_thin_people_results_are_augmented(self, store, embedder, llm, parser):
        # Only experience rows match; the first attempt asks for the people behind them
        orchestrator = ChatOrchestrator(store, embedder, llm, clock=clock)
        hits = await KeywordSearchStrategy(store).execute(
            "", {"keywords": ["roadmap", "component"], "expand_terms": False}
        )
        results = SearchResults(experiences=[r.data for r in hits if r.type == ResultType.EXPERIENCE])
        parsed = parser.parse("who is a good python developer")
        turn = ChatTurn("s1", "u1", parsed.original_query, parsed)

        outcome = await orchestrator.settle(ResponseAgent(llm, clock=clock).synthesize_response, results, turn)

        assert outcome.needs_more_data is False
        assert outcome.answer == llm.reply
        assert {p.id for p in results.profiles} == {"p1", "p3"}
        assert "=== PEOPLE ===" in llm.calls[-1][-1]["content"]
