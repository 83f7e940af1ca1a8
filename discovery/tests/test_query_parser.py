"""Tests for QueryParser intent, entity, keyword and time extraction."""

from datetime import datetime, timedelta

import pytest

from discovery.retriever.query_parser import (
    EntityType,
    ExtractedEntity,
    QueryIntent,
    QueryParser,
)

from conftest import NOW, clock


@pytest.fixture
def parser():
    return QueryParser(clock=clock)


class TestIntentDetection:
    def test_who_knows_skill_falls_through_to_general(self, parser):
        parsed = parser.parse("who knows React?")
        assert parsed.intent == QueryIntent.GENERAL

    def test_analytical_wins_over_people(self, parser):
        parsed = parser.parse("how many engineers worked on Atlas?")
        assert parsed.intent == QueryIntent.ANALYTICAL

    def test_temporal_indicator(self, parser):
        assert parser.parse("when did Atlas start").intent == QueryIntent.TEMPORAL

    def test_temporal_needs_whole_word(self, parser):
        # "whenever" must not count as "when"
        assert parser.parse("whenever it rains").intent == QueryIntent.GENERAL

    def test_named_lookup_is_specific(self, parser):
        assert parser.parse("Who is Alice Chen?").intent == QueryIntent.SPECIFIC

    def test_lowercase_who_is_finds_people(self, parser):
        assert parser.parse("who is a good react developer").intent == QueryIntent.FIND_PEOPLE

    def test_exploratory(self, parser):
        assert parser.parse("show me the design docs").intent == QueryIntent.EXPLORATORY

    def test_projects(self, parser):
        assert parser.parse("projects about machine learning").intent == QueryIntent.FIND_PROJECTS

    def test_activity(self, parser):
        assert parser.parse("any updates on Atlas").intent == QueryIntent.FIND_ACTIVITY

    def test_knowledge(self, parser):
        assert parser.parse("anyone familiar with kubernetes").intent == QueryIntent.FIND_KNOWLEDGE

    def test_no_match_is_general(self, parser):
        parsed = parser.parse("hello there")
        assert parsed.intent == QueryIntent.GENERAL
        assert parsed.entities == []


class TestEntityExtraction:
    def test_skill_entity(self, parser):
        parsed = parser.parse("who knows React?")
        assert ExtractedEntity(EntityType.SKILL, "react", 0.9) in parsed.entities

    def test_roles_and_skills(self, parser):
        parsed = parser.parse("we need a Senior React Developer")
        values = {(e.type, e.value) for e in parsed.entities}
        assert (EntityType.SKILL, "react") in values
        assert (EntityType.ROLE, "developer") in values
        assert (EntityType.ROLE, "senior") in values

    def test_capitalized_vocabulary_is_not_a_person(self, parser):
        parsed = parser.parse("we need a Senior React Developer")
        assert parsed.entities_of(EntityType.PERSON) == []

    def test_person_name(self, parser):
        parsed = parser.parse("find someone like Alice Chen")
        assert ExtractedEntity(EntityType.PERSON, "Alice Chen", 0.7) in parsed.entities

    def test_project_prefix_is_not_a_person(self, parser):
        parsed = parser.parse("status of Project Atlas")
        assert parsed.entities_of(EntityType.PERSON) == []
        assert ExtractedEntity(EntityType.PROJECT, "Atlas", 0.8) in parsed.entities

    def test_location(self, parser):
        parsed = parser.parse("designers based in Berlin")
        assert ExtractedEntity(EntityType.LOCATION, "Berlin", 0.7) in parsed.entities

    def test_skill_needs_word_boundary(self, parser):
        parsed = parser.parse("going to the store")
        assert (EntityType.SKILL, "go") not in {(e.type, e.value) for e in parsed.entities}

    def test_entities_deduplicated(self, parser):
        parsed = parser.parse("react react react")
        assert len(parsed.entities_of(EntityType.SKILL)) == 1


class TestKeywords:
    def test_stop_words_and_short_words_dropped(self, parser):
        assert parser.parse("Who is the best React developer?").keywords == ["react", "developer"]

    def test_punctuation_stripped(self, parser):
        assert parser.extract_keywords("Atlas, Beacon!") == ["atlas", "beacon"]


class TestMentions:
    def test_person_and_project_mentions(self, parser):
        parsed = parser.parse("did @alice post about Project Atlas")
        assert parsed.mentions.people == ["alice"]
        assert parsed.mentions.projects == ["Atlas"]


class TestTimeConstraints:
    def test_last_week_window(self, parser):
        parsed = parser.parse("what happened last week on Project Atlas")
        tc = parsed.time_constraints
        assert tc.relative == "last week"
        assert tc.start == NOW - timedelta(days=7)
        assert tc.end == NOW
        assert parsed.mentions.projects == ["Atlas"]
        assert ExtractedEntity(EntityType.TIMEFRAME, "last week", 0.8) in parsed.entities

    def test_this_week_starts_monday(self, parser):
        tc = parser.parse("posts this week").time_constraints
        assert tc.start == datetime(2024, 6, 10)
        assert tc.end == NOW

    def test_last_month(self, parser):
        tc = parser.parse("projects from last month").time_constraints
        assert tc.start == datetime(2024, 5, 15, 12, 0, 0)

    def test_recently_is_two_weeks(self, parser):
        tc = parser.parse("who posted recently").time_constraints
        assert tc.start == NOW - timedelta(days=14)

    def test_yesterday_whole_day(self, parser):
        tc = parser.parse("what was shipped yesterday").time_constraints
        assert tc.start == datetime(2024, 6, 14)
        assert tc.end == datetime(2024, 6, 14, 23, 59, 59, 999999)

    def test_fallback_pattern_sets_relative_only(self, parser):
        tc = parser.parse("posts from March").time_constraints
        assert tc.relative == "March"
        assert tc.start is None and tc.end is None
        assert not tc.is_bounded

    @pytest.mark.parametrize("query", [
        "who may know React?",
        "May I ask who knows React?",
        "posts from march",
    ])
    def test_month_needs_capital_mid_sentence(self, parser, query):
        assert parser.parse(query).time_constraints is None

    def test_explicit_now_overrides_clock(self, parser):
        other = datetime(2023, 1, 10)
        tc = parser.parse("today", now=other).time_constraints
        assert tc.start == datetime(2023, 1, 10)

    def test_no_time_phrase(self, parser):
        assert parser.parse("who knows React?").time_constraints is None


class TestDeterminism:
    @pytest.mark.parametrize("query", [
        "who knows React?",
        "what happened last week on Project Atlas",
        "designers based in Berlin",
    ])
    def test_parse_is_repeatable(self, parser, query):
        assert parser.parse(query) == parser.parse(query)
