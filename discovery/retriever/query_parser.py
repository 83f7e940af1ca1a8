"""
Query Parser

Turns a free-text chat question into a structured ParsedQuery:
intent, extracted entities, keywords, time window and @-mentions.

Parsing is pure and deterministic. Relative time phrases are resolved
against an injectable clock so results are reproducible in tests.
"""

import calendar
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from ..common.session_context import utcnow


class QueryIntent(str, Enum):
    """Types of query intent"""
    FIND_PEOPLE = "find_people"  # "Who could help with X?"
    FIND_PROJECTS = "find_projects"  # "Projects about X"
    FIND_ACTIVITY = "find_activity"  # "Any updates on X?"
    FIND_KNOWLEDGE = "find_knowledge"  # "Who has experience with X?"
    FIND_RELATIONSHIPS = "find_relationships"  # "Who worked with X?"
    ANALYTICAL = "analytical"  # counting, trends, statistics
    TEMPORAL = "temporal"  # time-based questions
    EXPLORATORY = "exploratory"  # open-ended discovery
    SPECIFIC = "specific"  # a single named entity
    GENERAL = "general"  # Catch-all


class EntityType(str, Enum):
    PERSON = "person"
    PROJECT = "project"
    SKILL = "skill"
    TIMEFRAME = "timeframe"
    LOCATION = "location"
    ROLE = "role"


@dataclass(frozen=True)
class ExtractedEntity:
    """A pattern-matched entity. Confidence is match certainty, not existence."""
    type: EntityType
    value: str
    confidence: float


@dataclass(frozen=True)
class TimeConstraints:
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    relative: Optional[str] = None

    @property
    def is_bounded(self) -> bool:
        return self.start is not None or self.end is not None


@dataclass(frozen=True)
class Mentions:
    people: List[str] = field(default_factory=list)
    projects: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ParsedQuery:
    """Parsed representation of a user query"""
    original_query: str
    intent: QueryIntent
    entities: List[ExtractedEntity] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    time_constraints: Optional[TimeConstraints] = None
    mentions: Mentions = field(default_factory=Mentions)

    def entities_of(self, entity_type: EntityType) -> List[ExtractedEntity]:
        return [e for e in self.entities if e.type == entity_type]


def _any(patterns: List[str], flags: int = re.I) -> Callable[[str], bool]:
    compiled = [re.compile(p, flags) for p in patterns]
    return lambda text: any(p.search(text) for p in compiled)


_specific_reference = _any([r"tell me about @", r'what is "[^"]+"'])
# Case-sensitive: the capital marks a proper name, so "who is a good
# React developer" stays a people search rather than a single lookup
_named_lookup = _any([r"[Ww]ho is [A-Z]", r"[Ii]nformation on [A-Z]"], 0)


def _start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _end_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=23, minute=59, second=59, microsecond=999999)


def _months_ago(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 - months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


class QueryParser:
    """
    Parses chat questions for people/project/activity search.

    Intent detection is a first-match-wins decision list: the earliest
    declared predicate that matches decides the intent.
    """

    SKILL_KEYWORDS = [
        "react", "angular", "vue", "javascript", "typescript", "python", "java", "go", "rust",
        "kubernetes", "docker", "aws", "azure", "gcp", "devops", "machine learning", "ml", "ai",
        "data science", "frontend", "backend", "full stack", "mobile", "ios", "android",
        "design", "ui", "ux", "product", "marketing", "sales", "finance", "hr",
        "agile", "scrum", "project management", "leadership", "strategy",
    ]

    ROLE_KEYWORDS = [
        "developer", "engineer", "designer", "manager", "lead", "architect", "analyst",
        "scientist", "researcher", "consultant", "specialist", "coordinator", "director",
        "vp", "cto", "ceo", "founder", "intern", "junior", "senior", "principal",
    ]

    # First words of capitalized spans that are not person names
    NON_NAME_TERMS = {"Project", "Team", "Department", "Company", "Microsoft", "Google", "Amazon"}

    STOP_WORDS = {
        "the", "is", "at", "which", "on", "a", "an", "and", "or", "but",
        "in", "with", "to", "for", "of", "as", "by", "that", "this",
        "who", "what", "where", "when", "how", "why", "would", "could",
        "should", "be", "best", "find", "show", "tell", "me", "us",
    }

    TEMPORAL_INDICATORS = [
        "when", "since", "before", "after", "during", "between",
        "timeline", "history", "recently", "lately", "past", "future",
    ]

    INTENT_RULES: List[Tuple[Callable[[str], bool], QueryIntent]] = [
        (_any([
            r"how many", r"count of", r"number of", r"trend", r"statistics", r"compare",
            r"most \w+", r"least \w+", r"top \d+", r"distribution", r"percentage",
        ]), QueryIntent.ANALYTICAL),
        (_any([rf"\b{w}\b" for w in TEMPORAL_INDICATORS]), QueryIntent.TEMPORAL),
        (lambda q: _specific_reference(q) or _named_lookup(q), QueryIntent.SPECIFIC),
        (_any([
            r"what.*(happening|going on|new)", r"show me", r"explore", r"discover",
            r"find out", r"tell me about", r"anything about",
        ]), QueryIntent.EXPLORATORY),
        (_any([
            r"who\s+(would|could|should|is|are|has|have)", r"someone\s+(who|with|that)",
            r"person\s+(who|with|that)", r"expert\s+(in|on|with)", r"best\s+(for|at|with)",
            r"developer|engineer|designer|manager|lead|architect", r"find\s+(me\s+)?(a\s+)?person",
        ]), QueryIntent.FIND_PEOPLE),
        (_any([
            r"projects?\s+(about|on|for|related)", r"what('s|s)?\s+being\s+(built|developed|worked)",
            r"initiatives?\s+(on|about|for)", r"working\s+on", r"building\s+\w+",
        ]), QueryIntent.FIND_PROJECTS),
        (_any([
            r"what('s|s)?\s+happening", r"recent(ly)?", r"updates?\s+(on|about|from)",
            r"latest\s+(from|about|on)", r"this\s+(week|month|quarter)", r"activity\s+(from|by|on)",
        ]), QueryIntent.FIND_ACTIVITY),
        (_any([
            r"how\s+(to|do|does|did)", r"experience\s+(with|in|on)", r"worked\s+(on|with)",
            r"knowledge\s+(of|about|in)", r"familiar\s+with", r"knows?\s+(about|how)",
        ]), QueryIntent.FIND_KNOWLEDGE),
        (_any([
            r"who\s+knows\s+who", r"connected\s+(to|with)", r"worked\s+with",
            r"collaborated\s+(with|on)", r"team\s+(members|with)", r"colleagues\s+(of|with)",
        ]), QueryIntent.FIND_RELATIONSHIPS),
    ]

    # Named relative phrases, resolved to concrete bounds from "now"
    # Weeks start on Monday
    RELATIVE_TIMES: Dict[str, Callable[[datetime], Tuple[datetime, datetime]]] = {
        "last week": lambda now: (now - timedelta(days=7), now),
        "this week": lambda now: (_start_of_day(now - timedelta(days=now.weekday())), now),
        "last month": lambda now: (_months_ago(now, 1), now),
        "this month": lambda now: (_start_of_day(now.replace(day=1)), now),
        "recently": lambda now: (now - timedelta(days=14), now),
        "yesterday": lambda now: (
            _start_of_day(now - timedelta(days=1)), _end_of_day(now - timedelta(days=1))
        ),
        "today": lambda now: (_start_of_day(now), now),
        "tomorrow": lambda now: (
            _start_of_day(now + timedelta(days=1)), _end_of_day(now + timedelta(days=1))
        ),
    }

    # Matched text is kept as ``relative`` only; no bounds are computed
    FALLBACK_TIME_PATTERNS = [
        re.compile(r"(?:in\s+the\s+)?(?:last|past)\s+\d+\s+(?:day|week|month|year)s?", re.I),
        re.compile(r"\b\d{4}\b"),
        # Capitalised and mid-sentence, so the verb "may" and a leading "May I" do not count
        re.compile(
            r"(?<=\s)(January|February|March|April|May|June|July|August|"
            r"September|October|November|December)\b"
        ),
    ]

    PERSON_MENTION = re.compile(r"@(\w+)")
    PROJECT_MENTION = re.compile(r"Project\s+([A-Z]\w*)")
    NAME_SPAN = re.compile(r"\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+)+)\b")
    LOCATION_SPAN = re.compile(r"\b(?:based in|located in)\s+([A-Z]\w*(?:\s+[A-Z]\w*)*)")

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock
        self._vocabulary = set()
        for term in self.SKILL_KEYWORDS + self.ROLE_KEYWORDS:
            self._vocabulary.update(term.split())

    def parse(self, query: str, now: Optional[datetime] = None) -> ParsedQuery:
        """
        Parse a user query.

        Args:
            query: Raw question text
            now: Reference time for relative phrases (defaults to the clock)

        Returns:
            ParsedQuery
        """
        time_constraints = self._extract_time_constraints(query, now or self._clock())
        mentions = self._extract_mentions(query)

        return ParsedQuery(
            original_query=query,
            intent=self._detect_intent(query),
            entities=self._extract_entities(query, time_constraints, mentions),
            keywords=self.extract_keywords(query),
            time_constraints=time_constraints,
            mentions=mentions,
        )

    def _detect_intent(self, query: str) -> QueryIntent:
        for matches, intent in self.INTENT_RULES:
            if matches(query):
                return intent
        return QueryIntent.GENERAL

    @staticmethod
    def _contains_term(text: str, term: str) -> bool:
        return re.search(rf"(?<!\w){re.escape(term)}(?!\w)", text) is not None

    def _extract_entities(
        self,
        query: str,
        time_constraints: Optional[TimeConstraints],
        mentions: Mentions,
    ) -> List[ExtractedEntity]:
        lowered = query.lower()
        entities: List[ExtractedEntity] = []

        for skill in self.SKILL_KEYWORDS:
            if self._contains_term(lowered, skill):
                entities.append(ExtractedEntity(EntityType.SKILL, skill, 0.9))

        for role in self.ROLE_KEYWORDS:
            if self._contains_term(lowered, role):
                entities.append(ExtractedEntity(EntityType.ROLE, role, 0.85))

        for match in self.NAME_SPAN.finditer(query):
            span = match.group(1)
            words = span.split()
            if words[0] in self.NON_NAME_TERMS:
                continue
            if any(w.lower() in self._vocabulary for w in words):
                continue
            entities.append(ExtractedEntity(EntityType.PERSON, span, 0.7))

        for match in self.LOCATION_SPAN.finditer(query):
            entities.append(ExtractedEntity(EntityType.LOCATION, match.group(1), 0.7))

        for project in mentions.projects:
            entities.append(ExtractedEntity(EntityType.PROJECT, project, 0.8))

        if time_constraints and time_constraints.relative:
            entities.append(ExtractedEntity(EntityType.TIMEFRAME, time_constraints.relative, 0.8))

        seen = set()
        unique = []
        for entity in entities:
            key = (entity.type, entity.value)
            if key not in seen:
                seen.add(key)
                unique.append(entity)
        return unique

    def extract_keywords(self, text: str) -> List[str]:
        """Lowercased content words longer than two characters"""
        keywords = []
        for word in text.split():
            cleaned = re.sub(r"[^\w]", "", word).lower()
            if len(cleaned) > 2 and cleaned not in self.STOP_WORDS:
                keywords.append(cleaned)
        return keywords

    def _extract_time_constraints(self, query: str, now: datetime) -> Optional[TimeConstraints]:
        lowered = query.lower()
        for phrase, resolve in self.RELATIVE_TIMES.items():
            if self._contains_term(lowered, phrase):
                start, end = resolve(now)
                return TimeConstraints(start=start, end=end, relative=phrase)

        for pattern in self.FALLBACK_TIME_PATTERNS:
            match = pattern.search(query)
            if match:
                return TimeConstraints(relative=match.group(0))

        return None

    def _extract_mentions(self, query: str) -> Mentions:
        return Mentions(
            people=self.PERSON_MENTION.findall(query),
            projects=self.PROJECT_MENTION.findall(query),
        )
