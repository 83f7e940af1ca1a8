"""Shared fixtures: deterministic embedder, scripted LLM, seeded store."""

from datetime import datetime
from typing import Dict, List, Optional

import pytest

from discovery.common.store import InMemoryStore

NOW = datetime(2024, 6, 15, 12, 0, 0)

VOCABULARY = [
    "react", "frontend", "python", "machine", "learning", "atlas",
    "search", "mobile", "roadmap", "model", "product", "data",
]


def embed_text(text: str) -> List[float]:
    lowered = text.lower()
    return [float(lowered.count(word)) for word in VOCABULARY]


def clock() -> datetime:
    return NOW


class FakeEmbedder:
    """Bag-of-words vectors over a fixed vocabulary"""

    mode = "fake"
    is_available = True

    def __init__(self):
        self.calls: List[str] = []

    async def embed(self, texts: List[str]) -> List[List[float]]:
        return [embed_text(t) for t in texts]

    async def embed_single(self, text: str) -> List[float]:
        if not text:
            raise ValueError("Cannot embed empty text")
        self.calls.append(text)
        return embed_text(text)


class FakeLLM:
    """Scripted completions; records every call"""

    provider = "fake"

    def __init__(self, reply: str = "Alice Chen is your best bet. Want to see others?", available: bool = True,
                 chunks: Optional[List[str]] = None, fail: bool = False):
        self.reply = reply
        self.chunks = chunks or ["Alice Chen ", "is your ", "best bet."]
        self.is_available = available
        self.fail = fail
        self.calls: List[List[Dict[str, str]]] = []

    async def complete(self, messages, *, temperature=0.7, max_tokens=1000) -> str:
        self.calls.append(messages)
        if self.fail:
            raise RuntimeError("provider exploded")
        return self.reply

    async def stream(self, messages, *, temperature=0.7, max_tokens=1000):
        self.calls.append(messages)
        for chunk in self.chunks:
            if self.fail:
                raise RuntimeError("provider exploded")
            yield chunk


def _embedded(row: dict, *fields: str) -> dict:
    text = " ".join(str(row.get(f) or "") for f in fields)
    return {**row, "embedding": embed_text(text)}


def seed_tables() -> Dict[str, List[dict]]:
    profiles = [
        {"id": "p1", "name": "Alice Chen", "title": "Frontend Engineer",
         "bio": "Builds React dashboards", "location": "Berlin"},
        {"id": "p2", "name": "Bob Stone", "title": "Data Scientist",
         "bio": "Machine learning models", "location": "Paris"},
        {"id": "p3", "name": "Carol Diaz", "title": "Product Manager",
         "bio": "Runs the Atlas roadmap", "location": "Berlin"},
    ]
    posts = [
        {"id": "po1", "author_id": "p1", "content": "Shipped the new React search UI for Atlas",
         "created_at": "2024-06-10T09:00:00"},
        {"id": "po2", "author_id": "p2", "content": "Training a new ranking model in Python",
         "created_at": "2024-06-12T12:00:00"},
        {"id": "po3", "author_id": "p3", "content": "Atlas roadmap review next week",
         "created_at": "2024-03-01T10:00:00"},
    ]
    projects = [
        {"id": "pr1", "title": "Atlas", "description": "Internal search platform",
         "status": "active", "created_at": "2024-05-01T00:00:00"},
        {"id": "pr2", "title": "Beacon", "description": "Mobile app for field teams",
         "status": "planning", "created_at": "2024-02-01T00:00:00"},
    ]
    requests = [
        {"id": "rq1", "title": "Need a React reviewer", "description": "Review frontend pull requests",
         "created_by": "p3", "created_at": "2024-06-01T00:00:00"},
    ]
    return {
        "profiles": [_embedded(p, "name", "title", "bio") for p in profiles],
        "skills": [
            {"id": "s1", "profile_id": "p1", "skill": "react"},
            {"id": "s2", "profile_id": "p1", "skill": "typescript"},
            {"id": "s3", "profile_id": "p2", "skill": "python"},
            {"id": "s4", "profile_id": "p2", "skill": "machine learning"},
            {"id": "s5", "profile_id": "p3", "skill": "agile"},
        ],
        "experiences": [
            {"id": "e1", "profile_id": "p1", "role": "Frontend Engineer", "company": "Acme",
             "description": "Built React component library", "start_date": "2020-01-01"},
            {"id": "e2", "profile_id": "p3", "role": "Product Manager", "company": "Globex",
             "description": "Owned the search roadmap", "start_date": "2018-03-01",
             "end_date": "2021-06-30"},
        ],
        "educations": [
            {"id": "ed1", "profile_id": "p2", "school": "ETH", "degree": "MSc"},
        ],
        "posts": [_embedded(p, "content") for p in posts],
        "post_mentions": [{"id": "pm1", "post_id": "po3", "profile_id": "p1"}],
        "post_projects": [
            {"id": "pp1", "post_id": "po1", "project_id": "pr1"},
            {"id": "pp2", "post_id": "po3", "project_id": "pr1"},
        ],
        "projects": [_embedded(p, "title", "description") for p in projects],
        "contributions": [
            {"id": "c1", "person_id": "p1", "project_id": "pr1", "role": "Frontend lead"},
            {"id": "c2", "person_id": "p3", "project_id": "pr1", "role": "Product owner"},
            {"id": "c3", "person_id": "p2", "project_id": "pr2", "role": "ML engineer"},
        ],
        "project_requests": [_embedded(r, "title", "description") for r in requests],
    }


@pytest.fixture
def store():
    return InMemoryStore(seed_tables())


@pytest.fixture
def empty_store():
    return InMemoryStore()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def llm():
    return FakeLLM()
