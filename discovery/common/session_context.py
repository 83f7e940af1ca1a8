"""
Session Context

Per-session conversational memory (last query, entities, mentions) used
to resolve follow-up references like "it" or "more like that".

Context is best-effort and process-local by default. ``ContextStore`` is
the seam for backing it with a shared cache.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional


def utcnow() -> datetime:
    """Naive UTC now, the clock used across the pipeline"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class SessionContext:
    session_id: str
    user_id: str = ""
    last_query: Optional[str] = None
    last_entities: List[Dict[str, str]] = field(default_factory=list)
    last_mentions: List[Dict[str, str]] = field(default_factory=list)
    message_count: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


class ContextStore(ABC):
    """Storage for session contexts keyed by session id."""

    @abstractmethod
    def get(self, session_id: str) -> Optional[SessionContext]:
        pass

    @abstractmethod
    def put(self, context: SessionContext) -> None:
        pass

    @abstractmethod
    def evict_older_than(self, max_age: timedelta, now: Optional[datetime] = None) -> int:
        """Drop contexts not updated within ``max_age``; return how many."""


class InMemoryContextStore(ContextStore):
    def __init__(self) -> None:
        self._contexts: Dict[str, SessionContext] = {}

    def __len__(self) -> int:
        return len(self._contexts)

    def get(self, session_id: str) -> Optional[SessionContext]:
        return self._contexts.get(session_id)

    def put(self, context: SessionContext) -> None:
        self._contexts[context.session_id] = context

    def evict_older_than(self, max_age: timedelta, now: Optional[datetime] = None) -> int:
        cutoff = (now or utcnow()) - max_age
        stale = [sid for sid, ctx in self._contexts.items() if ctx.updated_at < cutoff]
        for sid in stale:
            del self._contexts[sid]
        return len(stale)


_NEEDS_CONTEXT = re.compile(
    r"\b(it|its|they|their|them|this|that|these|those|same|similar|another|more)\b", re.I
)
_SINGULAR_REFERENCE = re.compile(r"\b(it|that)\b", re.I)
_CONTINUATION = re.compile(r"\b(same|similar|another|more)\b", re.I)


def enhance_query_with_context(
    query: str,
    context: Optional[SessionContext],
    history: List[Dict[str, str]],
) -> str:
    """Resolve references in ``query`` against the previous turn's entities.

    "it"/"that" are replaced with the most recent entity; "same", "similar",
    "another" and "more" get the previous topics appended. Queries without
    prior history or context are returned unchanged.
    """
    if context is None or not history or not context.last_entities:
        return query
    if not _NEEDS_CONTEXT.search(query):
        return query

    enhanced = query
    if _SINGULAR_REFERENCE.search(query):
        last = context.last_entities[-1]["value"]
        enhanced = _SINGULAR_REFERENCE.sub(lambda _: last, enhanced)

    if _CONTINUATION.search(query):
        topics = ", ".join(e["value"] for e in context.last_entities)
        enhanced += f" (referring to previous discussion about {topics})"

    return enhanced

