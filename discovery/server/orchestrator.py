"""
Chat Orchestrator

Runs one chat message through the pipeline:

    received -> parsing -> retrieving -> (synthesizing <-> augmenting) -> answered | errored

Synthesis is attempted at most ``max_attempts`` times. When an attempt
asks for more data, the data requests are fetched from the store and
merged into the results before the next attempt; the final attempt
always answers.

Two surfaces share the pipeline:
- ``answer()`` returns the complete answer at once
- ``stream()`` yields status, token, sources and done events in order,
  or a single error event
"""

import asyncio
import contextlib
import dataclasses
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Sequence

from ..common.config import DiscoveryConfig
from ..common.embedding_service import EmbeddingService
from ..common.llm_client import LLMClient
from ..common.schemas import (
    DataRequest,
    DataRequestType,
    PersonRef,
    ProgressUpdate,
    ResultType,
    SearchResults,
    Source,
    record_from_row,
)
from ..common.session_context import (
    ContextStore,
    InMemoryContextStore,
    SessionContext,
    enhance_query_with_context,
    utcnow,
)
from ..common.store import Store
from ..responder.response_agent import ResponseAgent
from ..retriever.query_parser import Mentions, ParsedQuery, QueryParser
from ..retriever.retrieval_agent import ProgressCallback, RetrievalAgent
from ..retriever.strategies.base import fetch_skills, load_contributions, load_profile
from .sessions import ChatSessionStore

logger = logging.getLogger("discovery.server.orchestrator")

ERROR_MESSAGE = "Sorry, something went wrong while answering. Please try again."
WRITING_STATUS = "✍️ Writing response..."
RECENT_POSTS_PER_PERSON = 3
RECENT_ACTIVITY_PROFILES = 5

Event = Dict[str, Any]


class ChatRequestError(ValueError):
    """Invalid chat request (missing message or user id)"""


class ChatProcessingError(RuntimeError):
    """The pipeline failed; the cause is logged, not shown to the user"""


@dataclass
class ChatAnswer:
    answer: str
    sources: List[Source] = field(default_factory=list)
    session_id: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "answer": self.answer,
            "sources": [s.to_dict() for s in self.sources],
            "sessionId": self.session_id,
        }


@dataclass
class ChatTurn:
    """Everything known about a message before retrieval starts"""
    session_id: str
    user_id: str
    message: str
    parsed: ParsedQuery
    history: List[Dict[str, str]] = field(default_factory=list)
    mentions: List[Dict[str, Any]] = field(default_factory=list)


def format_sse(event: Event) -> str:
    """Frame one event for a text/event-stream response"""
    return f"data: {json.dumps(event)}\n\n"


def _naive_utc(moment: Optional[datetime]) -> Optional[datetime]:
    if moment is None or moment.tzinfo is None:
        return moment
    return moment.replace(tzinfo=None) - (moment.utcoffset() or timedelta(0))


class ChatOrchestrator:
    """Per-message pipeline shared by the JSON and streaming endpoints."""

    def __init__(
        self,
        store: Store,
        embedder: EmbeddingService,
        llm: LLMClient,
        config: Optional[DiscoveryConfig] = None,
        context_store: Optional[ContextStore] = None,
        parser: Optional[QueryParser] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.embedder = embedder
        self.llm = llm
        self.config = config or DiscoveryConfig()
        self.context_store = context_store or InMemoryContextStore()
        self.parser = parser or QueryParser(clock=clock)
        self.sessions = ChatSessionStore(store, clock=clock)
        self._clock = clock

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    @staticmethod
    def validate(message: Optional[str], user_id: Optional[str]) -> None:
        if not message or not message.strip():
            raise ChatRequestError("Message is required")
        if not user_id:
            raise ChatRequestError("userId is required")

    @staticmethod
    def apply_mentions(parsed: ParsedQuery, mentions: Sequence[Dict[str, Any]]) -> ParsedQuery:
        """Request-supplied mentions replace the ones parsed from the text"""
        if not mentions:
            return parsed
        people = [m["name"] for m in mentions if m.get("type") == "person" and m.get("name")]
        projects = [m["name"] for m in mentions if m.get("type") == "project" and m.get("name")]
        return dataclasses.replace(parsed, mentions=Mentions(people=people, projects=projects))

    def _agents(self, progress: Optional[ProgressCallback]):
        retriever = RetrievalAgent(
            self.store,
            self.embedder,
            config=self.config.retrieval,
            parser=self.parser,
            progress_callback=progress,
        )
        responder = ResponseAgent(
            self.llm,
            config=self.config.response,
            llm_config=self.config.llm,
            expander=retriever.expander,
            progress_callback=progress,
            clock=self._clock,
        )
        return retriever, responder

    async def _prepare(
        self,
        message: str,
        user_id: str,
        session_id: Optional[str],
        mentions: Optional[Sequence[Dict[str, Any]]],
    ) -> ChatTurn:
        session_id = await self.sessions.resolve_session(session_id, user_id)
        history = await self.sessions.load_history(session_id, user_id, self.config.server.history_window)
        context = self.context_store.get(session_id)
        if context is not None and context.user_id != user_id:
            context = None

        query = enhance_query_with_context(message, context, history)
        if query != message:
            logger.debug("Enhanced query with session context: %r", query)

        mentions = list(mentions or [])
        parsed = self.apply_mentions(self.parser.parse(query), mentions)
        logger.info(
            "Session %s: intent=%s entities=%d keywords=%d",
            session_id, parsed.intent.value, len(parsed.entities), len(parsed.keywords),
        )
        return ChatTurn(session_id, user_id, message, parsed, history, mentions)

    async def settle(self, respond, results: SearchResults, turn: ChatTurn):
        """
        Bounded synthesis loop.

        ``respond`` is ``ResponseAgent.synthesize_response`` or
        ``ResponseAgent.plan_response``; it is called at most
        ``max_attempts`` times and the last call may not defer.
        """
        attempts = max(1, self.config.server.max_attempts)
        for attempt in range(1, attempts + 1):
            final = attempt == attempts
            outcome = await respond(results, turn.parsed, turn.history, allow_deferral=not final)
            if not outcome.needs_more_data:
                return outcome
            logger.info(
                "Attempt %d needs more data: %s",
                attempt, [r.type.value for r in outcome.data_requests],
            )
            await self.execute_data_requests(outcome.data_requests, results)
        return outcome

    async def answer(
        self,
        message: Optional[str],
        user_id: Optional[str],
        session_id: Optional[str] = None,
        mentions: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> ChatAnswer:
        """
        Answer one message in full.

        Raises:
            ChatRequestError: missing message or user id
            ChatProcessingError: any failure after validation
        """
        self.validate(message, user_id)
        try:
            turn = await self._prepare(message, user_id, session_id, mentions)
            retriever, responder = self._agents(None)
            results = await retriever.retrieve_information(turn.parsed.original_query, turn.parsed)
            synthesis = await self.settle(responder.synthesize_response, results, turn)
        except Exception as exc:
            logger.exception("Chat request failed")
            raise ChatProcessingError("Failed to process chat message") from exc

        await self._finish(turn, synthesis.answer, synthesis.sources)
        return ChatAnswer(synthesis.answer, synthesis.sources, turn.session_id)

    async def stream(
        self,
        message: Optional[str],
        user_id: Optional[str],
        session_id: Optional[str] = None,
        mentions: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> AsyncIterator[Event]:
        """
        Yield chat events: status* -> token* -> sources -> done.

        Any failure ends the stream with one error event. Closing the
        generator cancels the pipeline.
        """
        self.validate(message, user_id)
        queue: asyncio.Queue = asyncio.Queue()

        async def produce() -> None:
            try:
                await self._stream_turn(message, user_id, session_id, mentions, queue.put)
            except Exception:
                logger.exception("Streaming chat request failed")
                await queue.put({"type": "error", "message": ERROR_MESSAGE})
            finally:
                await queue.put(None)

        task = asyncio.create_task(produce())
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
        finally:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    async def _stream_turn(
        self,
        message: str,
        user_id: str,
        session_id: Optional[str],
        mentions: Optional[Sequence[Dict[str, Any]]],
        emit: Callable[[Event], Awaitable[None]],
    ) -> None:
        async def on_progress(update: ProgressUpdate) -> None:
            await emit({"type": "status", "message": update.text})

        turn = await self._prepare(message, user_id, session_id, mentions)
        retriever, responder = self._agents(on_progress)
        results = await retriever.retrieve_information(turn.parsed.original_query, turn.parsed)
        plan = await self.settle(responder.plan_response, results, turn)

        await emit({"type": "status", "message": WRITING_STATUS})
        sources = plan.sources
        if plan.answer is not None:
            answer = plan.answer
            await emit({"type": "token", "content": answer})
        elif not self.llm.is_available:
            logger.warning("LLM not available, streaming answer built from results")
            answer = responder.synthesize_fallback(results, turn.parsed)
            await emit({"type": "token", "content": answer})
        else:
            parts = []
            async for delta in self.llm.stream(
                plan.messages,
                temperature=self.config.llm.temperature,
                max_tokens=self.config.llm.max_tokens,
            ):
                parts.append(delta)
                await emit({"type": "token", "content": delta})
            answer = "".join(parts)

        await emit({"type": "sources", "sources": [s.to_dict() for s in sources]})
        await self._finish(turn, answer, sources)
        await emit({"type": "done", "sessionId": turn.session_id})

    # ------------------------------------------------------------------
    # Session bookkeeping
    # ------------------------------------------------------------------

    async def _finish(self, turn: ChatTurn, answer: str, sources: Sequence[Source]) -> None:
        self.update_context(turn)
        try:
            await self.sessions.save_turn(
                turn.session_id, turn.user_id, turn.message, answer, sources, turn.mentions
            )
        except Exception:
            logger.exception("Failed to save chat turn for session %s", turn.session_id)

    def update_context(self, turn: ChatTurn) -> SessionContext:
        now = self._clock()
        context = self.context_store.get(turn.session_id)
        if context is None or context.user_id != turn.user_id:
            context = SessionContext(session_id=turn.session_id, user_id=turn.user_id, created_at=now)
        context.last_query = turn.message
        context.last_entities = [
            {"type": e.type.value, "value": e.value} for e in turn.parsed.entities
        ]
        context.last_mentions = list(turn.mentions)
        context.message_count += 1
        context.updated_at = now
        self.context_store.put(context)
        return context

    def evict_stale_contexts(self) -> int:
        removed = self.context_store.evict_older_than(
            timedelta(hours=self.config.server.session_max_age_hours), now=self._clock()
        )
        if removed:
            logger.info("Evicted %d stale session contexts", removed)
        return removed

    # ------------------------------------------------------------------
    # Data requests
    # ------------------------------------------------------------------

    async def execute_data_requests(self, requests: Sequence[DataRequest], results: SearchResults) -> None:
        """Fetch what each request asks for and merge it into ``results`` in place"""
        handlers = {
            DataRequestType.RECENT_ACTIVITY: self._fetch_recent_activity,
            DataRequestType.EXPERIENCE_DETAILS: self._fetch_experience_details,
            DataRequestType.PROJECT_DETAILS: self._fetch_project_details,
            DataRequestType.SPECIFIC_PERSON: self._fetch_specific_person,
            DataRequestType.SKILL_VERIFICATION: self._fetch_skill_verification,
        }
        await asyncio.gather(*(handlers[r.type](r.parameters, results) for r in requests))

        for result_type in ResultType:
            results.bucket(result_type).sort(key=lambda r: r.score or 0.0, reverse=True)
        results.relationships = RetrievalAgent.extract_relationships(results)

    async def _fetch_recent_activity(self, params: Dict[str, Any], results: SearchResults) -> None:
        profile_ids = list(params.get("profile_ids") or [p.id for p in results.profiles])
        profile_ids = profile_ids[:RECENT_ACTIVITY_PROFILES]
        days = params.get("days", self.config.response.recent_days)
        cutoff = self._clock() - timedelta(days=days)
        names = {p.id: p.name for p in results.profiles}

        batches = await asyncio.gather(*(
            self.store.find_where("posts", {"author_id": pid}, order_by="created_at", descending=True)
            for pid in profile_ids
        ))
        known = {p.id for p in results.posts}
        for pid, rows in zip(profile_ids, batches):
            taken = 0
            for row in rows:
                if taken >= RECENT_POSTS_PER_PERSON:
                    break
                post = record_from_row(ResultType.POST, row)
                created = _naive_utc(post.created_at)
                if created is None or created < cutoff:
                    continue
                taken += 1
                if post.id in known:
                    continue
                known.add(post.id)
                post.author = PersonRef(id=pid, name=names.get(pid))
                post.reason = "Recent activity"
                results.posts.append(post)

    async def _fetch_experience_details(self, params: Dict[str, Any], results: SearchResults) -> None:
        wanted = set(params.get("profile_ids") or [])
        targets = [p for p in results.profiles if p.id in wanted and not p.experiences]
        batches = await asyncio.gather(*(
            self.store.find_where("experiences", {"profile_id": p.id}) for p in targets
        ))
        for profile, rows in zip(targets, batches):
            profile.experiences = [record_from_row(ResultType.EXPERIENCE, r) for r in rows]

    async def _fetch_project_details(self, params: Dict[str, Any], results: SearchResults) -> None:
        wanted = set(params.get("project_ids") or [])
        targets = [p for p in results.projects if p.id in wanted and not p.contributions]
        batches = await asyncio.gather(*(load_contributions(self.store, p.id) for p in targets))
        for project, contributions in zip(targets, batches):
            project.contributions = contributions

    async def _fetch_specific_person(self, params: Dict[str, Any], results: SearchResults) -> None:
        rows = []
        for pid in params.get("profile_ids") or []:
            row = await self.store.get("profiles", pid)
            if row:
                rows.append(row)
        name = params.get("name")
        if name:
            rows.extend(await self.store.search_text("profiles", ["name"], [name], limit=1))

        known = {p.id for p in results.profiles}
        for row in rows:
            if row["id"] in known:
                continue
            known.add(row["id"])
            profile = await load_profile(self.store, row)
            profile.reason = "Requested person"
            results.profiles.append(profile)

    async def _fetch_skill_verification(self, params: Dict[str, Any], results: SearchResults) -> None:
        wanted = set(params.get("profile_ids") or [])
        targets = [p for p in results.profiles if p.id in wanted]
        batches = await asyncio.gather(*(fetch_skills(self.store, p.id) for p in targets))
        for profile, skills in zip(targets, batches):
            profile.skills = skills
