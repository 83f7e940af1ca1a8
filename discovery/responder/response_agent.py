"""
Response Agent

Turns organized search results into an answer:
1. Score whether the results are sufficient for the query intent
2. When they are not, describe the gaps as follow-up data requests
3. Build a compact context block and ask the LLM for an answer
4. Attach the strongest sources as citations

With no context at all the LLM is skipped and a query-aware reply with
follow-up suggestions is produced instead.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from ..common.config import LLMConfig, ResponseConfig
from ..common.llm_client import LLMClient
from ..common.schemas import (
    DataGap,
    DataRequest,
    DataRequestType,
    Importance,
    ProgressType,
    ProgressUpdate,
    ResultType,
    SearchResults,
    Source,
)
from ..common.session_context import utcnow
from ..retriever.entity_expander import EntityExpander
from ..retriever.query_parser import EntityType, ParsedQuery, QueryIntent
from ..retriever.retrieval_agent import ProgressCallback, emit_progress

logger = logging.getLogger("discovery.responder.agent")

Message = Dict[str, str]


BASE_SYSTEM_PROMPT = """You are a helpful, professional assistant for a company's knowledge discovery system.
Your job is to help people quickly find relevant information about colleagues, projects, and expertise.

CRITICAL RULES:
1. ONLY use information explicitly present in the context
2. BE CONCISE when the user asks a specific question (e.g., "who is best for X")
3. Be more detailed only when the user asks open-ended questions
4. ALWAYS end with a relevant follow-up question to help the user
5. Use the conversation history to resolve references like "they", "it" or "that project"
6. Use a conversational, helpful tone

RESPONSE FORMAT for specific queries:
- Direct answer with name and 1-2 key reasons
- One follow-up question

RESPONSE FORMAT for exploratory queries:
- More detailed information
- Still end with a follow-up question"""

INTENT_PROMPTS = {
    QueryIntent.FIND_PEOPLE: """
When recommending people for a specific need:
- Give the TOP recommendation with 2-3 bullet points max
- Example: "Kenny Morales - React/Node.js developer, currently working on AI projects"
- Follow-up examples: "Would you like to see other candidates?" or "What specific skills matter most?\"""",
    QueryIntent.FIND_PROJECTS: """
When describing projects:
- Name the project and its main purpose
- List 1-2 key contributors
- Follow-up examples: "Want to know more about the timeline?" or "Interested in similar projects?\"""",
    QueryIntent.FIND_ACTIVITY: """
When summarizing activity:
- Give the most relevant 2-3 updates, newest first
- Follow-up examples: "Want to see activity from a specific time period?" or "Looking for updates on a particular topic?\"""",
    QueryIntent.FIND_KNOWLEDGE: """
When sharing knowledge:
- Name the expert and their specific experience
- Follow-up examples: "Need more technical details?" or "Want to see who else has this expertise?\"""",
    QueryIntent.FIND_RELATIONSHIPS: """
When explaining connections:
- State the connection clearly (shared project, authored post, mention)
- Follow-up examples: "Want to explore their shared projects?" or "Interested in finding more connections?\"""",
    QueryIntent.ANALYTICAL: """
When answering counting or comparison questions:
- Give the number or comparison first, based only on the listed items
- Say plainly that counts cover only what the search returned""",
    QueryIntent.TEMPORAL: """
When answering time-based questions:
- Order items by date and mention the dates
- Follow-up example: "Want me to look at a different time range?\"""",
    QueryIntent.GENERAL: """
Provide a helpful answer and ask how you can help further.""",
}

INTENT_HINTS = {
    QueryIntent.FIND_PEOPLE: "People often describe the same expertise in different words, so a broader skill or role may turn up more colleagues.",
    QueryIntent.FIND_PROJECTS: "Project titles can be informal, so searching by topic or by a contributor's name may work better.",
    QueryIntent.FIND_ACTIVITY: "There may simply be no posts in that window yet.",
    QueryIntent.FIND_KNOWLEDGE: "Experience is often listed under related technologies rather than the exact term.",
    QueryIntent.FIND_RELATIONSHIPS: "Connections only show up when people share projects or mention each other in posts.",
}

INTENT_ALTERNATIVES = {
    QueryIntent.FIND_PEOPLE: "Would you like to see who is working on related projects?",
    QueryIntent.FIND_PROJECTS: "Should I look for people with experience in this area instead?",
    QueryIntent.FIND_ACTIVITY: "Want me to look at posts about a specific project or person?",
    QueryIntent.FIND_KNOWLEDGE: "Should I search for people who have worked on similar projects?",
    QueryIntent.FIND_RELATIONSHIPS: "Would you like to start from a specific person or project?",
}

GENERIC_FOLLOW_UP = "Can you tell me more about what you're looking for?"


@dataclass
class Evaluation:
    score: float
    reason: str


@dataclass
class SynthesisResult:
    answer: str
    needs_more_data: bool = False
    data_requests: List[DataRequest] = field(default_factory=list)
    sources: List[Source] = field(default_factory=list)


@dataclass
class ResponsePlan:
    """What synthesis will do: defer for more data, answer directly, or call the LLM"""
    needs_more_data: bool = False
    data_requests: List[DataRequest] = field(default_factory=list)
    answer: Optional[str] = None
    messages: Optional[List[Message]] = None
    sources: List[Source] = field(default_factory=list)


class ResponseAgent:
    """Evaluates results and synthesizes answers with citations."""

    def __init__(
        self,
        llm: LLMClient,
        config: Optional[ResponseConfig] = None,
        llm_config: Optional[LLMConfig] = None,
        expander: Optional[EntityExpander] = None,
        progress_callback: Optional[ProgressCallback] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.llm = llm
        self.config = config or ResponseConfig()
        self.llm_config = llm_config or LLMConfig()
        self.expander = expander or EntityExpander()
        self.progress_callback = progress_callback
        self._clock = clock

    # ------------------------------------------------------------------
    # Sufficiency
    # ------------------------------------------------------------------

    def evaluate_results(self, results: SearchResults, query: ParsedQuery) -> Evaluation:
        """Intent-specific 0-1 sufficiency score"""
        total = results.total
        if total == 0:
            return Evaluation(0.0, "No results found")

        score = 0.0
        reasons: List[str] = []

        if query.intent == QueryIntent.FIND_PEOPLE:
            if results.profiles:
                score += 0.5
                skills = [e.value.lower() for e in query.entities_of(EntityType.SKILL)]
                relevant = [
                    p for p in results.profiles
                    if any(skill in s.lower() for skill in skills for s in p.skills)
                    or bool(p.experiences)
                ]
                if relevant:
                    score += 0.3
                    reasons.append(f"Found {len(relevant)} people with relevant skills")
            if results.experiences:
                score += 0.2
                reasons.append("Found relevant work experience")

        elif query.intent == QueryIntent.FIND_PROJECTS:
            if results.projects:
                score += 0.7
                reasons.append(f"Found {len(results.projects)} projects")
            if results.posts:
                score += 0.2
                reasons.append("Found related discussions")

        elif query.intent == QueryIntent.FIND_ACTIVITY:
            if results.posts:
                score += 0.6
                recent = self._recent_posts(results)
                if recent:
                    score += 0.3
                    reasons.append(f"Found {len(recent)} recent posts")

        else:
            if total > 5:
                score = 0.7
                reasons.append(f"Found {total} relevant items")
            else:
                score = 0.4
                reasons.append(f"Found only {total} items")

        return Evaluation(min(max(score, 0.0), 1.0), ", ".join(reasons) or "Evaluation complete")

    def _recent_posts(self, results: SearchResults) -> list:
        cutoff = self._clock() - timedelta(days=self.config.recent_days)
        recent = []
        for post in results.posts:
            created = post.created_at
            if created is None:
                continue
            if created.tzinfo is not None:
                created = created.replace(tzinfo=None) - (created.utcoffset() or timedelta(0))
            if created > cutoff:
                recent.append(post)
        return recent

    # ------------------------------------------------------------------
    # Gaps and data requests
    # ------------------------------------------------------------------

    def identify_gaps(self, results: SearchResults, query: ParsedQuery) -> List[DataGap]:
        gaps: List[DataGap] = []

        if query.intent == QueryIntent.FIND_PEOPLE:
            if results.profiles and not results.posts:
                gaps.append(DataGap(
                    DataRequestType.RECENT_ACTIVITY,
                    "No recent posts from these people",
                    Importance.MEDIUM,
                ))
            if any(not p.experiences for p in results.profiles):
                gaps.append(DataGap(
                    DataRequestType.EXPERIENCE_DETAILS,
                    "Missing work experience for some profiles",
                    Importance.HIGH,
                ))
            if not results.profiles and results.experiences:
                gaps.append(DataGap(
                    DataRequestType.SPECIFIC_PERSON,
                    "Found experience entries but not the people behind them",
                    Importance.HIGH,
                ))

        elif query.intent == QueryIntent.FIND_PROJECTS:
            if any(not p.contributions for p in results.projects):
                gaps.append(DataGap(
                    DataRequestType.PROJECT_DETAILS,
                    "Missing contributor information for projects",
                    Importance.HIGH,
                ))

        elif query.intent == QueryIntent.FIND_ACTIVITY:
            if results.profiles and not results.posts:
                gaps.append(DataGap(
                    DataRequestType.RECENT_ACTIVITY,
                    "Found people but none of their recent posts",
                    Importance.HIGH,
                ))

        return gaps

    def create_data_requests(self, gaps: List[DataGap], results: SearchResults) -> List[DataRequest]:
        """One request per high-importance gap"""
        requests = []
        for gap in gaps:
            if gap.importance != Importance.HIGH:
                continue

            if gap.type == DataRequestType.RECENT_ACTIVITY:
                requests.append(DataRequest(
                    DataRequestType.RECENT_ACTIVITY,
                    {
                        "days": self.config.recent_days,
                        "profile_ids": [p.id for p in results.profiles[:5]],
                    },
                    "To show recent work and contributions",
                ))
            elif gap.type == DataRequestType.EXPERIENCE_DETAILS:
                requests.append(DataRequest(
                    DataRequestType.EXPERIENCE_DETAILS,
                    {"profile_ids": [p.id for p in results.profiles if not p.experiences]},
                    "To provide complete work history",
                ))
            elif gap.type == DataRequestType.PROJECT_DETAILS:
                requests.append(DataRequest(
                    DataRequestType.PROJECT_DETAILS,
                    {"project_ids": [p.id for p in results.projects if not p.contributions]},
                    "To show who is working on these projects",
                ))
            elif gap.type == DataRequestType.SPECIFIC_PERSON:
                requests.append(DataRequest(
                    DataRequestType.SPECIFIC_PERSON,
                    {"profile_ids": list(dict.fromkeys(
                        e.profile_id for e in results.experiences if e.profile_id
                    ))},
                    "To show who holds this experience",
                ))
            else:
                requests.append(DataRequest(
                    DataRequestType.SKILL_VERIFICATION,
                    {"profile_ids": [p.id for p in results.profiles]},
                    "To verify expertise levels",
                ))
        return requests

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    @staticmethod
    def _match(reason: Optional[str]) -> str:
        return f" (Match: {reason})" if reason else ""

    def build_context(self, results: SearchResults) -> str:
        """Per-type sections, one dense line per item; empty sections omitted"""
        sections: List[str] = []
        limit = self.config.context_limit
        names = {p.id: p.name for p in results.profiles if p.name}

        if results.profiles:
            lines = []
            for p in results.profiles[:limit]:
                line = f"Profile: {p.name or 'Unnamed'} - {p.title or 'No title'} - {p.location or 'No location'}"
                if p.bio:
                    line += f" - Bio: {p.bio}"
                if p.skills:
                    line += f" - Skills: {', '.join(p.skills)}"
                if p.experiences:
                    history = "; ".join(
                        f"{e.role} at {e.company}" + (f": {e.description}" if e.description else "")
                        for e in p.experiences
                    )
                    line += f" - Experience: {history}"
                if p.contribution_role:
                    line += f" - Project role: {p.contribution_role}"
                lines.append(line + self._match(p.reason))
            sections.append("=== PEOPLE ===\n" + "\n".join(lines))

        if results.projects:
            lines = []
            for p in results.projects[:limit]:
                line = f'Project: "{p.title}" - Status: {p.status or "unknown"} - {p.description or ""}'
                if p.contributions:
                    contributors = ", ".join(
                        f"{(c.profile.name if c.profile and c.profile.name else names.get(c.person_id, 'Someone'))}"
                        + (f" ({c.role})" if c.role else "")
                        for c in p.contributions
                    )
                    line += f" - Contributors: {contributors}"
                lines.append(line + self._match(p.reason))
            sections.append("=== PROJECTS ===\n" + "\n".join(lines))

        if results.posts:
            lines = []
            for p in results.posts[: self.config.post_context_limit]:
                when = p.created_at.date().isoformat() if p.created_at else "undated"
                author = (p.author.name if p.author and p.author.name else None) or names.get(p.author_id)
                byline = f" by {author}" if author else ""
                lines.append(f"Post ({when}){byline}: {p.content}" + self._match(p.reason))
            sections.append("=== RECENT ACTIVITY ===\n" + "\n".join(lines))

        if results.experiences:
            lines = []
            for e in results.experiences[:limit]:
                line = f"Experience: {e.role} at {e.company}"
                if e.description:
                    line += f" - {e.description}"
                if e.profile and e.profile.name:
                    line += f" ({e.profile.name})"
                lines.append(line + self._match(e.reason))
            sections.append("=== WORK EXPERIENCE ===\n" + "\n".join(lines))

        if results.project_requests:
            lines = []
            for r in results.project_requests[:limit]:
                line = f'Project request: "{r.title}" - {r.description or ""}'
                if r.creator and r.creator.name:
                    line += f" - Posted by {r.creator.name}"
                lines.append(line + self._match(r.reason))
            sections.append("=== PROJECT OPPORTUNITIES ===\n" + "\n".join(lines))

        return "\n\n".join(sections)

    def get_system_prompt(self, query: ParsedQuery) -> str:
        addendum = INTENT_PROMPTS.get(query.intent, INTENT_PROMPTS[QueryIntent.GENERAL])
        return BASE_SYSTEM_PROMPT + "\n" + addendum

    # ------------------------------------------------------------------
    # No-context fallback
    # ------------------------------------------------------------------

    def describe_search_target(self, query: ParsedQuery) -> str:
        subject = {
            QueryIntent.FIND_PEOPLE: "people",
            QueryIntent.FIND_KNOWLEDGE: "people",
            QueryIntent.FIND_PROJECTS: "projects",
            QueryIntent.FIND_ACTIVITY: "recent activity",
            QueryIntent.FIND_RELATIONSHIPS: "connections",
        }.get(query.intent, "anything")

        topics = [
            e.value for e in query.entities
            if e.type in (EntityType.SKILL, EntityType.ROLE, EntityType.PERSON, EntityType.PROJECT)
        ] or query.keywords[:3]

        target = subject
        if topics:
            target += f" related to {', '.join(topics)}"
        locations = query.entities_of(EntityType.LOCATION)
        if locations:
            target += f" in {locations[0].value}"
        if query.time_constraints and query.time_constraints.relative:
            target += f" from {query.time_constraints.relative}"
        return target

    def suggest_follow_ups(self, query: ParsedQuery) -> List[str]:
        """Up to ``max_follow_ups`` questions, most useful first"""
        suggestions: List[str] = []

        if query.time_constraints and query.time_constraints.relative:
            suggestions.append(
                f"Would you like me to search without the \"{query.time_constraints.relative}\" time limit?"
            )

        for skill in query.entities_of(EntityType.SKILL):
            expanded = self.expander.expand_term(skill.value)
            alternatives = [t for t in expanded.related + expanded.expansions if t != skill.value][:2]
            if alternatives:
                suggestions.append(
                    f"Should I look for people with related skills like {' or '.join(alternatives)}?"
                )
                break

        if query.intent in INTENT_ALTERNATIVES:
            suggestions.append(INTENT_ALTERNATIVES[query.intent])

        suggestions.append(GENERIC_FOLLOW_UP)
        return list(dict.fromkeys(suggestions))[: self.config.max_follow_ups]

    def build_no_context_answer(self, query: ParsedQuery) -> str:
        answer = f"I couldn't find {self.describe_search_target(query)} in the directory."
        hint = INTENT_HINTS.get(query.intent)
        if hint:
            answer += f" {hint}"
        follow_ups = self.suggest_follow_ups(query)
        answer += "\n\nYou could try:\n" + "\n".join(f"- {q}" for q in follow_ups)
        return answer

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def extract_top_sources(self, results: SearchResults) -> List[Source]:
        """Citations across types, biased people > requests > projects > posts on ties"""
        scan = self.config.source_scan_limit
        sources: List[Source] = []

        def scored(value: Optional[float], base: float) -> float:
            return value if value is not None else base

        for profile in results.profiles[:scan]:
            if profile.id and profile.name:
                sources.append(Source(
                    type=ResultType.PROFILE,
                    id=profile.id,
                    name=profile.name,
                    title=profile.title,
                    relevance_score=scored(profile.score, 0.8),
                ))

        for project in results.projects[:scan]:
            sources.append(Source(
                type=ResultType.PROJECT,
                id=project.id,
                name=project.title,
                description=project.description,
                relevance_score=scored(project.score, 0.6),
            ))

        authors = {p.id: p.name for p in results.profiles}
        length = self.config.preview_length
        for post in results.posts[:scan]:
            preview = post.content if len(post.content) <= length else post.content[:length] + "..."
            author_id = post.author.id if post.author else post.author_id
            sources.append(Source(
                type=ResultType.POST,
                id=post.id,
                preview=preview,
                author=authors.get(author_id) or (post.author.name if post.author else None) or "Unknown",
                relevance_score=scored(post.score, 0.4),
            ))

        for request in results.project_requests[:scan]:
            sources.append(Source(
                type=ResultType.PROJECT_REQUEST,
                id=request.id,
                name=request.title,
                description=request.description,
                author=request.creator.name if request.creator else None,
                relevance_score=scored(request.score, 0.7),
            ))

        sources.sort(key=lambda s: s.relevance_score, reverse=True)
        return sources

    # ------------------------------------------------------------------
    # Synthesis
    # ------------------------------------------------------------------

    async def plan_response(
        self,
        results: SearchResults,
        query: ParsedQuery,
        chat_history: List[Message],
        allow_deferral: bool = True,
    ) -> ResponsePlan:
        evaluation = self.evaluate_results(results, query)
        logger.debug("Evaluation for %s: %.2f (%s)", query.intent.value, evaluation.score, evaluation.reason)

        if allow_deferral and evaluation.score < self.config.gap_score_threshold:
            gaps = self.identify_gaps(results, query)
            requests = self.create_data_requests(gaps, results)
            if requests:
                await emit_progress(
                    self.progress_callback,
                    ProgressUpdate(ProgressType.REQUESTING_MORE, "Gathering additional details...", "🔄"),
                )
                return ResponsePlan(needs_more_data=True, data_requests=requests)

        context = self.build_context(results)
        if not context.strip():
            return ResponsePlan(answer=self.build_no_context_answer(query))

        sources = self.extract_top_sources(results)[: self.config.max_sources]
        messages = [
            {"role": "system", "content": self.get_system_prompt(query)},
            *chat_history,
            {"role": "user", "content": f"Context:\n{context}\n\nQuestion: {query.original_query}"},
        ]
        return ResponsePlan(messages=messages, sources=sources)

    async def synthesize_response(
        self,
        results: SearchResults,
        query: ParsedQuery,
        chat_history: List[Message],
        allow_deferral: bool = True,
    ) -> SynthesisResult:
        """
        Produce the answer for a query.

        Returns ``needs_more_data`` with data requests and an empty answer
        when the results are too thin; the caller decides whether to fetch
        and retry. With ``allow_deferral=False`` an answer is always produced.
        """
        plan = await self.plan_response(results, query, chat_history, allow_deferral)

        if plan.needs_more_data:
            return SynthesisResult(answer="", needs_more_data=True, data_requests=plan.data_requests)

        if plan.answer is not None:
            return SynthesisResult(answer=plan.answer)

        if not self.llm.is_available:
            logger.warning("LLM not available, answering from results directly")
            return SynthesisResult(answer=self.synthesize_fallback(results, query), sources=plan.sources)

        answer = await self.llm.complete(
            plan.messages,
            temperature=self.llm_config.temperature,
            max_tokens=self.llm_config.max_tokens,
        )
        return SynthesisResult(
            answer=answer or "I apologize, but I couldn't generate a response.",
            sources=plan.sources,
        )

    def synthesize_fallback(self, results: SearchResults, query: ParsedQuery) -> str:
        """Plain listing of the top results when no LLM is configured"""
        lines = [f"Here is what I found for {self.describe_search_target(query)}:"]
        for source in self.extract_top_sources(results)[:5]:
            label = source.name or source.preview or source.id
            detail = source.title or source.description or (f"by {source.author}" if source.author else "")
            lines.append(f"- {label}" + (f" - {detail}" if detail else ""))
        lines.append("")
        lines.append(self.suggest_follow_ups(query)[0])
        return "\n".join(lines)
