"""
Retriever

Turns a natural-language question into organized search results:
1. Parse intent, entities, time window and mentions
2. Run semantic and keyword strategies
3. Enrich sparse results with graph traversal
4. Deduplicate and organize by result type
"""

from .query_parser import QueryParser, ParsedQuery, QueryIntent
from .entity_expander import EntityExpander
from .retrieval_agent import RetrievalAgent, SearchPlan

__all__ = [
    "QueryParser",
    "ParsedQuery",
    "QueryIntent",
    "EntityExpander",
    "RetrievalAgent",
    "SearchPlan",
]
