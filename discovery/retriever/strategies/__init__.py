"""Search strategies sharing the ``execute(query, params)`` contract"""

from .base import SearchStrategy
from .semantic import SemanticSearchStrategy
from .keyword import KeywordSearchStrategy
from .graph import GraphTraversalStrategy
from .temporal import TemporalFilter

__all__ = [
    "SearchStrategy",
    "SemanticSearchStrategy",
    "KeywordSearchStrategy",
    "GraphTraversalStrategy",
    "TemporalFilter",
]
