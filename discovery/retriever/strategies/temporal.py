"""
Temporal filter for search strategies.

Wraps another strategy and drops hits whose own date falls outside the
query's time window. Hits with no usable date pass through; so does
everything when the window has no concrete bounds.
"""

from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional

from ...common.schemas import ExperienceRecord, SearchResult
from ..query_parser import TimeConstraints
from .base import SearchStrategy


def _naive(moment: Optional[datetime]) -> Optional[datetime]:
    if moment is None:
        return None
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def _from_date(day: Optional[date]) -> Optional[datetime]:
    return datetime.combine(day, time.min) if day else None


class TemporalFilter(SearchStrategy):
    def __init__(self, inner: SearchStrategy, constraints: TimeConstraints):
        self.inner = inner
        self.constraints = constraints
        self.name = f"{inner.name}+temporal"

    async def execute(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[SearchResult]:
        results = await self.inner.execute(query, params)
        if not self.constraints.is_bounded:
            return results

        kept = []
        for result in results:
            verdict = self.in_window(result)
            if verdict is False:
                continue
            if verdict and self.constraints.relative:
                result.match_reason = f"{result.match_reason} ({self.constraints.relative})"
            kept.append(result)
        return kept

    def in_window(self, result: SearchResult) -> Optional[bool]:
        """True/False for dated hits, None when the hit carries no date"""
        start = _naive(self.constraints.start)
        end = _naive(self.constraints.end)
        record = result.data

        if isinstance(record, ExperienceRecord):
            began = _from_date(record.start_date)
            if began is None:
                return None
            ended = _from_date(record.end_date)
            if end is not None and began > end:
                return False
            if start is not None and ended is not None and ended < start:
                return False
            return True

        created = _naive(getattr(record, "created_at", None))
        if created is None:
            return None
        if start is not None and created < start:
            return False
        if end is not None and created > end:
            return False
        return True
