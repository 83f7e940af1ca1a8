"""
Search Strategy base class and shared store joins.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ...common.schemas import (
    ContributionRecord,
    PersonRef,
    ProfileRecord,
    ResultType,
    SearchResult,
    record_from_row,
)
from ...common.store import Row, Store


class SearchStrategy(ABC):
    """
    Abstract base class for search strategies.

    A strategy only reads from the store; it is safe to run several
    strategies concurrently for the same query.
    """

    name: str = ""

    @abstractmethod
    async def execute(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[SearchResult]:
        """
        Run the search.

        Args:
            query: Original question text
            params: Strategy-specific parameters

        Returns:
            Unsorted search hits, possibly with repeated (type, id) keys
        """
        pass


async def fetch_skills(store: Store, profile_id: str) -> List[str]:
    rows = await store.find_where("skills", {"profile_id": profile_id})
    return [r["skill"] for r in rows if r.get("skill")]


async def load_profile(
    store: Store,
    row: Row,
    with_experiences: bool = True,
    with_educations: bool = False,
) -> ProfileRecord:
    """Profile record joined with its skills and, optionally, history rows."""
    profile_id = row["id"]
    lookups = [fetch_skills(store, profile_id)]
    if with_experiences:
        lookups.append(store.find_where("experiences", {"profile_id": profile_id}))
    if with_educations:
        lookups.append(store.find_where("educations", {"profile_id": profile_id}))
    fetched = await asyncio.gather(*lookups)

    data = dict(row)
    data["skills"] = fetched[0]
    position = 1
    if with_experiences:
        data["experiences"] = fetched[position]
        position += 1
    if with_educations:
        data["educations"] = fetched[position]
    return record_from_row(ResultType.PROFILE, data)


async def load_contributions(store: Store, project_id: str) -> List[ContributionRecord]:
    """Contributions for a project, each with a reference to the contributor."""
    rows = await store.find_where("contributions", {"project_id": project_id})
    people = await asyncio.gather(*(store.get("profiles", r["person_id"]) for r in rows))
    contributions = []
    for row, person in zip(rows, people):
        data = dict(row)
        if person:
            data["profile"] = PersonRef(id=person["id"], name=person.get("name"), title=person.get("title"))
        contributions.append(ContributionRecord.model_validate(data))
    return contributions


async def load_person_ref(store: Store, profile_id: Optional[str]) -> Optional[PersonRef]:
    if not profile_id:
        return None
    person = await store.get("profiles", profile_id)
    if not person:
        return None
    return PersonRef(id=person["id"], name=person.get("name"), title=person.get("title"))
