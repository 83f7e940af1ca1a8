"""
Search Pipeline Types

Values passed between retrieval, response synthesis and orchestration.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .records import (
    AnyRecord,
    EducationRecord,
    ExperienceRecord,
    PostRecord,
    ProfileRecord,
    ProjectRecord,
    ProjectRequestRecord,
    ResultType,
)


class RelationshipType(str, Enum):
    AUTHORED = "authored"
    CONTRIBUTES_TO = "contributes_to"


class Importance(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DataRequestType(str, Enum):
    """Follow-up fetches the orchestrator knows how to run"""
    RECENT_ACTIVITY = "recent_activity"
    EXPERIENCE_DETAILS = "experience_details"
    PROJECT_DETAILS = "project_details"
    SKILL_VERIFICATION = "skill_verification"
    SPECIFIC_PERSON = "specific_person"


class ProgressType(str, Enum):
    ANALYZING = "analyzing"
    SEARCHING = "searching"
    EXPLORING = "exploring"
    SYNTHESIZING = "synthesizing"
    REQUESTING_MORE = "requesting_more"


@dataclass
class SearchResult:
    """One hit produced by a search strategy"""
    type: ResultType
    id: str
    data: AnyRecord
    relevance_score: float
    match_reason: str

    @property
    def key(self) -> str:
        """Deduplication key, unique per (type, id)"""
        return f"{self.type.value}:{self.id}"


@dataclass
class Relationship:
    source: str
    target: str
    type: RelationshipType


@dataclass
class SearchResults:
    """Deduplicated results bucketed by type, each bucket sorted by score"""
    profiles: List[ProfileRecord] = field(default_factory=list)
    posts: List[PostRecord] = field(default_factory=list)
    projects: List[ProjectRecord] = field(default_factory=list)
    educations: List[EducationRecord] = field(default_factory=list)
    experiences: List[ExperienceRecord] = field(default_factory=list)
    project_requests: List[ProjectRequestRecord] = field(default_factory=list)
    relationships: List[Relationship] = field(default_factory=list)

    _BUCKETS = {
        ResultType.PROFILE: "profiles",
        ResultType.POST: "posts",
        ResultType.PROJECT: "projects",
        ResultType.EDUCATION: "educations",
        ResultType.EXPERIENCE: "experiences",
        ResultType.PROJECT_REQUEST: "project_requests",
    }

    def bucket(self, result_type: ResultType) -> list:
        return getattr(self, self._BUCKETS[result_type])

    @property
    def total(self) -> int:
        return sum(len(self.bucket(t)) for t in self._BUCKETS)


class Source(BaseModel):
    """Citation surfaced to the end user alongside an answer"""
    model_config = ConfigDict(populate_by_name=True)

    type: ResultType
    id: str
    name: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    preview: Optional[str] = None
    author: Optional[str] = None
    relevance_score: float = Field(alias="relevanceScore")

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass
class ProgressUpdate:
    type: ProgressType
    message: str
    emoji: str = ""

    @property
    def text(self) -> str:
        return f"{self.emoji} {self.message}".strip()


@dataclass
class DataGap:
    type: DataRequestType
    description: str
    importance: Importance


@dataclass
class DataRequest:
    type: DataRequestType
    parameters: Dict[str, Any] = field(default_factory=dict)
    reason: str = ""
