"""
Store Record Schemas

Typed payloads carried by search results. Each record kind has a ``kind``
discriminant so consumers can branch exhaustively instead of probing
optional keys. Unknown store columns are preserved (``extra="allow"``).

``score`` and ``reason`` are filled in when results are organized; a record
that no strategy scored keeps ``score=None``.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Enums
# ============================================================================

class ResultType(str, Enum):
    """Kinds of entity a search can return"""
    PROFILE = "profile"
    POST = "post"
    PROJECT = "project"
    EDUCATION = "education"
    EXPERIENCE = "experience"
    PROJECT_REQUEST = "project_request"


# ============================================================================
# Child rows
# ============================================================================

class PersonRef(BaseModel):
    """Minimal reference to a profile (post author, request creator)"""
    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = None
    title: Optional[str] = None


class ContributionRecord(BaseModel):
    """A person's role on a project"""
    model_config = ConfigDict(extra="allow")

    person_id: str
    project_id: Optional[str] = None
    role: Optional[str] = None
    description: Optional[str] = None
    profile: Optional[PersonRef] = None


# ============================================================================
# Result records
# ============================================================================

class Record(BaseModel):
    """Common base for every scored result payload"""
    model_config = ConfigDict(extra="allow")

    id: str
    score: Optional[float] = None
    reason: Optional[str] = None


class ExperienceRecord(Record):
    kind: Literal["experience"] = "experience"
    profile_id: Optional[str] = None
    role: Optional[str] = None
    company: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    profile: Optional["ProfileRecord"] = None


class EducationRecord(Record):
    kind: Literal["education"] = "education"
    profile_id: Optional[str] = None
    school: Optional[str] = None
    degree: Optional[str] = None
    field_of_study: Optional[str] = None


class ProfileRecord(Record):
    """A person. ``experiences``/``educations`` are None until fetched."""
    kind: Literal["profile"] = "profile"
    name: Optional[str] = None
    title: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    email: Optional[str] = None
    skills: List[str] = Field(default_factory=list)
    experiences: Optional[List[ExperienceRecord]] = None
    educations: Optional[List[EducationRecord]] = None
    contribution_role: Optional[str] = None
    contribution_description: Optional[str] = None


class PostRecord(Record):
    kind: Literal["post"] = "post"
    author_id: Optional[str] = None
    content: str = ""
    created_at: Optional[datetime] = None
    author: Optional[PersonRef] = None


class ProjectRecord(Record):
    """A project. ``contributions`` is None until fetched."""
    kind: Literal["project"] = "project"
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    created_at: Optional[datetime] = None
    contributions: Optional[List[ContributionRecord]] = None


class ProjectRequestRecord(Record):
    kind: Literal["project_request"] = "project_request"
    title: Optional[str] = None
    description: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    creator: Optional[PersonRef] = None


ExperienceRecord.model_rebuild()

AnyRecord = Union[
    ProfileRecord,
    PostRecord,
    ProjectRecord,
    ExperienceRecord,
    EducationRecord,
    ProjectRequestRecord,
]

RECORD_TYPES = {
    ResultType.PROFILE: ProfileRecord,
    ResultType.POST: PostRecord,
    ResultType.PROJECT: ProjectRecord,
    ResultType.EXPERIENCE: ExperienceRecord,
    ResultType.EDUCATION: EducationRecord,
    ResultType.PROJECT_REQUEST: ProjectRequestRecord,
}


def record_from_row(result_type: ResultType, row: Dict[str, Any]) -> AnyRecord:
    """Validate a raw store row into the record model for ``result_type``."""
    data = {k: v for k, v in row.items() if k not in ("similarity", "embedding")}
    data.pop("kind", None)
    return RECORD_TYPES[result_type].model_validate(data)
