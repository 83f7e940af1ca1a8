"""
Discovery Schemas

Store records and the values exchanged by the search pipeline.
"""

from .records import (
    ResultType,
    PersonRef,
    ContributionRecord,
    Record,
    ProfileRecord,
    PostRecord,
    ProjectRecord,
    ExperienceRecord,
    EducationRecord,
    ProjectRequestRecord,
    AnyRecord,
    record_from_row,
)
from .search import (
    SearchResult,
    SearchResults,
    Relationship,
    RelationshipType,
    Source,
    ProgressUpdate,
    ProgressType,
    DataGap,
    DataRequest,
    DataRequestType,
    Importance,
)

__all__ = [
    "ResultType",
    "PersonRef",
    "ContributionRecord",
    "Record",
    "ProfileRecord",
    "PostRecord",
    "ProjectRecord",
    "ExperienceRecord",
    "EducationRecord",
    "ProjectRequestRecord",
    "AnyRecord",
    "record_from_row",
    "SearchResult",
    "SearchResults",
    "Relationship",
    "RelationshipType",
    "Source",
    "ProgressUpdate",
    "ProgressType",
    "DataGap",
    "DataRequest",
    "DataRequestType",
    "Importance",
]
