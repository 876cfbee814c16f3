"""
hub/models.py -- Domain dataclasses for repositories and issues.

These are pure data containers with zero logic. Authorization lives in
hub/access.py, orchestration in hub/service.py, persistence in hub/store.py.

Patch structs carry only the fields an operation may change. A field left
as None is not touched. Issue.repository_id appears in no patch: the
parent link is immutable after creation.

id is None before the record is written to the database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class IssueStatus(str, Enum):
    open = "open"
    in_progress = "in-progress"
    closed = "closed"


@dataclass
class Repository:
    """A repository owned by one user, shared with a set of collaborators.

    collaborators never contains owner. name is unique per owner among
    live repositories.
    """

    name: str
    owner: str
    description: str = ""
    collaborators: frozenset[str] = field(default_factory=frozenset)
    id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    tombstoned: bool = False


@dataclass
class Issue:
    """An issue filed under a repository.

    labels is an ordered set: insertion order kept, duplicates dropped by
    the service before the record is written.
    """

    title: str
    created_by: str
    repository_id: str
    description: str = ""
    status: IssueStatus = IssueStatus.open
    labels: tuple[str, ...] = ()
    assigned_to: Optional[str] = None
    id: Optional[str] = None
    created_at: str = ""
    updated_at: str = ""
    tombstoned: bool = False


@dataclass(frozen=True)
class RepositoryPatch:
    name: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class IssuePatch:
    """assigned_to=None leaves the assignee alone; unassign=True clears it."""

    title: Optional[str] = None
    description: Optional[str] = None
    labels: Optional[tuple[str, ...]] = None
    assigned_to: Optional[str] = None
    unassign: bool = False


@dataclass(frozen=True)
class IssueFilters:
    """Optional narrowing for issue listings. labels match if any label is present."""

    status: Optional[IssueStatus] = None
    labels: tuple[str, ...] = ()
    assigned_to: Optional[str] = None
    created_by: Optional[str] = None
