"""
hub/access.py -- Ownership and membership resolution.

Given a loaded resource and the caller's IdentityClaim, compute how the
caller relates to it. Two channels, kept apart on purpose:

  visibility  (can the caller see / act inside this container?)
      answered by the parent repository only: owner or collaborator.
  mutation    (can the caller edit this issue's fields?)
      answered by the issue only: creator or current assignee.

An issue's creator who is no longer a collaborator of its repository fails
the visibility channel and therefore never reaches the mutation check.

These are pure functions of already-loaded state; loading and the order in
which checks run belong to hub/service.py.
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.models import IdentityClaim
from hub.models import Issue, Repository


@dataclass(frozen=True)
class RepositoryRelation:
    is_owner: bool
    is_collaborator: bool

    @property
    def can_view(self) -> bool:
        return self.is_owner or self.is_collaborator

    @property
    def can_administer(self) -> bool:
        return self.is_owner


@dataclass(frozen=True)
class IssueRelation:
    repository: RepositoryRelation
    is_creator: bool
    is_assignee: bool

    @property
    def can_view(self) -> bool:
        return self.repository.can_view

    @property
    def can_edit(self) -> bool:
        return self.is_creator or self.is_assignee


def relation_of_repository(repo: Repository, claim: IdentityClaim) -> RepositoryRelation:
    """Owner/collaborator flags for the caller. The two are mutually exclusive."""
    return RepositoryRelation(
        is_owner=repo.owner == claim.subject_id,
        is_collaborator=claim.subject_id in repo.collaborators,
    )


def relation_of_issue(issue: Issue, parent: Repository, claim: IdentityClaim) -> IssueRelation:
    """Relation to an issue, carrying the parent repository relation for visibility.

    parent must be the repository the issue actually belongs to; the service
    rejects path mismatches before calling this.
    """
    if issue.repository_id != parent.id:
        raise ValueError(f"Issue {issue.id} does not belong to repository {parent.id}")
    return IssueRelation(
        repository=relation_of_repository(parent, claim),
        is_creator=issue.created_by == claim.subject_id,
        is_assignee=issue.assigned_to is not None and issue.assigned_to == claim.subject_id,
    )
