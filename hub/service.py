"""
hub/service.py -- Repository and issue flows with composed authorization.

Every public method follows the same fail-fast chain and stops at the first
violated rule, before anything is written:

  1. role gate        check_role(claim, OPERATION_ROLES[op])  -> Unauthorized / Forbidden
  2. load container   live repository by id                   -> NotFound
  3. relation         hub.access on the repository            -> Forbidden
  4. load item        live issue by id (issue flows only)     -> NotFound
  5. path match       issue.repository_id == addressed repo   -> Mismatch
  6. business rule    owner-only / creator-or-assignee / uniqueness -> Forbidden / Conflict
  7. one mutation through HubStore

The route layer runs the same role gate as a dependency before the request
body is even parsed; running it again here keeps the service safe to call
from anywhere (CLI, tests) without an HTTP front.

Access policies encoded here:
  - Issues under a tombstoned repository are unreachable: step 2 fails with
    NotFound before any issue is loaded.
  - A collaborator removed from a repository loses edit rights over issues
    they created: step 3 runs before the creator/assignee rule.
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from auth.dependencies import OPERATION_ROLES, Operation, check_role
from auth.models import IdentityClaim
from core.errors import Conflict, Forbidden, Mismatch, NotFound
from core.store import Page, Paginated
from hub.access import relation_of_issue, relation_of_repository
from hub.models import Issue, IssueFilters, IssuePatch, IssueStatus, Repository, RepositoryPatch
from hub.store import HubStore

logger = logging.getLogger("repohub.service")


def _patch_values(patch) -> dict:
    return {k: v for k, v in asdict(patch).items() if v is not None}


def _ordered_labels(labels) -> tuple[str, ...]:
    return tuple(dict.fromkeys(labels or ()))


class RepositoryService:
    def __init__(self, store: HubStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    def create_repository(self, claim: IdentityClaim, name: str, description: str = "") -> Repository:
        """Create a repository owned by the caller. Name must be free for this owner."""
        check_role(claim, OPERATION_ROLES[Operation.create_repository])
        if self.store.find_repository_by_name(claim.subject_id, name) is not None:
            raise Conflict("Repository with this name already exists")
        repo = self.store.create_repository(
            Repository(name=name, description=description or "", owner=claim.subject_id)
        )
        logger.info("Repository %s (%s) created by %s", repo.id, repo.name, claim.subject_id)
        return repo

    def get_repository(self, claim: IdentityClaim, repo_id: str) -> Repository:
        check_role(claim, OPERATION_ROLES[Operation.get_repository])
        return self._load_visible(claim, repo_id)

    def list_repositories(self, claim: IdentityClaim, page: Page | None = None) -> Paginated[Repository]:
        """Repositories the caller owns or collaborates on. Nothing else is ever returned."""
        check_role(claim, OPERATION_ROLES[Operation.list_repositories])
        return self.store.list_repositories_for(claim.subject_id, page)

    def update_repository(self, claim: IdentityClaim, repo_id: str, patch: RepositoryPatch) -> Repository:
        check_role(claim, OPERATION_ROLES[Operation.update_repository])
        repo = self._load_administered(claim, repo_id, "update repository details")
        if patch.name is not None and patch.name != repo.name:
            if self.store.find_repository_by_name(repo.owner, patch.name) is not None:
                raise Conflict("Repository with this name already exists")
        updated = self.store.update_repository(repo_id, _patch_values(patch))
        if updated is None:
            raise NotFound("Repository not found")
        logger.info("Repository %s updated by %s", repo_id, claim.subject_id)
        return updated

    def delete_repository(self, claim: IdentityClaim, repo_id: str) -> None:
        """Tombstone the repository. Child issues stay stored but become unreachable."""
        check_role(claim, OPERATION_ROLES[Operation.delete_repository])
        self._load_administered(claim, repo_id, "delete the repository")
        if not self.store.soft_delete_repository(repo_id):
            raise NotFound("Repository not found")
        logger.info("Repository %s deleted by %s", repo_id, claim.subject_id)

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def list_collaborators(self, claim: IdentityClaim, repo_id: str) -> Repository:
        check_role(claim, OPERATION_ROLES[Operation.list_collaborators])
        return self._load_visible(claim, repo_id)

    def add_collaborator(self, claim: IdentityClaim, repo_id: str, user_id: str) -> Repository:
        """Add user_id to the collaborator set.

        Not idempotent: adding an existing collaborator, or the owner, is a
        Conflict every time.
        """
        check_role(claim, OPERATION_ROLES[Operation.add_collaborator])
        repo = self._load_administered(claim, repo_id, "add collaborators")
        if user_id in repo.collaborators:
            raise Conflict("User is already a collaborator")
        if user_id == repo.owner:
            raise Conflict("Owner cannot be added as collaborator")
        if not self.store.add_collaborator(repo_id, user_id):
            # lost a race with a concurrent add (or delete)
            raise Conflict("User is already a collaborator")
        logger.info("User %s added to repository %s by %s", user_id, repo_id, claim.subject_id)
        return self._reload(repo_id)

    def remove_collaborator(self, claim: IdentityClaim, repo_id: str, user_id: str) -> Repository:
        check_role(claim, OPERATION_ROLES[Operation.remove_collaborator])
        repo = self._load_administered(claim, repo_id, "remove collaborators")
        if user_id not in repo.collaborators or not self.store.remove_collaborator(repo_id, user_id):
            raise Conflict("User is not a collaborator")
        logger.info("User %s removed from repository %s by %s", user_id, repo_id, claim.subject_id)
        return self._reload(repo_id)

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    def create_issue(
        self,
        claim: IdentityClaim,
        repo_id: str,
        title: str,
        description: str = "",
        labels: tuple[str, ...] | list[str] = (),
        assigned_to: str | None = None,
    ) -> Issue:
        check_role(claim, OPERATION_ROLES[Operation.create_issue])
        self._load_visible(claim, repo_id)
        issue = self.store.create_issue(
            Issue(
                title=title,
                description=description or "",
                status=IssueStatus.open,
                labels=_ordered_labels(labels),
                created_by=claim.subject_id,
                assigned_to=assigned_to,
                repository_id=repo_id,
            )
        )
        logger.info("Issue %s created in repository %s by %s", issue.id, repo_id, claim.subject_id)
        return issue

    def list_issues(
        self,
        claim: IdentityClaim,
        repo_id: str,
        filters: IssueFilters | None = None,
        page: Page | None = None,
    ) -> Paginated[Issue]:
        check_role(claim, OPERATION_ROLES[Operation.list_issues])
        self._load_visible(claim, repo_id)
        return self.store.list_issues(repo_id, filters, page)

    def get_issue(self, claim: IdentityClaim, repo_id: str, issue_id: str) -> Issue:
        check_role(claim, OPERATION_ROLES[Operation.get_issue])
        repo = self._load_visible(claim, repo_id)
        return self._load_issue_in(repo, issue_id)

    def update_issue_status(
        self, claim: IdentityClaim, repo_id: str, issue_id: str, status: IssueStatus
    ) -> Issue:
        """Set the status. Any owner or collaborator of the repository may do this."""
        check_role(claim, OPERATION_ROLES[Operation.update_issue_status])
        repo = self._load_visible(claim, repo_id)
        self._load_issue_in(repo, issue_id)
        updated = self.store.update_issue(issue_id, {"status": IssueStatus(status)})
        if updated is None:
            raise NotFound("Issue not found")
        logger.info("Issue %s status -> %s by %s", issue_id, updated.status.value, claim.subject_id)
        return updated

    def update_issue(self, claim: IdentityClaim, repo_id: str, issue_id: str, patch: IssuePatch) -> Issue:
        """Edit issue fields. Only the creator or the current assignee may do this."""
        check_role(claim, OPERATION_ROLES[Operation.update_issue])
        repo = self._load_visible(claim, repo_id)
        issue = self._load_issue_in(repo, issue_id)
        if not relation_of_issue(issue, repo, claim).can_edit:
            logger.warning("Issue edit denied for %s on %s", claim.subject_id, issue_id)
            raise Forbidden("Only the creator or assigned user can update this issue")
        values = _patch_values(patch)
        if values.pop("unassign", False):
            values["assigned_to"] = None
        if "labels" in values:
            values["labels"] = _ordered_labels(values["labels"])
        updated = self.store.update_issue(issue_id, values)
        if updated is None:
            raise NotFound("Issue not found")
        logger.info("Issue %s updated by %s", issue_id, claim.subject_id)
        return updated

    # ------------------------------------------------------------------
    # Loading + relation checks
    # ------------------------------------------------------------------

    def _load_visible(self, claim: IdentityClaim, repo_id: str) -> Repository:
        repo = self.store.find_repository(repo_id)
        if repo is None:
            raise NotFound("Repository not found")
        if not relation_of_repository(repo, claim).can_view:
            logger.warning("Repository access denied for %s on %s", claim.subject_id, repo_id)
            raise Forbidden("You do not have access to this repository")
        return repo

    def _load_administered(self, claim: IdentityClaim, repo_id: str, action: str) -> Repository:
        repo = self.store.find_repository(repo_id)
        if repo is None:
            raise NotFound("Repository not found")
        if not relation_of_repository(repo, claim).can_administer:
            logger.warning("Owner-only action denied for %s on %s", claim.subject_id, repo_id)
            raise Forbidden(f"Only the repository owner can {action}")
        return repo

    def _load_issue_in(self, repo: Repository, issue_id: str) -> Issue:
        issue = self.store.find_issue(issue_id)
        if issue is None:
            raise NotFound("Issue not found")
        if issue.repository_id != repo.id:
            raise Mismatch("Issue does not belong to this repository")
        return issue

    def _reload(self, repo_id: str) -> Repository:
        repo = self.store.find_repository(repo_id)
        if repo is None:
            raise NotFound("Repository not found")
        return repo
