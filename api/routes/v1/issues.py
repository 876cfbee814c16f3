"""
api/routes/v1/issues.py -- Issue routes nested under a repository.

Routes:
  POST  /repos/{repo_id}/issues                       -- file an issue
  GET   /repos/{repo_id}/issues                       -- list, newest first, with filters
  GET   /repos/{repo_id}/issues/{issue_id}            -- issue detail
  PUT   /repos/{repo_id}/issues/{issue_id}            -- edit fields (creator or assignee)
  PATCH /repos/{repo_id}/issues/{issue_id}/status     -- change status (any member)

The repository in the path is authoritative: an issue addressed through a
repository it does not belong to is rejected with 400 mismatch.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Path, Query, Request

from api.limiter import limiter
from api.models import (
    ID_PATTERN,
    Envelope,
    IssueCreate,
    IssueResponse,
    IssueStatusUpdate,
    IssueUpdate,
    ListEnvelope,
)
from api.people import issue_people
from auth.dependencies import Operation, require
from auth.models import IdentityClaim
from core.store import Page
from hub.models import Issue, IssueFilters, IssuePatch, IssueStatus
from hub.service import RepositoryService

router = APIRouter()

RepoId = Annotated[str, Path(pattern=ID_PATTERN)]
IssueId = Annotated[str, Path(pattern=ID_PATTERN)]


def _service(request: Request) -> RepositoryService:
    return request.app.state.service


def _envelope(request: Request, issue: Issue) -> Envelope[IssueResponse]:
    return Envelope(data=IssueResponse.from_domain(issue, issue_people(request, [issue])))


def _split_labels(raw: Optional[str]) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(dict.fromkeys(part.strip() for part in raw.split(",") if part.strip()))


@router.post("/repos/{repo_id}/issues", response_model=Envelope[IssueResponse])
@limiter.limit("60/minute")
def create_issue(
    request: Request,
    repo_id: RepoId,
    body: IssueCreate,
    claim: IdentityClaim = Depends(require(Operation.create_issue)),
) -> Envelope[IssueResponse]:
    """File an issue. The caller is recorded as its creator; status starts open."""
    issue = _service(request).create_issue(
        claim,
        repo_id,
        title=body.title,
        description=body.description,
        labels=body.labels,
        assigned_to=body.assigned_to,
    )
    return _envelope(request, issue)


@router.get("/repos/{repo_id}/issues", response_model=ListEnvelope[IssueResponse])
def list_issues(
    request: Request,
    repo_id: RepoId,
    status: Optional[IssueStatus] = None,
    labels: Optional[str] = Query(None, description="Comma-separated; an issue matches if it has any of them"),
    assigned_to: Optional[str] = Query(None, pattern=ID_PATTERN),
    created_by: Optional[str] = Query(None, pattern=ID_PATTERN),
    offset: int = Query(0, ge=0),
    limit: int = Query(-1, ge=-1, le=200, description="-1 returns every match"),
    claim: IdentityClaim = Depends(require(Operation.list_issues)),
) -> ListEnvelope[IssueResponse]:
    filters = IssueFilters(
        status=status,
        labels=_split_labels(labels),
        assigned_to=assigned_to,
        created_by=created_by,
    )
    result = _service(request).list_issues(claim, repo_id, filters, Page(offset=offset, limit=limit))
    people = issue_people(request, result.items)
    return ListEnvelope(data=[IssueResponse.from_domain(i, people) for i in result.items], total=result.total)


@router.get("/repos/{repo_id}/issues/{issue_id}", response_model=Envelope[IssueResponse])
def get_issue(
    request: Request,
    repo_id: RepoId,
    issue_id: IssueId,
    claim: IdentityClaim = Depends(require(Operation.get_issue)),
) -> Envelope[IssueResponse]:
    issue = _service(request).get_issue(claim, repo_id, issue_id)
    return _envelope(request, issue)


@router.put("/repos/{repo_id}/issues/{issue_id}", response_model=Envelope[IssueResponse])
def update_issue(
    request: Request,
    repo_id: RepoId,
    issue_id: IssueId,
    body: IssueUpdate,
    claim: IdentityClaim = Depends(require(Operation.update_issue)),
) -> Envelope[IssueResponse]:
    """Edit title, description, labels or assignee. Omitted fields keep their value.

    An explicit "assigned_to": null removes the assignee.
    """
    patch = IssuePatch(
        title=body.title,
        description=body.description,
        labels=tuple(body.labels) if body.labels is not None else None,
        assigned_to=body.assigned_to,
        unassign="assigned_to" in body.model_fields_set and body.assigned_to is None,
    )
    issue = _service(request).update_issue(claim, repo_id, issue_id, patch)
    return _envelope(request, issue)


@router.patch("/repos/{repo_id}/issues/{issue_id}/status", response_model=Envelope[IssueResponse])
def update_issue_status(
    request: Request,
    repo_id: RepoId,
    issue_id: IssueId,
    body: IssueStatusUpdate,
    claim: IdentityClaim = Depends(require(Operation.update_issue_status)),
) -> Envelope[IssueResponse]:
    issue = _service(request).update_issue_status(claim, repo_id, issue_id, body.status)
    return _envelope(request, issue)
