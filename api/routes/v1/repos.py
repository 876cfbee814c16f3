"""
api/routes/v1/repos.py -- Repository and collaborator routes.

Routes:
  POST   /repos                                   -- create repository (caller becomes owner)
  GET    /repos                                   -- repositories the caller owns or collaborates on
  GET    /repos/{repo_id}                         -- repository detail
  PUT    /repos/{repo_id}                         -- rename / re-describe (owner only)
  DELETE /repos/{repo_id}                         -- tombstone (owner only)
  GET    /repos/{repo_id}/collaborators           -- owner + collaborators as user summaries
  POST   /repos/{repo_id}/collaborators           -- add a collaborator (owner only)
  DELETE /repos/{repo_id}/collaborators/{user_id} -- remove a collaborator (owner only)

Each handler declares its Operation through Depends(require(...)); the role
gate therefore runs before the path or body is validated and before any
record is loaded. Ownership and membership are decided by RepositoryService.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query, Request

from api.limiter import limiter
from api.models import (
    ID_PATTERN,
    CollaboratorAdd,
    CollaboratorsResponse,
    DeletedResponse,
    Envelope,
    ListEnvelope,
    RepositoryCreate,
    RepositoryResponse,
    RepositoryUpdate,
)
from api.people import repository_people
from auth.dependencies import Operation, require
from auth.models import IdentityClaim
from core.store import Page
from hub.models import Repository, RepositoryPatch
from hub.service import RepositoryService

router = APIRouter()

RepoId = Annotated[str, Path(pattern=ID_PATTERN, description="24-character hex repository id")]
UserId = Annotated[str, Path(pattern=ID_PATTERN)]


def _service(request: Request) -> RepositoryService:
    return request.app.state.service


def _envelope(request: Request, repo: Repository) -> Envelope[RepositoryResponse]:
    return Envelope(data=RepositoryResponse.from_domain(repo, repository_people(request, [repo])))


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


@router.post("/repos", response_model=Envelope[RepositoryResponse])
@limiter.limit("30/minute")
def create_repository(
    request: Request,
    body: RepositoryCreate,
    claim: IdentityClaim = Depends(require(Operation.create_repository)),
) -> Envelope[RepositoryResponse]:
    repo = _service(request).create_repository(claim, body.name, body.description)
    return _envelope(request, repo)


@router.get("/repos", response_model=ListEnvelope[RepositoryResponse])
def list_repositories(
    request: Request,
    offset: int = Query(0, ge=0),
    limit: int = Query(-1, ge=-1, le=200, description="-1 returns every match"),
    claim: IdentityClaim = Depends(require(Operation.list_repositories)),
) -> ListEnvelope[RepositoryResponse]:
    """List live repositories the caller owns or collaborates on, oldest first."""
    result = _service(request).list_repositories(claim, Page(offset=offset, limit=limit))
    people = repository_people(request, result.items)
    return ListEnvelope(data=[RepositoryResponse.from_domain(r, people) for r in result.items], total=result.total)


@router.get("/repos/{repo_id}", response_model=Envelope[RepositoryResponse])
def get_repository(
    request: Request,
    repo_id: RepoId,
    claim: IdentityClaim = Depends(require(Operation.get_repository)),
) -> Envelope[RepositoryResponse]:
    repo = _service(request).get_repository(claim, repo_id)
    return _envelope(request, repo)


@router.put("/repos/{repo_id}", response_model=Envelope[RepositoryResponse])
def update_repository(
    request: Request,
    repo_id: RepoId,
    body: RepositoryUpdate,
    claim: IdentityClaim = Depends(require(Operation.update_repository)),
) -> Envelope[RepositoryResponse]:
    """Change name and/or description. Omitted fields keep their value."""
    patch = RepositoryPatch(name=body.name, description=body.description)
    repo = _service(request).update_repository(claim, repo_id, patch)
    return _envelope(request, repo)


@router.delete("/repos/{repo_id}", response_model=Envelope[DeletedResponse])
def delete_repository(
    request: Request,
    repo_id: RepoId,
    claim: IdentityClaim = Depends(require(Operation.delete_repository)),
) -> Envelope[DeletedResponse]:
    """Tombstone the repository. Its issues become unreachable with it."""
    _service(request).delete_repository(claim, repo_id)
    return Envelope(data=DeletedResponse(id=repo_id))


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@router.get("/repos/{repo_id}/collaborators", response_model=Envelope[CollaboratorsResponse])
def list_collaborators(
    request: Request,
    repo_id: RepoId,
    claim: IdentityClaim = Depends(require(Operation.list_collaborators)),
) -> Envelope[CollaboratorsResponse]:
    repo = _service(request).list_collaborators(claim, repo_id)
    return Envelope(data=CollaboratorsResponse.from_domain(repo, repository_people(request, [repo])))


@router.post("/repos/{repo_id}/collaborators", response_model=Envelope[RepositoryResponse])
def add_collaborator(
    request: Request,
    repo_id: RepoId,
    body: CollaboratorAdd,
    claim: IdentityClaim = Depends(require(Operation.add_collaborator)),
) -> Envelope[RepositoryResponse]:
    """Add a user to the collaborator set. Adding an existing member is a 409."""
    repo = _service(request).add_collaborator(claim, repo_id, body.user_id)
    return _envelope(request, repo)


@router.delete("/repos/{repo_id}/collaborators/{user_id}", response_model=Envelope[RepositoryResponse])
def remove_collaborator(
    request: Request,
    repo_id: RepoId,
    user_id: UserId,
    claim: IdentityClaim = Depends(require(Operation.remove_collaborator)),
) -> Envelope[RepositoryResponse]:
    repo = _service(request).remove_collaborator(claim, repo_id, user_id)
    return _envelope(request, repo)
