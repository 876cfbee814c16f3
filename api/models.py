"""
API request and response models for RepoHub REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in hub/models.py and
auth/models.py, which own the internal domain representation. Route handlers
map between the two.

Request validation happens here and only here: by the time a service sees a
value, ids are 24-hex strings and lengths are within bounds. Services do not
re-validate.

Every successful response is wrapped in Envelope / ListEnvelope
({"success": true, "data": ...}); every error in ErrorResponse.
"""

from collections.abc import Mapping
from typing import Annotated, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, StringConstraints

from auth.models import Role, User
from hub.models import Issue, IssueStatus, Repository

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ID_PATTERN = r"^[0-9a-f]{24}$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

ObjectId = Annotated[str, Field(pattern=ID_PATTERN)]
_Label = Annotated[str, Field(min_length=1, max_length=50)]


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


class Envelope(BaseModel, Generic[T]):
    success: bool = True
    data: T


class ListEnvelope(BaseModel, Generic[T]):
    success: bool = True
    data: list[T]
    total: int


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

# Passwords are taken byte for byte; only the identifying fields are trimmed.
_Trimmed = StringConstraints(strip_whitespace=True)


class SignupRequest(BaseModel):
    email: Annotated[str, _Trimmed] = Field(min_length=3, max_length=80, pattern=EMAIL_PATTERN)
    display_name: Annotated[str, _Trimmed] = Field(min_length=1, max_length=80)
    password: str = Field(min_length=8, max_length=72)


class LoginRequest(BaseModel):
    email: Annotated[str, _Trimmed] = Field(min_length=3, max_length=80)
    password: str = Field(min_length=1, max_length=72)


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    display_name: str
    role: Role
    created_at: str

    @classmethod
    def from_domain(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            display_name=user.display_name,
            role=user.role,
            created_at=user.created_at,
        )


class UserSummary(BaseModel):
    """A user reference as embedded in repository and issue payloads.

    email and display_name are None when the id no longer matches a live
    account (deactivated, or never existed: collaborator ids are not
    checked against the account database).
    """

    model_config = ConfigDict(frozen=True)

    id: str
    email: Optional[str] = None
    display_name: Optional[str] = None

    @classmethod
    def from_domain(cls, user: User) -> "UserSummary":
        return cls(id=user.id, email=user.email, display_name=user.display_name)


# user id -> summary, covering every id a response will embed
People = Mapping[str, UserSummary]


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse


class SignupResponse(LoginResponse):
    """A new account plus a token, so the client is signed in straight away."""


class MeResponse(BaseModel):
    """The caller's identity as decoded from the token."""

    model_config = ConfigDict(frozen=True)

    subject_id: str
    role: Role
    email: Optional[str] = None


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class RepositoryCreate(BaseModel):
    """Request body for POST /api/v1/repos."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)


class RepositoryUpdate(BaseModel):
    """Request body for PUT /api/v1/repos/{repo_id}. Omitted fields are left alone."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)


class CollaboratorAdd(BaseModel):
    user_id: ObjectId


class RepositoryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    owner: UserSummary
    collaborators: list[UserSummary]
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, repo: Repository, people: People) -> "RepositoryResponse":
        return cls(
            id=repo.id,
            name=repo.name,
            description=repo.description,
            owner=people[repo.owner],
            collaborators=[people[uid] for uid in sorted(repo.collaborators)],
            created_at=repo.created_at,
            updated_at=repo.updated_at,
        )



class DeletedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    deleted: bool = True


class CollaboratorsResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    owner: UserSummary
    collaborators: list[UserSummary]

    @classmethod
    def from_domain(cls, repo: Repository, people: People) -> "CollaboratorsResponse":
        return cls(owner=people[repo.owner], collaborators=[people[uid] for uid in sorted(repo.collaborators)])


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------


class IssueCreate(BaseModel):
    """Request body for POST /api/v1/repos/{repo_id}/issues."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    labels: list[_Label] = Field(default_factory=list, max_length=50)
    assigned_to: Optional[ObjectId] = None


class IssueUpdate(BaseModel):
    """Request body for PUT /api/v1/repos/{repo_id}/issues/{issue_id}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    labels: Optional[list[_Label]] = Field(default=None, max_length=50)
    assigned_to: Optional[ObjectId] = None


class IssueStatusUpdate(BaseModel):
    status: IssueStatus


class IssueResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    repository_id: str
    title: str
    description: str
    status: IssueStatus
    labels: list[str]
    created_by: UserSummary
    assigned_to: Optional[UserSummary]
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, issue: Issue, people: People) -> "IssueResponse":
        return cls(
            id=issue.id,
            repository_id=issue.repository_id,
            title=issue.title,
            description=issue.description,
            status=issue.status,
            labels=list(issue.labels),
            created_by=people[issue.created_by],
            assigned_to=people[issue.assigned_to] if issue.assigned_to else None,
            created_at=issue.created_at,
            updated_at=issue.updated_at,
        )
