"""
auth/dependencies.py -- The role gate and its FastAPI Depends() helpers.

Every HTTP operation is tagged with an Operation. OPERATION_ROLES is the
single allow-list table mapping each Operation to the roles that may call
it; check_role() is the single function that evaluates it. Routes never
carry their own role lists.

The gate runs strictly before any resource is loaded:
  1. Authorization: Bearer <token> is extracted       -> Unauthorized if absent
  2. the token is verified by auth.tokens              -> Unauthorized if invalid
  3. the claim's role is checked against the table     -> Forbidden if not allowed
Because nothing here touches persisted state, a role rejection never reveals
whether the addressed repository or issue exists.

Layer rule: no imports from api/ or hub/. This module may import from
fastapi because it is part of the dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from fastapi import Request

from auth.models import IdentityClaim, Role
from auth.tokens import verify_access_token
from core.errors import Forbidden, InvalidToken, Unauthorized

logger = logging.getLogger("repohub.auth.gate")


class Operation(str, Enum):
    create_repository = "create_repository"
    get_repository = "get_repository"
    list_repositories = "list_repositories"
    update_repository = "update_repository"
    delete_repository = "delete_repository"
    list_collaborators = "list_collaborators"
    add_collaborator = "add_collaborator"
    remove_collaborator = "remove_collaborator"
    create_issue = "create_issue"
    get_issue = "get_issue"
    list_issues = "list_issues"
    update_issue_status = "update_issue_status"
    update_issue = "update_issue"


_READERS = frozenset({Role.owner, Role.collaborator, Role.viewer})
_WRITERS = frozenset({Role.owner, Role.collaborator})
_OWNERS = frozenset({Role.owner})

OPERATION_ROLES: dict[Operation, frozenset[Role]] = {
    Operation.create_repository: _WRITERS,
    Operation.get_repository: _READERS,
    Operation.list_repositories: _READERS,
    Operation.update_repository: _OWNERS,
    Operation.delete_repository: _OWNERS,
    Operation.list_collaborators: _READERS,
    Operation.add_collaborator: _OWNERS,
    Operation.remove_collaborator: _OWNERS,
    Operation.create_issue: _WRITERS,
    Operation.get_issue: _READERS,
    Operation.list_issues: _READERS,
    Operation.update_issue_status: _WRITERS,
    Operation.update_issue: _WRITERS,
}


def check_role(claim: IdentityClaim | None, allowed: frozenset[Role]) -> IdentityClaim:
    """Pure role check. Returns the claim when its role is in `allowed`."""
    if claim is None:
        raise Unauthorized()
    if claim.role not in allowed:
        raise Forbidden("You do not have permission to access this resource.")
    return claim


def bearer_token(request: Request) -> str | None:
    """Return the token from `Authorization: Bearer <token>`, or None."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme != "Bearer" or not token.strip():
        return None
    return token.strip()


def try_get_claim(request: Request) -> IdentityClaim | None:
    """Verify the bearer token if present. Returns None on any failure."""
    token = bearer_token(request)
    if token is None:
        return None
    try:
        return verify_access_token(token)
    except InvalidToken as exc:
        logger.info("Rejected bearer token on %s %s: %s", request.method, request.url.path, exc)
        return None


def get_current_claim(request: Request) -> IdentityClaim:
    """Require a valid token of any role. Raises Unauthorized otherwise.

    Use as a FastAPI dependency:
        @router.get("/auth/me")
        def me(claim: IdentityClaim = Depends(get_current_claim)): ...
    """
    return check_role(try_get_claim(request), _READERS)


def require(operation: Operation) -> Callable[[Request], IdentityClaim]:
    """Build the role-gate dependency for one operation.

    Use as a FastAPI dependency:
        @router.delete("/repos/{repo_id}")
        def delete(claim: IdentityClaim = Depends(require(Operation.delete_repository))): ...
    """
    allowed = OPERATION_ROLES[operation]

    def gate(request: Request) -> IdentityClaim:
        claim = try_get_claim(request)
        try:
            return check_role(claim, allowed)
        except Forbidden:
            logger.warning(
                "Role %s denied for %s (subject=%s)",
                claim.role.value,
                operation.value,
                claim.subject_id,
            )
            raise

    gate.__name__ = f"require_{operation.value}"
    return gate
