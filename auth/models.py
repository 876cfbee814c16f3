"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in hub/models.py -- dataclasses own domain shape; stores and routes do the
work.

Layer rule: no imports from api/ or hub/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Coarse role carried in every access token."""

    owner = "owner"
    collaborator = "collaborator"
    viewer = "viewer"


@dataclass(frozen=True)
class IdentityClaim:
    """Decoded, verified token payload. Produced once per request, never persisted.

    subject_id is the user id the token was issued for. The role is trusted
    as-is once the signature has been verified.
    """

    subject_id: str
    role: Role
    email: str | None = None


@dataclass
class User:
    """A registered account.

    hashed_password is a bcrypt hash; it never leaves the auth layer.
    tombstoned users are invisible to every lookup (see core/store.py).
    """

    email: str
    display_name: str
    role: Role = Role.collaborator
    id: str | None = None
    hashed_password: str | None = None
    created_at: str = ""
    updated_at: str = ""
    tombstoned: bool = False

    def claim(self) -> IdentityClaim:
        return IdentityClaim(subject_id=self.id, role=self.role, email=self.email)
