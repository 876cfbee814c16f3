"""
auth/store.py -- SQLAlchemy Core persistence layer for user accounts.

Pattern: Repository + Data Mapper. UserStore composes one
core.store.SoftDeleteStore[User]; _row_to_user / _user_values are the
mappers. Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Email uniqueness is checked among live users only, so a tombstoned
  account releases its address.

Layer rule: no imports from api/ or hub/.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import Column, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from auth.models import Role, User
from core.store import SoftDeleteStore, connection, create_store_engine, soft_delete_columns

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    *soft_delete_columns(),
    Column("email", String(80), nullable=False, index=True),
    Column("display_name", String(80), nullable=False),
    Column("role", String(30), nullable=False, server_default=Role.collaborator.value),
    Column("hashed_password", Text),
)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///./repohub_auth.db")
        user = store.create_user(User(email="o@example.com", display_name="O", role=Role.owner))
        store.get_by_email("o@example.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = create_store_engine(db_url)
        _metadata.create_all(self.engine)
        self.users: SoftDeleteStore[User] = SoftDeleteStore(
            self.engine,
            _users,
            decode=_row_to_user,
            encode=_user_values,
        )

    def create_user(self, user: User) -> User:
        """Insert a new user and return it with id and timestamps assigned.

        Callers check get_by_email() first; the store does not raise on
        duplicate emails.
        """
        return self.users.create(user)

    def get_by_id(self, user_id: str) -> User | None:
        return self.users.find_by_id(user_id)

    def get_many(self, user_ids: Iterable[str]) -> dict[str, User]:
        """Live users among user_ids, keyed by id. Unknown or tombstoned ids are absent."""
        wanted = sorted(set(user_ids))
        if not wanted:
            return {}
        return {user.id: user for user in self.users.find_many({"id": wanted}).items}

    def get_by_email(self, email: str) -> User | None:
        """Look up a live user by email (case-insensitive, stored lowercase)."""
        return self.users.find_one({"email": email.strip().lower()})

    def list_users(self) -> list[User]:
        return self.users.find_many().items

    def deactivate_user(self, user_id: str) -> bool:
        return self.users.soft_delete(user_id)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with connection(self.engine) as conn:
            conn.exec_driver_sql("SELECT 1")
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _user_values(fields: Mapping[str, Any]) -> dict:
    values = {k: v for k, v in fields.items() if k in _users.c}
    if "email" in values:
        values["email"] = values["email"].strip().lower()
    if "role" in values:
        values["role"] = Role(values["role"]).value
    if "tombstoned" in values:
        values["tombstoned"] = 1 if values["tombstoned"] else 0
    return values


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        display_name=row.display_name,
        role=Role(row.role),
        hashed_password=row.hashed_password,
        created_at=row.created_at,
        updated_at=row.updated_at,
        tombstoned=bool(row.tombstoned),
    )
