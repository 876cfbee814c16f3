"""
hub/store.py -- SQLAlchemy-backed persistence for repositories and issues.

Uses SQLAlchemy Core (not ORM) so the dataclasses in hub/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is
a connection string change.

Composition: HubStore owns one engine and two core.store.SoftDeleteStore
instances (repositories, issues). Generic CRUD goes through those; the
queries that are specific to this domain live here as named methods so
services never build SQL.

Collaborators:
  Stored in repository_collaborators with PRIMARY KEY (repository_id, user_id).
  add_collaborator() is a single conditional INSERT ... SELECT -- the set
  insertion happens inside the database, never as read-modify-write in
  Python. A duplicate trips the primary key; the WHERE clause refuses the
  owner and tombstoned repositories. Either way the method returns False and
  nothing is written.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = HubStore("sqlite:///./repohub.db")
    repo = store.create_repository(Repository(name="demo", owner=user_id))
    store.add_collaborator(repo.id, other_id)
    store.list_repositories_for(other_id)
    store.close()
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import (
    Column,
    ForeignKey,
    MetaData,
    PrimaryKeyConstraint,
    String,
    Table,
    Text,
    and_,
    exists,
    literal,
    or_,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from core.store import (
    ID_LENGTH,
    Page,
    Paginated,
    SoftDeleteStore,
    connection,
    create_store_engine,
    now_iso,
    soft_delete_columns,
)
from hub.models import Issue, IssueFilters, IssueStatus, Repository

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_repositories = Table(
    "repositories",
    metadata,
    *soft_delete_columns(),
    Column("name", String(100), nullable=False),
    Column("description", String(500), nullable=False, server_default=""),
    Column("owner", String(ID_LENGTH), nullable=False, index=True),
)

_collaborators = Table(
    "repository_collaborators",
    metadata,
    Column(
        "repository_id",
        String(ID_LENGTH),
        ForeignKey("repositories.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("user_id", String(ID_LENGTH), nullable=False, index=True),
    Column("added_at", String(32), nullable=False),
    PrimaryKeyConstraint("repository_id", "user_id", name="pk_repository_collaborator"),
)

_issues = Table(
    "issues",
    metadata,
    *soft_delete_columns(),
    Column("title", String(200), nullable=False),
    Column("description", Text, nullable=False, server_default=""),
    Column("status", String(20), nullable=False, server_default=IssueStatus.open.value),
    Column("labels", Text, nullable=False, server_default="[]"),  # JSON array, insertion order
    Column("created_by", String(ID_LENGTH), nullable=False),
    Column("assigned_to", String(ID_LENGTH)),
    Column(
        "repository_id",
        String(ID_LENGTH),
        ForeignKey("repositories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    ),
)


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class HubStore:
    def __init__(self, db_url: str) -> None:
        self.engine: Engine = create_store_engine(db_url)
        metadata.create_all(self.engine)
        self.repositories: SoftDeleteStore[Repository] = SoftDeleteStore(
            self.engine,
            _repositories,
            decode=_row_to_repository,
            encode=_repository_values,
            relations={"collaborators": _load_collaborators},
        )
        self.issues: SoftDeleteStore[Issue] = SoftDeleteStore(
            self.engine,
            _issues,
            decode=_row_to_issue,
            encode=_issue_values,
        )

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    def create_repository(self, repo: Repository) -> Repository:
        """Insert a repository. Collaborators are never written on create."""
        return self.repositories.create(repo)

    def find_repository(self, repo_id: str) -> Repository | None:
        """Live repository with its collaborator set expanded, or None."""
        return self.repositories.find_by_id(repo_id, expand=("collaborators",))

    def find_repository_by_name(self, owner: str, name: str) -> Repository | None:
        return self.repositories.find_one({"owner": owner, "name": name})

    def list_repositories_for(self, user_id: str, page: Page | None = None) -> Paginated[Repository]:
        """Live repositories the user owns or collaborates on, oldest first."""
        member_of = select(_collaborators.c.repository_id).where(_collaborators.c.user_id == user_id)
        return self.repositories.find_many(
            or_(_repositories.c.owner == user_id, _repositories.c.id.in_(member_of)),
            page=page,
            expand=("collaborators",),
        )

    def update_repository(self, repo_id: str, patch: Mapping[str, Any]) -> Repository | None:
        return self.repositories.update(repo_id, patch, expand=("collaborators",))

    def soft_delete_repository(self, repo_id: str) -> bool:
        return self.repositories.soft_delete(repo_id)

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def add_collaborator(self, repo_id: str, user_id: str) -> bool:
        """Atomically insert user_id into the repository's collaborator set.

        Returns False (and writes nothing) if the user is already a
        collaborator, is the owner, or the repository is not live.
        On success the repository's updated_at advances in the same
        transaction.
        """
        eligible = select(literal(repo_id), literal(user_id), literal(now_iso())).where(
            exists().where(
                and_(
                    _repositories.c.id == repo_id,
                    _repositories.c.tombstoned == 0,
                    _repositories.c.owner != user_id,
                )
            )
        )
        stmt = _collaborators.insert().from_select(["repository_id", "user_id", "added_at"], eligible)
        with connection(self.engine) as conn:
            try:
                result = conn.execute(stmt)
            except IntegrityError:
                conn.rollback()
                return False
            if result.rowcount == 0:
                conn.rollback()
                return False
            self.repositories.touch(repo_id, conn)
            conn.commit()
        return True

    def remove_collaborator(self, repo_id: str, user_id: str) -> bool:
        """Remove user_id from the collaborator set. False if it was not there."""
        with connection(self.engine) as conn:
            result = conn.execute(
                _collaborators.delete().where(
                    (_collaborators.c.repository_id == repo_id) & (_collaborators.c.user_id == user_id)
                )
            )
            if result.rowcount == 0:
                conn.rollback()
                return False
            self.repositories.touch(repo_id, conn)
            conn.commit()
        return True

    # ------------------------------------------------------------------
    # Issues
    # ------------------------------------------------------------------

    def create_issue(self, issue: Issue) -> Issue:
        return self.issues.create(issue)

    def find_issue(self, issue_id: str) -> Issue | None:
        return self.issues.find_by_id(issue_id)

    def list_issues(
        self,
        repo_id: str,
        filters: IssueFilters | None = None,
        page: Page | None = None,
    ) -> Paginated[Issue]:
        """Live issues under one repository, newest first."""
        filters = filters or IssueFilters()
        clauses = [_issues.c.repository_id == repo_id]
        if filters.status is not None:
            clauses.append(_issues.c.status == IssueStatus(filters.status).value)
        if filters.assigned_to:
            clauses.append(_issues.c.assigned_to == filters.assigned_to)
        if filters.created_by:
            clauses.append(_issues.c.created_by == filters.created_by)
        if filters.labels:
            # labels is a JSON array; a quoted label can only match a whole element.
            clauses.append(
                or_(*[_issues.c.labels.contains(json.dumps(label), autoescape=True) for label in filters.labels])
            )
        return self.issues.find_many(and_(*clauses), page=page, descending=True)

    def update_issue(self, issue_id: str, patch: Mapping[str, Any]) -> Issue | None:
        return self.issues.update(issue_id, patch)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with connection(self.engine) as conn:
            conn.exec_driver_sql("SELECT 1")
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Relation loaders
# ---------------------------------------------------------------------------


def _load_collaborators(conn: Connection, repo_ids: Sequence[str]) -> dict[str, frozenset[str]]:
    members: dict[str, set[str]] = {repo_id: set() for repo_id in repo_ids}
    rows = conn.execute(
        select(_collaborators.c.repository_id, _collaborators.c.user_id).where(
            _collaborators.c.repository_id.in_(list(repo_ids))
        )
    ).fetchall()
    for row in rows:
        members[row.repository_id].add(row.user_id)
    return {repo_id: frozenset(users) for repo_id, users in members.items()}


# ---------------------------------------------------------------------------
# Mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _repository_values(fields: Mapping[str, Any]) -> dict:
    # collaborators is a relation, not a column
    values = {k: v for k, v in fields.items() if k in _repositories.c}
    if "tombstoned" in values:
        values["tombstoned"] = 1 if values["tombstoned"] else 0
    return values


def _issue_values(fields: Mapping[str, Any]) -> dict:
    values = {k: v for k, v in fields.items() if k in _issues.c}
    if "status" in values:
        values["status"] = IssueStatus(values["status"]).value
    if "labels" in values:
        values["labels"] = json.dumps(list(values["labels"]))
    if "tombstoned" in values:
        values["tombstoned"] = 1 if values["tombstoned"] else 0
    return values


def _row_to_repository(row) -> Repository:
    return Repository(
        id=row.id,
        name=row.name,
        description=row.description or "",
        owner=row.owner,
        created_at=row.created_at,
        updated_at=row.updated_at,
        tombstoned=bool(row.tombstoned),
    )


def _row_to_issue(row) -> Issue:
    return Issue(
        id=row.id,
        title=row.title,
        description=row.description or "",
        status=IssueStatus(row.status),
        labels=tuple(json.loads(row.labels or "[]")),
        created_by=row.created_by,
        assigned_to=row.assigned_to,
        repository_id=row.repository_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        tombstoned=bool(row.tombstoned),
    )
