"""
tests/conftest.py -- Shared test fixtures for RepoHub.

This module provides:
  - memory_url(): a named shared-memory SQLite URL
  - hub_store / service: isolated HubStore + RepositoryService per test
  - api: module-scoped TestClient over the real app with a patched lifespan,
    plus three seeded accounts (owner, collaborator, viewer) and a second
    collaborator ("outsider") that belongs to no repository

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.

The DEBUG env var must be set before any auth/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: Set DEBUG before any auth/core import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import Role, User
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from hub.service import RepositoryService
from hub.store import HubStore

PASSWORD = "correct-horse-battery"


def memory_url(name: str) -> str:
    """Return a shared-memory SQLite URL unique to `name`."""
    return f"sqlite:///file:{name}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


# ---------------------------------------------------------------------------
# Store / service fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def hub_store() -> Generator[HubStore, None, None]:
    store = HubStore(memory_url("hub"))
    yield store
    store.close()


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore(memory_url("auth"))
    yield store
    store.close()


@pytest.fixture
def service(hub_store: HubStore) -> RepositoryService:
    return RepositoryService(hub_store)


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> Generator[None, None, None]:
    """Rate-limit counters are process-wide; start every test from zero."""
    limiter.reset()
    yield


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


@dataclass
class ApiHarness:
    client: TestClient
    user_store: UserStore
    hub_store: HubStore
    users: dict[str, User] = field(default_factory=dict)
    tokens: dict[str, str] = field(default_factory=dict)
    password: str = PASSWORD

    def headers(self, who: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.tokens[who]}"}

    def create_repo(self, who: str = "owner", name: str | None = None) -> dict:
        resp = self.client.post(
            "/api/v1/repos",
            json={"name": name or f"repo-{uuid.uuid4().hex[:8]}", "description": "test"},
            headers=self.headers(who),
        )
        assert resp.status_code == 200, resp.text
        return resp.json()["data"]

    def add_collaborator(self, repo_id: str, who: str, by: str = "owner") -> None:
        resp = self.client.post(
            f"/api/v1/repos/{repo_id}/collaborators",
            json={"user_id": self.users[who].id},
            headers=self.headers(by),
        )
        assert resp.status_code == 200, resp.text

    def create_issue(self, repo_id: str, who: str = "owner", **body) -> dict:
        body.setdefault("title", f"issue-{uuid.uuid4().hex[:8]}")
        resp = self.client.post(f"/api/v1/repos/{repo_id}/issues", json=body, headers=self.headers(who))
        assert resp.status_code == 200, resp.text
        return resp.json()["data"]


def _patch_lifespan(user_store: UserStore, hub_store: HubStore):
    """Return a lifespan that wires test stores into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.hub_store = hub_store
        app.state.service = RepositoryService(hub_store)
        yield

    return test_lifespan


_SEED = {
    "owner": Role.owner,
    "collaborator": Role.collaborator,
    "viewer": Role.viewer,
    "outsider": Role.collaborator,
}


@pytest.fixture(scope="module")
def api() -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness for HTTP integration tests.

    Tests in one module share the databases; each test creates its own
    repositories so they do not depend on each other.
    """
    user_store = UserStore(memory_url("api_auth"))
    hub_store = HubStore(memory_url("api_hub"))

    users: dict[str, User] = {}
    tokens: dict[str, str] = {}
    hashed = hash_password(PASSWORD)
    for name, role in _SEED.items():
        user = user_store.create_user(
            User(email=f"{name}@example.com", display_name=name.title(), role=role, hashed_password=hashed)
        )
        users[name] = user
        tokens[name] = create_access_token(user.id, user.role, email=user.email, expire_seconds=3600)

    app.router.lifespan_context = _patch_lifespan(user_store, hub_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield ApiHarness(client=client, user_store=user_store, hub_store=hub_store, users=users, tokens=tokens)

    hub_store.close()
    user_store.close()
