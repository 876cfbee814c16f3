"""
api/people.py -- Resolve user ids embedded in responses into UserSummary.

Accounts live in the auth database, repositories and issues in the hub
database, so user references cannot be joined in SQL. Route handlers collect
every id a response will carry and resolve them here with one query per
response.
"""

from collections.abc import Iterable

from fastapi import Request

from api.models import People, UserSummary
from auth.store import UserStore
from hub.models import Issue, Repository


def resolve_people(request: Request, user_ids: Iterable[str]) -> People:
    user_store: UserStore = request.app.state.user_store
    wanted = {uid for uid in user_ids if uid}
    found = user_store.get_many(wanted)
    return {
        uid: UserSummary.from_domain(found[uid]) if uid in found else UserSummary(id=uid)
        for uid in wanted
    }


def repository_people(request: Request, repos: Iterable[Repository]) -> People:
    ids: set[str] = set()
    for repo in repos:
        ids.add(repo.owner)
        ids.update(repo.collaborators)
    return resolve_people(request, ids)


def issue_people(request: Request, issues: Iterable[Issue]) -> People:
    ids: set[str] = set()
    for issue in issues:
        ids.add(issue.created_by)
        if issue.assigned_to:
            ids.add(issue.assigned_to)
    return resolve_people(request, ids)
