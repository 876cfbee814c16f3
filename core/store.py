"""
core/store.py -- Generic soft-delete persistence over one SQLAlchemy Core table.

Pattern: Repository + Data Mapper, generalized. One SoftDeleteStore is
instantiated per resource type and handed the table plus two mappers:

  encode(fields) -> column values   (dataclass fields or a patch -> row dict)
  decode(row)    -> record          (row -> domain dataclass)

Stores are composed by reference (UserStore, HubStore hold instances) rather
than subclassed per resource.

Tombstones:
  Every table managed here carries id / created_at / updated_at / tombstoned
  (see soft_delete_columns()). All read paths -- find_by_id, find_one,
  find_many, count -- AND the caller's filter with tombstoned = 0, so a
  tombstoned record and a missing record are indistinguishable to callers.
  hard_delete() is the only method that ignores the tombstone.

Relations:
  `relations` maps an expansion name to a loader(conn, ids) -> {id: value}.
  When a read asks for expand=("name",), the loaded value replaces the
  dataclass field of the same name. Used for repository collaborators, which
  live in an association table rather than a column.

Failure mode:
  Driver-level OperationalError / InterfaceError (database unreachable,
  locked, missing file) is re-raised as core.errors.PersistenceUnavailable.
  No retries happen here -- retry policy belongs to the driver.

Security: all queries use bound parameters. No f-strings in SQL.

Layer rule: core/ is the kernel. No imports from api/, auth/ or hub/.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Generic, TypeVar, Union

from sqlalchemy import Column, Integer, String, Table, and_, create_engine, event, func, select
from sqlalchemy.engine import Connection, Engine, Row
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.sql.elements import ColumnElement

from core.errors import PersistenceUnavailable

logger = logging.getLogger("repohub.store")

T = TypeVar("T")

Filter = Union[Mapping[str, Any], ColumnElement, None]
RelationLoader = Callable[[Connection, Sequence[str]], Mapping[str, Any]]

ID_LENGTH = 24


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def new_id() -> str:
    """Return a 24-hex-character identifier (12 random bytes)."""
    return secrets.token_hex(ID_LENGTH // 2)


def soft_delete_columns() -> list[Column]:
    """Columns every SoftDeleteStore table must carry.

    Returns fresh Column objects on each call; a Column can belong to only
    one Table.
    """
    return [
        Column("id", String(ID_LENGTH), primary_key=True),
        Column("created_at", String(32), nullable=False),
        Column("updated_at", String(32), nullable=False),
        Column("tombstoned", Integer, nullable=False, server_default="0"),
    ]


@dataclass(frozen=True)
class Page:
    """Offset/limit window. limit == -1 means unbounded."""

    offset: int = 0
    limit: int = -1


@dataclass
class Paginated(Generic[T]):
    items: list[T] = field(default_factory=list)
    total: int = 0


# ---------------------------------------------------------------------------
# Engine / connection
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign keys on every new SQLite connection.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def create_store_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # Route handlers run in FastAPI's threadpool; the same pooled
        # connection may be used from several threads.
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


@contextmanager
def connection(engine: Engine) -> Iterator[Connection]:
    """Yield a connection, translating driver outages into PersistenceUnavailable."""
    try:
        with engine.connect() as conn:
            yield conn
    except (OperationalError, InterfaceError) as exc:
        logger.error("Persistence backend unavailable: %s", exc.orig if exc.orig is not None else exc)
        raise PersistenceUnavailable() from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SoftDeleteStore(Generic[T]):
    """Tombstone-aware CRUD for one table.

    Usage:
        repos = SoftDeleteStore(engine, _repositories, decode=_row_to_repository,
                                encode=_repository_values)
        repo = repos.create(Repository(name="demo", owner=user_id))
        repos.update(repo.id, {"description": "x"})
        repos.soft_delete(repo.id)
        assert repos.find_by_id(repo.id) is None
    """

    def __init__(
        self,
        engine: Engine,
        table: Table,
        *,
        decode: Callable[[Row], T],
        encode: Callable[[Mapping[str, Any]], dict],
        order_by: str = "created_at",
        relations: Mapping[str, RelationLoader] | None = None,
    ) -> None:
        self.engine = engine
        self.table = table
        self._decode = decode
        self._encode = encode
        self._order_by = order_by
        self._relations = dict(relations or {})

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_id(self, record_id: str, expand: Sequence[str] = ()) -> T | None:
        """Return the live record with this id, or None if absent or tombstoned."""
        return self.find_one({"id": record_id}, expand=expand)

    def find_one(self, filter: Filter, expand: Sequence[str] = ()) -> T | None:
        with connection(self.engine) as conn:
            row = conn.execute(select(self.table).where(self._where(filter)).limit(1)).fetchone()
            if row is None:
                return None
            return self._expand(conn, [self._decode(row)], expand)[0]

    def find_many(
        self,
        filter: Filter = None,
        page: Page | None = None,
        expand: Sequence[str] = (),
        order_by: str | None = None,
        descending: bool = False,
    ) -> Paginated[T]:
        """Return one page of live records plus the unpaginated match count.

        Ordering defaults to ascending created_at; id breaks ties so paging
        is stable.
        """
        where = self._where(filter)
        column = self.table.c[order_by or self._order_by]
        stmt = (
            select(self.table)
            .where(where)
            .order_by(column.desc() if descending else column.asc(), self.table.c.id.asc())
        )
        if page is not None:
            if page.offset:
                stmt = stmt.offset(page.offset)
            if page.limit != -1:
                stmt = stmt.limit(page.limit)
        with connection(self.engine) as conn:
            rows = conn.execute(stmt).fetchall()
            total = conn.execute(select(func.count()).select_from(self.table).where(where)).scalar() or 0
            items = self._expand(conn, [self._decode(r) for r in rows], expand)
        return Paginated(items=items, total=total)

    def count(self, filter: Filter = None) -> int:
        with connection(self.engine) as conn:
            result = conn.execute(select(func.count()).select_from(self.table).where(self._where(filter))).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, record: T) -> T:
        """Insert a record, filling id / created_at / updated_at when absent.

        tombstoned is always written as 0 regardless of the incoming record.
        Returns the row as stored, so whatever encode() normalized (case,
        enums, JSON columns) matches what find_by_id() would return.
        """
        now = now_iso()
        record = replace(
            record,
            id=record.id or new_id(),
            created_at=record.created_at or now,
            updated_at=record.updated_at or record.created_at or now,
            tombstoned=False,
        )
        values = self._encode(asdict(record))
        values["tombstoned"] = 0
        with connection(self.engine) as conn:
            conn.execute(self.table.insert().values(**values))
            row = conn.execute(select(self.table).where(self.table.c.id == record.id)).fetchone()
            conn.commit()
        return self._decode(row)

    def update(self, record_id: str, patch: Mapping[str, Any], expand: Sequence[str] = ()) -> T | None:
        """Apply patch to a live record and return the refreshed record.

        updated_at is refreshed on every call, even for an empty patch.
        Returns None when no live record matches.
        """
        values = self._encode(patch)
        values["updated_at"] = now_iso()
        where = self._where({"id": record_id})
        with connection(self.engine) as conn:
            result = conn.execute(self.table.update().where(where).values(**values))
            if result.rowcount == 0:
                conn.commit()
                return None
            row = conn.execute(select(self.table).where(self.table.c.id == record_id)).fetchone()
            conn.commit()
            return self._expand(conn, [self._decode(row)], expand)[0]

    def touch(self, record_id: str, conn: Connection | None = None) -> bool:
        """Advance updated_at on a live record without changing anything else.

        Accepts an open connection so callers can touch inside their own
        transaction (e.g. after a collaborator-set insert).
        """
        stmt = self.table.update().where(self._where({"id": record_id})).values(updated_at=now_iso())
        if conn is not None:
            return conn.execute(stmt).rowcount > 0
        with connection(self.engine) as own:
            result = own.execute(stmt)
            own.commit()
        return result.rowcount > 0

    def soft_delete(self, record_id: str) -> bool:
        """Tombstone a live record. Returns True if one was found and updated."""
        with connection(self.engine) as conn:
            result = conn.execute(
                self.table.update().where(self._where({"id": record_id})).values(tombstoned=1, updated_at=now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def hard_delete(self, record_id: str) -> bool:
        """Physically remove a record, tombstoned or not."""
        with connection(self.engine) as conn:
            result = conn.execute(self.table.delete().where(self.table.c.id == record_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _where(self, filter: Filter) -> ColumnElement:
        clauses = [self.table.c.tombstoned == 0]
        if isinstance(filter, Mapping):
            for key, value in filter.items():
                column = self.table.c[key]
                if isinstance(value, (list, tuple, set, frozenset)):
                    clauses.append(column.in_(list(value)))
                else:
                    clauses.append(column == value)
        elif filter is not None:
            clauses.append(filter)
        return and_(*clauses)

    def _expand(self, conn: Connection, records: list[T], expand: Sequence[str]) -> list[T]:
        if not records:
            return records
        for name in expand:
            loader = self._relations.get(name)
            if loader is None:
                raise ValueError(f"Unknown relation {name!r} for table {self.table.name}")
            values = loader(conn, [r.id for r in records])
            records = [replace(r, **{name: values[r.id]}) if r.id in values else r for r in records]
        return records
