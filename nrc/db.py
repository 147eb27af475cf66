from __future__ import annotations

import json
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Iterator

from .models import ManagedResource, ResourceIdentity, ResourceStatus


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class StoreError(Exception):
    """Any failure talking to the resource store."""


class NotFoundError(StoreError):
    def __init__(self, identity: ResourceIdentity):
        super().__init__(f"Resource '{identity}' not found.")
        self.identity = identity


class ConflictError(StoreError):
    def __init__(self, identity: ResourceIdentity, expected: int, actual: int):
        super().__init__(
            f"Resource '{identity}' was modified: resource_version {expected} is stale (current {actual})."
        )
        self.identity = identity
        self.expected = expected
        self.actual = actual


def _resolve_db_path(db_path: str) -> str:
    """Return a file path usable by sqlite.

    A bind-mounted path that did not exist on the host shows up as a
    directory; in that case the DB file is placed inside it.
    """

    p = os.path.abspath(db_path)

    if os.path.isdir(p):
        p = os.path.join(p, "nrc.db")

    parent = os.path.dirname(p)
    if parent and not os.path.exists(parent):
        os.makedirs(parent, exist_ok=True)

    return p


def _dump(data: dict[str, Any]) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


class ResourceStore:
    """SQLite-backed store for resources of a single kind.

    Every write bumps ``resource_version``; status writes are rejected with
    :class:`ConflictError` when the caller's copy is stale.
    """

    def __init__(self, db_path: str, kind: str = "NewResource", timeout_s: float = 5.0):
        self.db_path = _resolve_db_path(db_path)
        self.kind = kind
        self.timeout_s = timeout_s

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout_s, check_same_thread=False)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open store: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise StoreError(f"{type(e).__name__}: {e}") from e
        finally:
            conn.close()

    def init_db(self) -> None:
        """Create tables if they do not exist."""
        with self._session() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS resources (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  kind TEXT NOT NULL,
                  namespace TEXT NOT NULL,
                  name TEXT NOT NULL,
                  spec TEXT NOT NULL,   -- json, user-owned
                  status TEXT NOT NULL, -- json, controller-owned
                  generation INTEGER NOT NULL,
                  resource_version INTEGER NOT NULL,
                  created_at TEXT NOT NULL,
                  updated_at TEXT NOT NULL,
                  UNIQUE(kind, namespace, name)
                );

                CREATE TABLE IF NOT EXISTS events (
                  id INTEGER PRIMARY KEY AUTOINCREMENT,
                  ts TEXT NOT NULL,
                  level TEXT NOT NULL,
                  namespace TEXT,
                  name TEXT,
                  message TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);
                CREATE INDEX IF NOT EXISTS idx_resources_namespace ON resources(kind, namespace);
                """
            )

    def log_event(self, level: str, message: str, namespace: str | None = None, name: str | None = None) -> None:
        with self._session() as conn:
            conn.execute(
                "INSERT INTO events (ts, level, namespace, name, message) VALUES (?, ?, ?, ?, ?)",
                (utc_now(), level.upper(), namespace, name, message),
            )

    def latest_events(self, limit: int = 100) -> list[dict[str, Any]]:
        with self._session() as conn:
            rows = conn.execute("SELECT * FROM events ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
            return [dict(r) for r in rows]

    def _row_to_resource(self, row: sqlite3.Row) -> ManagedResource:
        return ManagedResource(
            namespace=row["namespace"],
            name=row["name"],
            kind=row["kind"],
            spec=json.loads(row["spec"]),
            status=ResourceStatus.from_dict(json.loads(row["status"])),
            generation=row["generation"],
            resource_version=row["resource_version"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _fetch_row(self, conn: sqlite3.Connection, identity: ResourceIdentity) -> sqlite3.Row | None:
        return conn.execute(
            "SELECT * FROM resources WHERE kind=? AND namespace=? AND name=?",
            (self.kind, identity.namespace, identity.name),
        ).fetchone()

    def get(self, identity: ResourceIdentity) -> ManagedResource:
        with self._session() as conn:
            row = self._fetch_row(conn, identity)
        if row is None:
            raise NotFoundError(identity)
        return self._row_to_resource(row)

    def list_resources(self, namespace: str | None = None) -> list[ManagedResource]:
        with self._session() as conn:
            if namespace:
                rows = conn.execute(
                    "SELECT * FROM resources WHERE kind=? AND namespace=? ORDER BY name",
                    (self.kind, namespace),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM resources WHERE kind=? ORDER BY namespace, name",
                    (self.kind,),
                ).fetchall()
        return [self._row_to_resource(r) for r in rows]

    def list_versions(self) -> dict[ResourceIdentity, int]:
        """Cheap listing used by the watcher: identity -> resource_version."""
        with self._session() as conn:
            rows = conn.execute(
                "SELECT namespace, name, resource_version FROM resources WHERE kind=?",
                (self.kind,),
            ).fetchall()
        return {ResourceIdentity(r["namespace"], r["name"]): r["resource_version"] for r in rows}

    def apply(self, namespace: str, name: str, spec: dict[str, Any]) -> ManagedResource:
        """Create the resource or replace its spec.

        ``generation`` and ``resource_version`` only move when the spec changes.
        """
        identity = ResourceIdentity(namespace, name)
        new_spec = _dump(spec)
        with self._session() as conn:
            row = self._fetch_row(conn, identity)
            now = utc_now()
            if row is None:
                conn.execute(
                    """
                    INSERT INTO resources (kind, namespace, name, spec, status, generation, resource_version, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, 1, 1, ?, ?)
                    """,
                    (self.kind, namespace, name, new_spec, _dump(asdict(ResourceStatus())), now, now),
                )
            elif row["spec"] != new_spec:
                conn.execute(
                    """
                    UPDATE resources
                    SET spec=?, generation=generation+1, resource_version=resource_version+1, updated_at=?
                    WHERE id=?
                    """,
                    (new_spec, now, row["id"]),
                )
            row = self._fetch_row(conn, identity)
        return self._row_to_resource(row)

    def update_status(self, resource: ManagedResource) -> ManagedResource:
        """Persist ``resource.status``; never touches spec.

        Raises ConflictError if the stored copy moved past
        ``resource.resource_version``. Writing an identical status is a no-op.
        """
        identity = resource.identity
        new_status = _dump(asdict(resource.status))
        with self._session() as conn:
            row = self._fetch_row(conn, identity)
            if row is None:
                raise NotFoundError(identity)
            if row["resource_version"] != resource.resource_version:
                raise ConflictError(identity, resource.resource_version, row["resource_version"])
            if row["status"] != new_status:
                cur = conn.execute(
                    """
                    UPDATE resources
                    SET status=?, resource_version=resource_version+1, updated_at=?
                    WHERE id=? AND resource_version=?
                    """,
                    (new_status, utc_now(), row["id"], resource.resource_version),
                )
                if cur.rowcount == 0:
                    current = self._fetch_row(conn, identity)
                    if current is None:
                        raise NotFoundError(identity)
                    raise ConflictError(identity, resource.resource_version, current["resource_version"])
                row = self._fetch_row(conn, identity)
        return self._row_to_resource(row)

    def delete(self, identity: ResourceIdentity) -> None:
        with self._session() as conn:
            cur = conn.execute(
                "DELETE FROM resources WHERE kind=? AND namespace=? AND name=?",
                (self.kind, identity.namespace, identity.name),
            )
            if cur.rowcount == 0:
                raise NotFoundError(identity)
