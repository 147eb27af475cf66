import sqlite3
from dataclasses import replace

import pytest

from nrc.db import ConflictError, NotFoundError, ResourceStore, StoreError
from nrc.models import ResourceIdentity, ResourceStatus

FOO = ResourceIdentity("default", "foo")


def test_get_missing_raises_not_found(store):
    with pytest.raises(NotFoundError) as exc:
        store.get(FOO)
    assert exc.value.identity == FOO


def test_apply_creates_then_bumps_generation_only_on_change(store):
    r1 = store.apply("default", "foo", {"a": 1})
    assert (r1.generation, r1.resource_version) == (1, 1)
    assert r1.status == ResourceStatus()

    same = store.apply("default", "foo", {"a": 1})
    assert (same.generation, same.resource_version) == (1, 1)

    r2 = store.apply("default", "foo", {"a": 2})
    assert (r2.generation, r2.resource_version) == (2, 2)
    assert store.get(FOO).spec == {"a": 2}


def test_update_status_persists_and_bumps_version(store):
    r = store.apply("default", "foo", {"a": 1})
    updated = store.update_status(replace(r, status=ResourceStatus(ready=True, observed_generation=1)))

    assert updated.status.ready is True
    assert updated.resource_version == 2
    assert updated.generation == 1
    assert updated.spec == {"a": 1}


def test_identical_status_write_is_noop(store):
    r = store.apply("default", "foo", {})
    r = store.update_status(replace(r, status=ResourceStatus(ready=True, observed_generation=1)))
    again = store.update_status(replace(r, status=ResourceStatus(ready=True, observed_generation=1)))
    assert again.resource_version == r.resource_version


def test_stale_status_write_conflicts(store):
    stale = store.apply("default", "foo", {"a": 1})
    store.apply("default", "foo", {"a": 2})

    with pytest.raises(ConflictError) as exc:
        store.update_status(replace(stale, status=ResourceStatus(ready=True)))

    assert exc.value.expected == 1
    assert exc.value.actual == 2
    assert store.get(FOO).status.ready is False


def test_status_write_on_deleted_resource_is_not_found(store):
    r = store.apply("default", "foo", {})
    store.delete(FOO)
    with pytest.raises(NotFoundError):
        store.update_status(replace(r, status=ResourceStatus(ready=True)))


def test_delete_missing_raises_not_found(store):
    with pytest.raises(NotFoundError):
        store.delete(FOO)


def test_list_and_versions_are_scoped_to_kind(store):
    other = ResourceStore(store.db_path, kind="OtherResource")
    store.apply("default", "foo", {})
    store.apply("team-a", "bar", {})
    other.apply("default", "foo", {})

    assert [r.name for r in store.list_resources()] == ["foo", "bar"]
    assert [r.name for r in store.list_resources("team-a")] == ["bar"]
    assert store.list_versions() == {FOO: 1, ResourceIdentity("team-a", "bar"): 1}
    assert [r.kind for r in other.list_resources()] == ["OtherResource"]


def test_events_are_newest_first(store):
    store.log_event("info", "first")
    store.log_event("WARN", "second", namespace="default", name="foo")

    events = store.latest_events(limit=10)
    assert [e["message"] for e in events] == ["second", "first"]
    assert events[0]["level"] == "WARN"
    assert events[1]["level"] == "INFO"
    assert (events[0]["namespace"], events[0]["name"]) == ("default", "foo")


def test_sqlite_errors_are_wrapped(tmp_path):
    s = ResourceStore(str(tmp_path / "empty.db"))
    # No init_db(): the tables are missing.
    with pytest.raises(StoreError) as exc:
        s.get(FOO)
    assert isinstance(exc.value.__cause__, sqlite3.OperationalError)


def test_directory_path_holds_db_file(tmp_path):
    d = tmp_path / "data"
    d.mkdir()
    s = ResourceStore(str(d))
    s.init_db()
    assert s.db_path == str(d / "nrc.db")
