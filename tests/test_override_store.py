from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from taskcycle.domain.enums import TaskStatus
from taskcycle.domain.errors import InvalidOverrideError, OverridePersistenceError
from taskcycle.services.override_store import InstanceOverrideStore

DAY = date(2024, 1, 15)


class FakeDocuments:
    def __init__(self) -> None:
        self.docs: dict[str, dict] = {}
        self.fail = False
        self.writes = 0

    def get(self, key: str) -> dict | None:
        doc = self.docs.get(key)
        return dict(doc, id=key) if doc else None

    def set(self, key: str, document: dict) -> None:
        if self.fail:
            raise ConnectionError("backend unavailable")
        self.writes += 1
        self.docs[key] = document

    def delete(self, key: str) -> None:
        if self.fail:
            raise ConnectionError("backend unavailable")
        self.docs.pop(key, None)

    def query_by_task(self, task_id: str) -> list[dict]:
        return [dict(doc, id=key) for key, doc in self.docs.items() if doc["taskId"] == task_id]

    def list_all(self) -> list[dict]:
        return [dict(doc, id=key) for key, doc in self.docs.items()]


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 10, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        return self.now


def make_store(docs: FakeDocuments | None = None) -> tuple[InstanceOverrideStore, FakeDocuments]:
    docs = docs or FakeDocuments()
    store = InstanceOverrideStore(docs, clock=Clock())
    store.load_all()
    return store, docs


def test_put_creates_record_in_document_shape() -> None:
    store, docs = make_store()

    override = store.put("tpl", DAY, {"status": "completed", "assigneeIds": ["u1"]})

    assert override.fields == {"status": TaskStatus.COMPLETED, "assignee_ids": ("u1",)}
    assert override.created_at == override.updated_at
    assert docs.docs["tpl_2024-01-15"] == {
        "taskId": "tpl",
        "date": "2024-01-15",
        "overrides": {"status": "completed", "assigneeIds": ["u1"]},
        "createdAt": override.created_at.isoformat(),
        "updatedAt": override.updated_at.isoformat(),
    }


def test_put_merges_fields_and_refreshes_updated_at() -> None:
    store, _ = make_store()

    first = store.put("tpl", DAY, {"status": "in_progress"})
    second = store.put("tpl", DAY, {"title": "Moved review"})

    assert second.fields == {"status": TaskStatus.IN_PROGRESS, "title": "Moved review"}
    assert second.created_at == first.created_at
    assert second.updated_at > first.updated_at


def test_put_strips_identity_keys() -> None:
    store, docs = make_store()

    store.put(
        "tpl",
        DAY,
        {
            "occurrenceDate": "1999-01-01",
            "templateId": "other",
            "id": "other_1999-01-01",
            "parentTaskId": "other",
            "priority": 8,
        },
    )

    assert store.get("tpl", DAY).fields == {"priority": 8}
    assert docs.docs["tpl_2024-01-15"]["overrides"] == {"priority": 8}


def test_put_rejects_unknown_fields_without_writing() -> None:
    store, docs = make_store()

    with pytest.raises(InvalidOverrideError, match="tags"):
        store.put("tpl", DAY, {"status": "completed", "tags": "x"})

    assert store.get("tpl", DAY) is None
    assert docs.writes == 0


@pytest.mark.parametrize(
    "fields",
    [
        {"status": "done"},
        {"priority": 11},
        {"priority": "high"},
        {"title": "  "},
        {"assignee_ids": "u1"},
    ],
)
def test_put_rejects_ill_typed_values(fields: dict) -> None:
    store, _ = make_store()

    with pytest.raises(InvalidOverrideError):
        store.put("tpl", DAY, fields)


def test_failed_write_still_updates_cache() -> None:
    store, docs = make_store()
    docs.fail = True

    with pytest.raises(OverridePersistenceError) as info:
        store.put("tpl", DAY, {"status": "completed"})

    assert info.value.override.fields == {"status": TaskStatus.COMPLETED}
    assert store.get("tpl", DAY).fields == {"status": TaskStatus.COMPLETED}
    assert store.pending() == ["tpl_2024-01-15"]
    assert docs.docs == {}


def test_retry_pending_resends_cached_record() -> None:
    store, docs = make_store()
    docs.fail = True
    with pytest.raises(OverridePersistenceError):
        store.put("tpl", DAY, {"status": "completed"})

    assert store.retry_pending() == ["tpl_2024-01-15"]

    docs.fail = False
    assert store.retry_pending() == []
    assert store.pending() == []
    assert docs.docs["tpl_2024-01-15"]["overrides"] == {"status": "completed"}


def test_load_all_hydrates_and_skips_malformed_records() -> None:
    docs = FakeDocuments()
    docs.docs["tpl_2024-01-15"] = {
        "taskId": "tpl",
        "date": "2024-01-15",
        "overrides": {"title": "From backend"},
        "createdAt": "2024-01-01T00:00:00+00:00",
        "updatedAt": "2024-01-02T00:00:00+00:00",
    }
    docs.docs["broken"] = {"taskId": "tpl", "overrides": {}}

    store, _ = make_store(docs)

    assert list(store.cache) == ["tpl_2024-01-15"]
    assert store.get("tpl", DAY).fields == {"title": "From backend"}


def test_load_all_keeps_unsent_local_writes() -> None:
    store, docs = make_store()
    docs.fail = True
    with pytest.raises(OverridePersistenceError):
        store.put("tpl", DAY, {"status": "cancelled"})

    store.load_all()

    assert store.get("tpl", DAY).fields == {"status": TaskStatus.CANCELLED}


def test_put_before_hydration_merges_with_backend_record() -> None:
    docs = FakeDocuments()
    docs.docs["tpl_2024-01-15"] = {
        "taskId": "tpl",
        "date": "2024-01-15",
        "overrides": {"title": "From backend"},
        "createdAt": "2024-01-01T00:00:00+00:00",
        "updatedAt": "2024-01-01T00:00:00+00:00",
    }
    store = InstanceOverrideStore(docs, clock=Clock())

    override = store.put("tpl", DAY, {"priority": 2})

    assert override.fields == {"title": "From backend", "priority": 2}
    assert override.created_at == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_get_all_for_template_is_ordered_by_date() -> None:
    store, _ = make_store()
    store.put("tpl", date(2024, 1, 29), {"priority": 1})
    store.put("tpl", date(2024, 1, 1), {"priority": 2})
    store.put("other", DAY, {"priority": 3})

    overrides = store.get_all_for_template("tpl")

    assert [o.occurrence_date for o in overrides] == [date(2024, 1, 1), date(2024, 1, 29)]


def test_delete_removes_cache_and_document() -> None:
    store, docs = make_store()
    store.put("tpl", DAY, {"priority": 1})

    assert store.delete("tpl", DAY) is True
    assert store.get("tpl", DAY) is None
    assert docs.docs == {}
    assert store.delete("tpl", DAY) is False


def test_stored_record_with_extra_keys_keeps_known_fields() -> None:
    docs = FakeDocuments()
    docs.docs["tpl_2024-01-15"] = {
        "taskId": "tpl",
        "date": "2024-01-15",
        "overrides": {"status": "completed", "notes": "legacy", "userId": "u9", "priority": "high"},
        "createdAt": "2024-01-01T00:00:00+00:00",
        "updatedAt": "2024-01-01T00:00:00+00:00",
    }
    store, _ = make_store(docs)

    assert store.get("tpl", DAY).fields == {"status": TaskStatus.COMPLETED}

    store.put("tpl", DAY, {"title": "X"})

    assert docs.docs["tpl_2024-01-15"]["overrides"] == {"status": "completed", "title": "X"}
    assert docs.docs["tpl_2024-01-15"]["createdAt"] == "2024-01-01T00:00:00+00:00"


@pytest.mark.parametrize("key", ["project_id", "projectId", "userId"])
def test_put_rejects_non_identity_id_keys(key: str) -> None:
    store, docs = make_store()

    with pytest.raises(InvalidOverrideError, match=key):
        store.put("tpl", DAY, {key: "p2"})

    assert store.get("tpl", DAY) is None
    assert docs.writes == 0


def test_put_with_only_identity_keys_writes_nothing() -> None:
    store, docs = make_store()

    assert store.put("tpl", DAY, {"id": "x", "templateId": "other"}) is None
    assert docs.writes == 0

    existing = store.put("tpl", DAY, {"priority": 3})
    assert store.put("tpl", DAY, {"dueDate": "1999-01-01"}) == existing
    assert docs.writes == 1
