from sqlalchemy import create_engine

import models  # noqa: F401
from database import Base
from document_store import SHARED_LISTS, SHARED_TASKS, DocumentStore
from periods import local_today
from services import Workspace


def _store() -> DocumentStore:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return DocumentStore(engine)


def test_save_replaces_whole_collection():
    store = _store()

    assert store.load("expenses") == []
    store.save("expenses", [{"id": "e1"}, {"id": "e2"}])
    store.save("expenses", [{"id": "e2"}])

    assert store.load("expenses") == [{"id": "e2"}]


def test_shared_hub_save_leaves_unchanged_slots_alone():
    store = _store()
    store.save(SHARED_LISTS, [{"id": "l1"}])

    store.save_shared_hub(None, [{"id": "t1"}], None)

    assert store.load(SHARED_LISTS) == [{"id": "l1"}]
    assert store.load(SHARED_TASKS) == [{"id": "t1"}]


def test_workspace_round_trip(notes):
    store = _store()
    workspace = Workspace(store, notes, current_user="sam")
    workspace.properties.create({"id": "p1", "name": "Elm Street"})
    workspace.expenses.create(
        {
            "amount": "1200",
            "category": "mortgage",
            "propertyId": "p1",
            "isTemplate": True,
            "recurringFrequency": "monthly",
            "dueDay": 1,
        }
    )
    workspace.shared_hub.tasks.create({"title": "Fix gate"})
    workspace.recurring.catch_up(local_today())

    reloaded = Workspace(store, notes, current_user="sam")
    reloaded.hydrate()

    assert reloaded.properties.get("p1").name == "Elm Street"
    assert len(reloaded.expenses.templates()) == 1
    assert len(reloaded.expenses.list()) == len(workspace.expenses.list())
    assert [t.title for t in reloaded.shared_hub.tasks.list()] == ["Fix gate"]
