from datetime import date, timedelta

import pytest

from services import PropertyService


def _legacy_property() -> dict:
    return {
        "id": "p1",
        "name": "Elm Street",
        "monthlyRent": 1500,
        "tenant": {"name": "Old Tenant", "email": "old@example.com"},
    }


def test_create_assigns_tenant_ids_and_mirrors_first(sink, notes):
    properties = PropertyService(sink, notes)

    prop = properties.create({"name": "Elm Street", "tenants": [{"name": "Ann"}]})

    assert prop.tenants[0].id
    assert prop.tenant == prop.tenants[0]
    assert sink.last[0]["tenant"]["name"] == "Ann"
    assert notes.messages == [("Property added", "success")]


def test_property_update_accepts_partial_function(sink, notes):
    properties = PropertyService(sink, notes)
    prop = properties.create({"name": "Elm Street", "monthlyRent": "1000"})

    updated = properties.update(prop.id, lambda p: {"monthly_rent": p.monthly_rent + 50})

    assert str(updated.monthly_rent) == "1050"
    assert updated.name == "Elm Street"


def test_add_tenant_to_empty_property(sink, notes):
    properties = PropertyService(sink, notes)
    properties.hydrate([{"id": "p1", "name": "Elm Street"}])

    tenant = properties.add_or_update_tenant("p1", {"name": "Ann", "phone": "555"})

    prop = properties.get("p1")
    assert [t.id for t in prop.tenants] == [tenant.id]
    assert prop.tenant.name == "Ann"
    assert len(sink.calls) == 1
    assert notes.messages == [("Tenant saved", "success")]


def test_update_tenant_in_place_by_id(sink, notes):
    properties = PropertyService(sink, notes)
    prop = properties.create(
        {"name": "Elm Street", "tenants": [{"name": "Ann"}, {"name": "Bob"}]}
    )
    bob = prop.tenants[1]

    saved = properties.add_or_update_tenant(
        prop.id, {"id": bob.id, "name": "Bob", "phone": "777"}
    )

    tenants = properties.get(prop.id).tenants
    assert saved.id == bob.id
    assert [t.name for t in tenants] == ["Ann", "Bob"]
    assert tenants[1].phone == "777"


def test_legacy_tenant_is_replaced_with_a_real_id(sink, notes):
    properties = PropertyService(sink, notes)
    properties.hydrate([_legacy_property()])
    assert properties.get("p1").tenant_list()[0].id == "legacy"

    saved = properties.add_or_update_tenant(
        "p1", {"id": "legacy", "name": "Old Tenant", "phone": "555"}
    )

    prop = properties.get("p1")
    assert len(prop.tenants) == 1
    assert saved.id != "legacy"
    assert prop.tenants[0].email == "old@example.com"
    assert prop.tenants[0].phone == "555"
    assert prop.tenant.id == saved.id


def test_adding_a_tenant_keeps_the_legacy_one(sink, notes):
    properties = PropertyService(sink, notes)
    properties.hydrate([_legacy_property()])

    properties.add_or_update_tenant("p1", {"name": "New Tenant"})

    tenants = properties.get("p1").tenants
    assert [t.name for t in tenants] == ["Old Tenant", "New Tenant"]
    assert all(t.id and t.id != "legacy" for t in tenants)


def test_tenant_change_on_missing_property(sink, notes):
    properties = PropertyService(sink, notes)

    assert properties.add_or_update_tenant("nope", {"name": "Ann"}) is None
    assert properties.remove_tenant("nope") is False
    assert sink.calls == []
    assert notes.messages == [
        ("Error: property not found", "error"),
        ("Error: property not found", "error"),
    ]


def test_unknown_tenant_id_is_reported(sink, notes):
    properties = PropertyService(sink, notes)
    properties.hydrate([{"id": "p1", "name": "Elm Street"}])

    assert properties.add_or_update_tenant("p1", {"id": "ghost", "name": "Ann"}) is None
    assert sink.calls == []
    assert notes.messages == [("Tenant not found", "error")]


def test_tenant_name_is_required(sink, notes):
    properties = PropertyService(sink, notes)
    properties.hydrate([{"id": "p1", "name": "Elm Street"}])

    with pytest.raises(ValueError):
        properties.add_or_update_tenant("p1", {"name": ""})
    assert sink.calls == []


def test_remove_one_tenant_then_all(sink, notes):
    properties = PropertyService(sink, notes)
    prop = properties.create(
        {"id": "p1", "name": "Elm Street", "tenants": [{"name": "Ann"}, {"name": "Bob"}]}
    )
    ann = prop.tenants[0]

    assert properties.remove_tenant("p1", ann.id) is True
    assert properties.get("p1").tenant.name == "Bob"
    assert properties.remove_tenant("p1", "ghost") is False

    assert properties.remove_tenant("p1") is True
    cleared = properties.get("p1")
    assert cleared.tenants == []
    assert cleared.tenant is None
    assert notes.messages[-1] == ("Tenant removed", "info")


def test_tenant_roster_and_vacancy(sink, notes):
    today = date(2026, 5, 1)
    properties = PropertyService(sink, notes)
    properties.hydrate(
        [
            {
                "id": "p1",
                "name": "Elm Street",
                "tenants": [
                    {"id": "t1", "name": "zoe", "leaseEnd": (today + timedelta(days=10)).isoformat()},
                    {"id": "t2", "name": "Adam", "leaseEnd": "2026-04-01"},
                ],
            },
            _legacy_property() | {"id": "p2"},
            {"id": "p3", "name": "Vacant Lot"},
        ]
    )

    roster = properties.tenant_roster(today)

    assert [entry.tenant.name for entry in roster] == ["Adam", "Old Tenant", "zoe"]
    assert roster[0].lease.label == "Expired"
    assert roster[1].lease is None
    assert roster[2].lease.label == "10d left"
    assert roster[2].lease.urgency == "medium"
    assert properties.vacant_count() == 1


def test_saving_legacy_id_without_legacy_tenant_is_reported(sink, notes):
    properties = PropertyService(sink, notes)
    properties.hydrate([_legacy_property()])
    properties.add_or_update_tenant("p1", {"name": "New Tenant"})
    writes = len(sink.calls)

    assert properties.add_or_update_tenant("p1", {"id": "legacy", "name": "Ann"}) is None
    assert len(sink.calls) == writes
    assert notes.messages[-1] == ("Tenant not found", "error")
    assert [t.name for t in properties.get("p1").tenants] == ["Old Tenant", "New Tenant"]


def test_saving_legacy_id_on_property_without_tenants(sink, notes):
    properties = PropertyService(sink, notes)
    properties.create({"id": "p1", "name": "Elm Street"})

    assert properties.add_or_update_tenant("p1", {"id": "legacy", "name": "Ann"}) is None
    assert len(sink.calls) == 1
    assert properties.get("p1").tenants == []
