import json

import pytest

from fieldmap.errors import DomainValidationError
from fieldmap.services.manual_stops import ManualStopService, generate_manual_id


def _data(**overrides) -> dict:
    data = {"latitude": 44.96544, "longitude": 9.58337, "name": "Cancello verde", "zone": 9, "plan": "b"}
    data.update(overrides)
    return data


def test_generate_manual_id_format() -> None:
    prefix, millis, suffix = generate_manual_id().split("_")

    assert prefix == "manual"
    assert millis.isdigit()
    assert len(suffix) == 9
    assert suffix.isalnum() and suffix == suffix.lower()


def test_add_builds_a_manual_stop() -> None:
    service = ManualStopService()
    seen = []
    service.events.subscribe("manual_stop_added", seen.append)

    stop = service.add(_data(description="  lato strada "))

    assert stop.is_manual
    assert stop.zone_id == 9
    assert stop.plan == "B"
    assert stop.description == "lato strada"
    assert str(stop.id).startswith("manual_")
    assert stop.created_at is not None
    assert seen[0]["total_count"] == 1
    assert service.get(stop.id) is stop
    assert service.is_manual(stop.id)
    assert len(service) == 1


def test_add_accepts_zone_id_and_subzone_keys() -> None:
    stop = ManualStopService().add(
        {"latitude": "44.9", "longitude": "9.5", "name": "Pozzo", "zone_id": "9", "subzone": "A"}
    )

    assert (stop.zone_id, stop.plan, stop.latitude) == (9, "A", 44.9)


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"latitude": None}, "latitude"),
        ({"name": "   "}, "name"),
        ({"zone": None}, "zone_id"),
        ({"plan": None}, "plan"),
        ({"latitude": "north"}, "latitude"),
        ({"latitude": 95.0}, "latitude"),
        ({"zone": "nine"}, "zone_id"),
        ({"zone": 0}, "zone_id"),
        ({"plan": "C"}, "plan"),
    ],
)
def test_add_rejects_invalid_data(overrides: dict, field: str) -> None:
    service = ManualStopService()

    with pytest.raises(DomainValidationError) as excinfo:
        service.add(_data(**overrides))

    assert excinfo.value.field == field
    assert len(service) == 0


def test_update_remove_list_and_search() -> None:
    service = ManualStopService()
    first = service.add(_data())
    second = service.add(_data(name="Fontana", zone=4, plan="A", description="piazza"))

    updated = service.update(first.id, {"name": "Cancello rosso", "id": "hijack", "is_manual": False})
    assert updated.id == first.id
    assert updated.is_manual
    assert updated.name == "Cancello rosso"
    with pytest.raises(DomainValidationError):
        service.update(first.id, {"latitude": 123.0})
    assert service.update("manual_missing", {"name": "x"}) is None

    assert [stop.id for stop in service.list(9, "b")] == [first.id]
    assert [stop.id for stop in service.list(zone=4)] == [second.id]
    assert [stop.id for stop in service.search("PIAZZA")] == [second.id]
    assert len(service.search("")) == 2

    assert service.remove(second.id)
    assert not service.remove(second.id)
    assert len(service) == 1


def test_stats_group_by_zone() -> None:
    service = ManualStopService()
    service.add(_data())
    service.add(_data())
    last = service.add(_data(zone=4, plan="A"))

    stats = service.stats()

    assert stats["total_count"] == 3
    assert stats["by_zone"] == {"9_B": 2, "4_A": 1}
    assert stats["added_today"] == 3
    assert stats["last_added"] == last.created_at


def test_export_then_import_keeps_only_valid_entries() -> None:
    source = ManualStopService()
    source.add(_data())
    exported = json.loads(source.export_json())
    assert exported["count"] == 1

    exported["manual_stops"].append({"id": "not-manual", "zone_id": 9, "plan": "B", "name": "x", "latitude": 1, "longitude": 1})
    exported["manual_stops"].append({"name": "missing keys"})

    target = ManualStopService()
    result = target.import_json(json.dumps(exported))

    assert result == {"success": True, "imported_count": 3, "valid_count": 1, "errors": 2}
    assert len(target) == 1


def test_import_rejects_malformed_payloads() -> None:
    service = ManualStopService()

    assert service.import_json("not json")["success"] is False
    assert service.import_json('{"stops": []}') == {"success": False, "error": "manual_stops list is missing"}


def test_clear_and_reset() -> None:
    service = ManualStopService()
    service.add(_data())
    service.add(_data())
    seen = []
    service.events.subscribe("manual_stops_cleared", seen.append)

    assert service.clear() == 2
    assert seen == [{"cleared_count": 2}]
    service.reset()
    assert service.events.listener_count("manual_stops_cleared") == 0
