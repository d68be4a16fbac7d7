import pytest

from conftest import make_stop
from fieldmap.errors import DomainValidationError, ZoneNotLoadedError
from fieldmap.models.domain import Coordinate, MarkerView, Route
from fieldmap.services.map_state import MapStateService, ZoneData


def _route(name: str = "Giro") -> Route:
    return Route(id=name.lower(), name=name, path=[Coordinate(44.9, 9.5), Coordinate(44.91, 9.51)])


def _record(service: MapStateService, *events: str) -> list[tuple[str, dict]]:
    seen: list[tuple[str, dict]] = []
    for event in events:
        service.events.subscribe(event, lambda data, event=event: seen.append((event, data)))
    return seen


def test_switch_loads_only_the_target_zone_stops() -> None:
    service = MapStateService()
    stops = [make_stop(1, 44.9, 9.5), make_stop(2, 44.9, 9.5, plan="A"), make_stop(3, 44.9, 9.5, zone=4)]

    service.switch_to_zone(9, "b", ZoneData(routes=[_route()], stops=stops))

    state = service.current_state()
    assert (state.zone, state.plan) == (9, "B")
    assert state.is_loaded and not state.is_loading
    assert [stop.id for stop in state.stops] == [1]
    assert len(state.routes) == 1
    assert service.is_zone_loaded(9, "B")
    assert not service.is_zone_loaded(9, "A")


def test_switching_zone_cleans_up_the_previous_one() -> None:
    service = MapStateService()
    service.switch_to_zone(9, "B", ZoneData(routes=[_route()], stops=[make_stop(1, 44.9, 9.5)]))
    seen = _record(service, "before_cleanup", "after_cleanup", "data_loaded")

    service.switch_to_zone(9, "A", ZoneData(routes=[_route("Altro")], stops=[make_stop(2, 44.9, 9.5, plan="A")]))

    assert [event for event, _ in seen] == ["before_cleanup", "after_cleanup", "data_loaded"]
    assert seen[0][1] == {"zone": 9, "plan": "B"}
    assert seen[1][1] == {"zone": 9, "plan": "B"}
    state = service.current_state()
    assert state.plan == "A"
    assert [stop.id for stop in state.stops] == [2]
    assert state.selected_stop is None
    assert state.markers == []


def test_first_switch_only_fires_after_cleanup() -> None:
    service = MapStateService()
    seen = _record(service, "before_cleanup", "after_cleanup")

    service.switch_to_zone(9, "B", ZoneData())

    assert seen == [("after_cleanup", {"zone": None, "plan": None})]


def test_same_zone_switch_updates_in_place() -> None:
    service = MapStateService()
    service.switch_to_zone(9, "B", ZoneData(stops=[make_stop(1, 44.9, 9.5)]))
    seen = _record(service, "before_cleanup", "data_updated")

    service.switch_to_zone(9, "B", ZoneData(stops=[make_stop(1, 44.9, 9.5), make_stop(5, 44.9, 9.5)]))

    assert [event for event, _ in seen] == ["data_updated"]
    assert len(service.current_state().stops) == 2


def test_data_updated_carries_the_filtered_view() -> None:
    service = MapStateService()
    service.switch_to_zone(9, "B", ZoneData(routes=[_route()]))
    seen = _record(service, "data_updated")
    stops = [make_stop(1, 44.9, 9.5), make_stop(2, 44.9, 9.5, plan="A"), make_stop(3, 44.9, 9.5, zone=4)]

    service.switch_to_zone(9, "B", ZoneData(routes=[_route(), _route("Ritorno")], stops=stops))

    payload = seen[0][1]
    assert [stop.id for stop in payload["stops"]] == [1]
    assert [route.name for route in payload["routes"]] == ["Giro", "Ritorno"]
    assert payload["stops"] == service.current_state().stops


def test_update_zone_data_requires_loaded_zone() -> None:
    service = MapStateService()

    with pytest.raises(ZoneNotLoadedError):
        service.update_zone_data(9, "B", ZoneData())


def test_invalid_plan_is_rejected_without_state_change() -> None:
    service = MapStateService()

    with pytest.raises(DomainValidationError):
        service.switch_to_zone(9, "C", ZoneData())
    assert service.current_state().zone is None


def test_failed_load_leaves_zone_neither_loading_nor_loaded() -> None:
    service = MapStateService()
    service.switch_to_zone(9, "B", ZoneData())
    assert service.current_state().is_loaded

    with pytest.raises(AttributeError):
        service.switch_to_zone(9, "A", ZoneData(stops=[object()]))
    state = service.current_state()
    assert not state.is_loaded
    assert not state.is_loading


def test_state_changed_reports_old_and_new_state() -> None:
    service = MapStateService()
    seen = _record(service, "state_changed")

    service.update_markers([MarkerView(stop=make_stop(1, 44.9, 9.5), distance=5)])

    _, payload = seen[-1]
    assert payload["changes"] == ["markers"]
    assert payload["old_state"].markers == []
    assert len(payload["new_state"].markers) == 1


def test_current_state_is_a_copy() -> None:
    service = MapStateService()
    service.switch_to_zone(9, "B", ZoneData(stops=[make_stop(1, 44.9, 9.5)]))

    state = service.current_state()
    state.stops.clear()

    assert len(service.current_state().stops) == 1


def test_selection_and_manual_stops() -> None:
    service = MapStateService()
    service.switch_to_zone(9, "B", ZoneData(stops=[make_stop(1, 44.9, 9.5)]))
    seen = _record(service, "stop_selected", "stop_deselected", "manual_stop_added", "manual_stop_removed")

    stop = service.current_state().stops[0]
    service.select_stop(stop)
    assert service.selected_stop is stop
    service.deselect_stop()
    assert service.selected_stop is None

    added = service.add_manual_stop(make_stop(99, 44.95, 9.55, name="Cancello"))
    assert added.is_manual
    assert str(added.id).startswith("manual_")
    assert added.created_at is not None
    kept = service.add_manual_stop(make_stop("manual_123_abc", 44.95, 9.55))
    assert kept.id == "manual_123_abc"

    service.remove_manual_stop("manual_123_abc")
    service.remove_manual_stop(1)

    stats = service.stats()
    assert stats["stop_count"] == 2
    assert stats["manual_stop_count"] == 1
    assert [event for event, _ in seen] == [
        "stop_selected",
        "stop_deselected",
        "manual_stop_added",
        "manual_stop_added",
        "manual_stop_removed",
        "manual_stop_removed",
    ]


def test_reset_clears_state_and_listeners() -> None:
    service = MapStateService()
    service.switch_to_zone(9, "B", ZoneData())
    seen = _record(service, "state_changed")

    service.reset()

    assert service.current_state().zone is None
    assert service.events.listener_count("state_changed") == 0
    assert seen
