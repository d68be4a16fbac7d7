import asyncio

import pytest

from conftest import make_stop
from fieldmap.models.domain import Location
from fieldmap.services.navigation import NavigationTracker

HERE = Location(latitude=44.96544, longitude=9.58337, accuracy=5.0)
STOP = make_stop(1, 44.96552, 9.58331)


def test_select_without_event_loop_publishes_but_does_not_track() -> None:
    tracker = NavigationTracker()
    seen = []
    tracker.events.subscribe("stop_selected", seen.append)

    tracker.select_stop(STOP, HERE)

    assert seen[0]["stop"] is STOP
    assert seen[0]["banner_visible"] is True
    assert seen[0]["navigation_info"].can_navigate
    assert seen[0]["navigation_info"].direction == "NW"
    assert not tracker.is_tracking


def test_select_without_location_reports_missing_fix() -> None:
    tracker = NavigationTracker()
    seen = []
    tracker.events.subscribe("stop_selected", seen.append)

    tracker.select_stop(STOP)

    assert not seen[0]["navigation_info"].can_navigate
    assert seen[0]["navigation_info"].distance_text == "GPS position not available"


def test_location_updates_only_publish_while_a_stop_is_selected() -> None:
    tracker = NavigationTracker()
    updates = []
    tracker.events.subscribe("navigation_updated", updates.append)

    tracker.update_user_location(HERE)
    assert updates == []

    tracker.select_stop(STOP)
    tracker.update_user_location(HERE)
    assert len(updates) == 1
    assert updates[0]["location"] is HERE
    assert updates[0]["navigation_info"].distance == 10


@pytest.mark.asyncio
async def test_refresh_runs_until_deselected() -> None:
    tracker = NavigationTracker(refresh_seconds=0.01)
    updates = []
    deselected = []
    tracker.events.subscribe("navigation_updated", updates.append)
    tracker.events.subscribe("stop_deselected", deselected.append)

    tracker.select_stop(STOP, HERE)
    assert tracker.is_tracking
    await asyncio.sleep(0.06)
    assert len(updates) >= 2

    tracker.deselect_stop()
    assert not tracker.is_tracking
    count = len(updates)
    await asyncio.sleep(0.03)
    assert len(updates) == count
    assert deselected == [{"banner_visible": False}]
    assert tracker.current_state() == {
        "selected_stop": None,
        "banner_visible": False,
        "last_location": None,
        "is_updating": False,
    }


@pytest.mark.asyncio
async def test_location_update_starts_tracking_for_selected_stop() -> None:
    tracker = NavigationTracker(refresh_seconds=0.01)
    tracker.select_stop(STOP)
    assert not tracker.is_tracking

    tracker.update_user_location(HERE)

    assert tracker.is_tracking
    tracker.reset()
    await asyncio.sleep(0)
    assert not tracker.is_tracking


def test_find_nearest_stop() -> None:
    tracker = NavigationTracker()
    far = make_stop(2, 44.99, 9.60)

    nearest = tracker.find_nearest_stop([far, STOP], HERE)

    assert nearest["stop"] is STOP
    assert nearest["is_nearest"] is True
    assert nearest["navigation_info"].distance == 10
    assert tracker.find_nearest_stop([STOP], None) is None
    assert tracker.find_nearest_stop([], HERE) is None
