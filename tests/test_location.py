from datetime import timedelta

import pytest

from delivery_service.exceptions import NotFound
from delivery_service.services.location_tracker import LocationTracker
from delivery_service.timeutils import utcnow


def test_position_absent_until_reported(db, make_courier):
    courier = make_courier()
    assert LocationTracker(db).get_position(courier.id) is None


def test_newer_report_wins(db, make_courier):
    courier = make_courier()
    tracker = LocationTracker(db)
    first = utcnow()
    assert tracker.report(courier.id, -23.55, -46.63, first)
    assert tracker.report(courier.id, -23.56, -46.64, first + timedelta(seconds=10))

    position = tracker.get_position(courier.id)
    assert (position.latitude, position.longitude) == (-23.56, -46.64)
    assert position.reported_at == first + timedelta(seconds=10)


def test_delayed_report_does_not_regress(db, make_courier):
    courier = make_courier()
    tracker = LocationTracker(db)
    now = utcnow()
    tracker.report(courier.id, 1.0, 1.0, now)
    assert tracker.report(courier.id, 2.0, 2.0, now - timedelta(seconds=30)) is False

    position = tracker.get_position(courier.id)
    assert (position.latitude, position.longitude) == (1.0, 1.0)


def test_unknown_courier(db):
    with pytest.raises(NotFound):
        LocationTracker(db).report("missing", 0.0, 0.0, utcnow())
    with pytest.raises(NotFound):
        LocationTracker(db).get_position("missing")
