from datetime import datetime

import pytest
from fastapi import status
from sqlalchemy.exc import OperationalError

from workspace_booking.models.space import Building, Desk, Floor
from workspace_booking.services import no_show
from workspace_booking.services.no_show import NoShowSweeper, run_no_show_sweep

from tests.conf_tests import (
    OTHER_TENANT_ID,
    TestingSessionLocal,
    admin_headers,
    auth_headers,
    clear_db,
    client,
    create_booking,
    frozen_clock,
    headers_for,
    test_db,
    test_desk,
    test_floor,
    test_user,
)


@pytest.fixture
def sweeper(frozen_clock):  # pylint: disable=redefined-outer-name
    db = TestingSessionLocal()
    try:
        yield NoShowSweeper(db, clock=frozen_clock, grace_minutes=120)
    finally:
        db.close()


@pytest.fixture
def other_tenant_desk(test_db):  # pylint: disable=redefined-outer-name
    building = Building(tenant_id=OTHER_TENANT_ID, name="Annex")
    test_db.add(building)
    test_db.flush()
    floor = Floor(tenant_id=OTHER_TENANT_ID, building_id=building.id, name="Ground", floor_number=0)
    test_db.add(floor)
    test_db.flush()
    desk = Desk(tenant_id=OTHER_TENANT_ID, floor_id=floor.id, desk_number="G1")
    test_db.add(desk)
    test_db.commit()
    return desk


def get_status(booking_id, headers):
    return client.get(f"/bookings/{booking_id}", headers=headers).json()["data"]


# pylint: disable-next=redefined-outer-name
def test_sweep_marks_missed_booking(auth_headers, test_desk, frozen_clock, sweeper):
    created = create_booking(auth_headers, desk_id=test_desk.id, start="08:00", end="09:00")
    frozen_clock.set(datetime(2025, 3, 10, 11, 1))

    result = sweeper.run()
    assert result.marked == 1
    assert result.tenants_processed == 1
    assert result.failed_tenants == []

    data = get_status(created["id"], auth_headers)
    assert data["status"] == "NoShow"
    assert data["is_no_show"] is True

    response = client.post(f"/bookings/{created['id']}/check-in", headers=auth_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == "Cannot check in. Booking status is NoShow"

    response = client.post(f"/bookings/{created['id']}/cancel", headers=auth_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == "Cannot cancel booking marked as no-show"

    response = client.put(f"/bookings/{created['id']}", json={"purpose": "x"}, headers=auth_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == "Cannot update booking marked as no-show"

    response = client.post(f"/bookings/{created['id']}/check-out", headers=auth_headers)
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["message"] == (
        "Can only check out after checking in. Booking status is NoShow"
    )


# pylint: disable-next=redefined-outer-name
def test_sweep_is_idempotent(auth_headers, test_desk, frozen_clock, sweeper):
    create_booking(auth_headers, desk_id=test_desk.id, start="08:00", end="09:00")
    frozen_clock.set(datetime(2025, 3, 10, 11, 1))

    assert sweeper.run().marked == 1
    second = sweeper.run()
    assert second.marked == 0
    assert second.tenants_processed == 0


# pylint: disable-next=redefined-outer-name
def test_sweep_respects_grace_period(auth_headers, test_desk, frozen_clock, sweeper):
    created = create_booking(auth_headers, desk_id=test_desk.id, start="09:00", end="10:00")

    frozen_clock.set(datetime(2025, 3, 10, 11, 0))
    assert sweeper.run().marked == 0
    assert get_status(created["id"], auth_headers)["status"] == "Confirmed"

    frozen_clock.set(datetime(2025, 3, 10, 11, 1))
    assert sweeper.run().marked == 1


# pylint: disable-next=redefined-outer-name
def test_sweep_skips_checked_in_and_other_days(auth_headers, test_desk, frozen_clock, sweeper):
    checked_in = create_booking(auth_headers, desk_id=test_desk.id, start="08:00", end="09:00")
    tomorrow = create_booking(
        auth_headers, desk_id=test_desk.id, start="08:00", end="09:00", day="2025-03-11"
    )
    frozen_clock.set(datetime(2025, 3, 10, 8, 10))
    client.post(f"/bookings/{checked_in['id']}/check-in", headers=auth_headers)

    frozen_clock.set(datetime(2025, 3, 10, 23, 0))
    assert sweeper.run().marked == 0
    assert get_status(checked_in["id"], auth_headers)["status"] == "CheckedIn"
    assert get_status(tomorrow["id"], auth_headers)["status"] == "Confirmed"


# pylint: disable-next=redefined-outer-name
def test_sweep_does_nothing_early_in_the_day(auth_headers, test_desk, frozen_clock, sweeper):
    create_booking(auth_headers, desk_id=test_desk.id, start="00:00", end="00:30")
    frozen_clock.set(datetime(2025, 3, 10, 1, 0))
    assert sweeper.run().marked == 0


# pylint: disable-next=redefined-outer-name
def test_no_show_releases_slot(auth_headers, test_desk, frozen_clock, sweeper):
    create_booking(auth_headers, desk_id=test_desk.id, start="08:00", end="12:00")
    frozen_clock.set(datetime(2025, 3, 10, 10, 1))
    assert sweeper.run().marked == 1

    replacement = create_booking(auth_headers, desk_id=test_desk.id, start="10:30", end="12:00")
    assert replacement["status"] == "Confirmed"


# pylint: disable-next=redefined-outer-name
def test_sweep_continues_after_failed_tenant(
    auth_headers, test_desk, other_tenant_desk, frozen_clock, sweeper, monkeypatch
):
    mine = create_booking(auth_headers, desk_id=test_desk.id, start="08:00", end="09:00")
    outsider = headers_for("outsider", tenant_id=OTHER_TENANT_ID)
    theirs = create_booking(outsider, desk_id=other_tenant_desk.id, start="08:00", end="09:00")
    frozen_clock.set(datetime(2025, 3, 10, 11, 1))

    mark_tenant = NoShowSweeper._mark_tenant

    def failing_for_first_tenant(self, tenant_id, *args):
        if tenant_id != OTHER_TENANT_ID:
            raise OperationalError("UPDATE bookings", {}, Exception("database is locked"))
        return mark_tenant(self, tenant_id, *args)

    monkeypatch.setattr(NoShowSweeper, "_mark_tenant", failing_for_first_tenant)

    result = sweeper.run()
    assert result.failed_tenants == [test_desk.tenant_id]
    assert result.tenants_processed == 1
    assert result.marked == 1
    assert get_status(mine["id"], auth_headers)["status"] == "Confirmed"
    assert get_status(theirs["id"], outsider)["status"] == "NoShow"


# pylint: disable-next=redefined-outer-name
def test_concurrent_sweep_is_skipped(sweeper):
    assert no_show._sweep_lock.acquire(blocking=False)
    try:
        result = sweeper.run()
    finally:
        no_show._sweep_lock.release()
    assert result.skipped is True
    assert result.marked == 0


# pylint: disable-next=redefined-outer-name
def test_run_no_show_sweep_with_session_factory(auth_headers, test_desk, frozen_clock):
    create_booking(auth_headers, desk_id=test_desk.id, start="08:00", end="09:00")
    frozen_clock.set(datetime(2025, 3, 10, 11, 1))
    result = run_no_show_sweep(TestingSessionLocal, clock=frozen_clock)
    assert result.marked == 1


# pylint: disable-next=redefined-outer-name
def test_sweep_endpoint(admin_headers, auth_headers, test_desk, frozen_clock):
    created = create_booking(auth_headers, desk_id=test_desk.id, start="08:00", end="09:00")

    response = client.post("/bookings/no-show-sweep", headers=auth_headers)
    assert response.status_code == status.HTTP_403_FORBIDDEN

    frozen_clock.set(datetime(2025, 3, 10, 11, 1))
    response = client.post("/bookings/no-show-sweep", headers=admin_headers)
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body["data"]["marked"] == 1
    assert body["message"] == "Marked 1 bookings as no-show"
    assert get_status(created["id"], auth_headers)["status"] == "NoShow"
