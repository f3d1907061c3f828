import os
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from workspace_booking.main import app
from workspace_booking.db import Base, build_engine, get_db
from workspace_booking.models.space import Building, Desk, Floor, MeetingRoom
from workspace_booking.models.user import User
from workspace_booking.utils.auth import create_access_token
from workspace_booking.utils.clock import get_clock

# Test database setup
if not os.path.exists("./out"):
    os.makedirs("./out")

SQLALCHEMY_DATABASE_URL = "sqlite:///./out/tests.db"
engine = build_engine(SQLALCHEMY_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
# fixture objects keep their loaded state after commit so no read transaction stays open
FixtureSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
)

# Create test tables
Base.metadata.create_all(bind=engine)

TENANT_ID = "tenant-acme"
OTHER_TENANT_ID = "tenant-globex"


class FrozenClock:
    """Clock the services read instead of the wall clock; tests move it by hand."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def set(self, now):
        self.now = now


# 2025-03-10 07:00 UTC, before any booking of the day starts
clock = FrozenClock(datetime(2025, 3, 10, 7, 0))


# Dependency override
def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db
app.dependency_overrides[get_clock] = lambda: clock

client = TestClient(app)


# Fixtures
@pytest.fixture(autouse=True)
def clear_db():
    """Clear all data from all tables after each test and reset the clock"""
    clock.set(datetime(2025, 3, 10, 7, 0))
    with engine.connect() as conn:
        trans = conn.begin()
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
        trans.commit()


@pytest.fixture
def test_db():
    """Provide a database session for testing"""
    db = FixtureSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def frozen_clock():
    return clock


def get_next_user():
    """Helper function to generate unique user ids"""
    if not hasattr(get_next_user, "user_count"):
        get_next_user.user_count = 0
    get_next_user.user_count += 1
    return get_next_user.user_count


def make_user(db, tenant_id=TENANT_ID):
    number = get_next_user()
    user = User(
        id=f"user-{number}",
        tenant_id=tenant_id,
        first_name="Test",
        last_name=f"User{number}",
        email=f"user_{number}@example.com",
    )
    db.add(user)
    db.commit()
    return user


def headers_for(user_id, tenant_id=TENANT_ID, roles=()):
    token = create_access_token({"sub": user_id, "tenant_id": tenant_id, "roles": list(roles)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def test_user(test_db):
    """Fixture to create a test user in the directory"""
    return make_user(test_db)


@pytest.fixture
def auth_headers(test_user):
    """Fixture to get authentication headers for test_user"""
    return headers_for(test_user.id)


@pytest.fixture
def other_user_headers(test_db):
    return headers_for(make_user(test_db).id)


@pytest.fixture
def admin_headers(test_db):
    return headers_for(make_user(test_db).id, roles=("admin",))


@pytest.fixture
def test_floor(test_db):
    building = Building(tenant_id=TENANT_ID, name="HQ")
    test_db.add(building)
    test_db.flush()
    floor = Floor(tenant_id=TENANT_ID, building_id=building.id, name="Floor 1", floor_number=1)
    test_db.add(floor)
    test_db.commit()
    return floor


@pytest.fixture
def test_desk(test_db, test_floor):
    desk = Desk(tenant_id=TENANT_ID, floor_id=test_floor.id, desk_number="D1")
    test_db.add(desk)
    test_db.commit()
    return desk


@pytest.fixture
def test_room(test_db, test_floor):
    room = MeetingRoom(
        tenant_id=TENANT_ID, floor_id=test_floor.id, name="Everest", room_number="R1", capacity=8
    )
    test_db.add(room)
    test_db.commit()
    return room


def booking_payload(desk_id=None, meeting_room_id=None, start="09:00", end="10:00", day="2025-03-10", **extra):
    payload = {
        "booking_date": day,
        "start_time": start,
        "end_time": end,
        **extra,
    }
    if desk_id is not None:
        payload["desk_id"] = desk_id
    if meeting_room_id is not None:
        payload["meeting_room_id"] = meeting_room_id
    return payload


def create_booking(headers, **kwargs):
    response = client.post("/bookings/", json=booking_payload(**kwargs), headers=headers)
    assert response.status_code == 201, response.json()
    return response.json()["data"]
