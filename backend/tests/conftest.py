"""Shared fixtures: a temporary datastore with a small zone network."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from portam.cache import UserTitleLockRegistry, ZoneCatalogCache
from portam.database import DatabaseManager, UserTitleDB, ValidationDB
from portam.services.store import SqlFareRecordStore
from portam.services.validation import ValidationEngine

NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)

# Station ids of the test network
STATION_A = 1         # zone 4
STATION_B = 2         # zones 4 and 5
STATION_SANTS = 3     # zone 1
STATION_EDGE = 4      # zone 10
STATION_CLOSED = 5    # zone 4, not available
STATION_NO_ZONES = 6
STATION_FAR = 7       # zone 8

# Support uids
SUPORT_ACTIVE = 1001
SUPORT_NEVER_ACTIVATED = 1002
SUPORT_FUTURE = 1003
SUPORT_UNASSIGNED = 1004


@pytest.fixture
def db_manager(tmp_path):
    """Temporary SQLite datastore with zones 0..10, stations and supports."""
    manager = DatabaseManager(f"sqlite:///{tmp_path / 'portam_test.db'}")

    for zone_id in range(0, 11):
        manager.add_zone(zone_id)

    manager.add_station(STATION_A, "Station A", [4])
    manager.add_station(STATION_B, "Station B", [4, 5])
    manager.add_station(STATION_SANTS, "Sants", [1])
    manager.add_station(STATION_EDGE, "Edge", [10])
    manager.add_station(STATION_CLOSED, "Closed", [4], available=False)
    manager.add_station(STATION_NO_ZONES, "No zones", [])
    manager.add_station(STATION_FAR, "Far", [8])

    yield manager
    manager.engine.dispose()


@pytest.fixture
def rider(db_manager):
    """A rider owning one active support plus a few inactive ones."""
    user_id = db_manager.add_user("Rider", "rider@example.com")
    db_manager.add_suport(SUPORT_ACTIVE, user_id, NOW - timedelta(days=30))
    db_manager.add_suport(SUPORT_NEVER_ACTIVATED, user_id, None)
    db_manager.add_suport(SUPORT_FUTURE, user_id, NOW + timedelta(days=1))
    db_manager.add_suport(SUPORT_UNASSIGNED, None, NOW - timedelta(days=30))
    return user_id


@pytest.fixture
def issue_title(db_manager, rider):
    """Create a title template, issue it to the rider and activate it."""
    def _issue(num_zones=1, uses=None, expiration=None, link=None, re_entry=None, activate=True):
        title_id = db_manager.add_title(
            "Test title",
            num_zones=num_zones,
            uses=uses,
            expiration=expiration,
            link=link,
            re_entry=re_entry,
        )
        user_title_id = db_manager.assign_title(rider, title_id)
        if activate:
            db_manager.activate_user_title(user_title_id)
        return user_title_id
    return _issue


@pytest.fixture
def lock_registry():
    return UserTitleLockRegistry(redis_client=None, timeout=5.0)


@pytest.fixture
def engine(db_manager, lock_registry):
    return ValidationEngine(
        db_manager,
        zone_cache=ZoneCatalogCache(redis_client=None),
        lock_registry=lock_registry,
    )


@pytest.fixture
def read_user_title(db_manager):
    """Read an issued title straight from the datastore."""
    def _read(user_title_id):
        with db_manager.transaction() as session:
            return SqlFareRecordStore(session).fetch_user_title(user_title_id)
    return _read


@pytest.fixture
def count_validations(db_manager):
    def _count(user_title_id=None):
        query = select(func.count()).select_from(ValidationDB)
        if user_title_id is not None:
            query = query.where(ValidationDB.user_title_id == user_title_id)
        with db_manager.transaction() as session:
            return session.scalar(query)
    return _count


@pytest.fixture
def active_titles(db_manager):
    def _active(user_id):
        with db_manager.transaction() as session:
            return session.scalars(
                select(UserTitleDB.id).where(UserTitleDB.user_id == user_id, UserTitleDB.active.is_(True))
            ).all()
    return _active
