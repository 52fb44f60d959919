"""Fare-record store: the reads and writes the validation pipeline depends on."""

from datetime import datetime, timezone
from typing import FrozenSet, Iterable, List, Optional, Protocol, runtime_checkable
import logging

from sqlalchemy import insert, select, update
from sqlalchemy.orm import Session

from portam.database import (
    StationDB,
    StationZoneDB,
    SuportDB,
    TitleDB,
    UserTitleDB,
    UserTitleZoneDB,
    ValidationDB,
    ZoneDB,
)
from portam.models import (
    StationSnapshot,
    SuportSnapshot,
    UserTitleSnapshot,
    ValidationRecord,
)

logger = logging.getLogger(__name__)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a timestamp to an aware UTC datetime.

    Some backends (SQLite, timestamp-without-time-zone columns) return
    naive values; those were written as UTC and are marked as such.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@runtime_checkable
class FareRecordStore(Protocol):
    """
    Interface to the persistent fare records.

    Every timestamp returned by an implementation is aware and in UTC.
    """

    def fetch_suport(self, uid: int) -> Optional[SuportSnapshot]:
        ...

    def fetch_station(self, station_id: int) -> Optional[StationSnapshot]:
        ...

    def fetch_active_user_title(self, user_id: int) -> Optional[UserTitleSnapshot]:
        ...

    def fetch_user_title(self, user_title_id: int, for_update: bool = False) -> Optional[UserTitleSnapshot]:
        ...

    def fetch_last_validation(self, user_title_id: int) -> Optional[ValidationRecord]:
        ...

    def fetch_existing_zone_ids(self) -> FrozenSet[int]:
        ...

    def fetch_validation_history(self, user_id: int, limit: int) -> List[ValidationRecord]:
        ...

    def insert_user_title_zones(self, user_title_id: int, zone_ids: Iterable[int]) -> None:
        ...

    def update_first_use(
        self,
        user_title_id: int,
        first_use: datetime,
        zone_origin: int,
        expiration: Optional[datetime],
    ) -> bool:
        ...

    def insert_validation(
        self,
        user_id: int,
        suport_id: int,
        timestamp: datetime,
        station_id: int,
        user_title_id: int,
    ) -> ValidationRecord:
        ...

    def update_uses_left(self, user_title_id: int, expected: int, new: int) -> bool:
        ...


class SqlFareRecordStore:
    """
    SQLAlchemy implementation of FareRecordStore.

    Works inside a session owned by the caller; it never commits, so the
    caller's unit of work decides whether the writes persist.
    """

    def __init__(self, session: Session, zone_cache=None):
        self.session = session
        self.zone_cache = zone_cache

    # Reads

    def fetch_suport(self, uid: int) -> Optional[SuportSnapshot]:
        suport = self.session.get(SuportDB, uid)
        if suport is None:
            return None
        return SuportSnapshot(
            uid=suport.uid,
            user_id=suport.user_id,
            activation=as_utc(suport.activation),
        )

    def fetch_station(self, station_id: int) -> Optional[StationSnapshot]:
        station = self.session.get(StationDB, station_id)
        if station is None:
            return None
        zone_ids = self.session.scalars(
            select(StationZoneDB.zone_id)
            .where(StationZoneDB.station_id == station_id)
            .order_by(StationZoneDB.zone_id)
        ).all()
        return StationSnapshot(
            id=station.id,
            name=station.name,
            available=bool(station.available),
            zone_ids=tuple(zone_ids),
        )

    def _user_title_query(self):
        return (
            select(UserTitleDB, TitleDB.expiration)
            .join(TitleDB, TitleDB.id == UserTitleDB.title_id)
            .execution_options(populate_existing=True)
        )

    def _to_user_title(self, user_title: UserTitleDB, validity_days: Optional[int]) -> UserTitleSnapshot:
        zone_ids = self.session.scalars(
            select(UserTitleZoneDB.zone_id).where(UserTitleZoneDB.user_title_id == user_title.id)
        ).all()
        return UserTitleSnapshot(
            id=user_title.id,
            user_id=user_title.user_id,
            title_id=user_title.title_id,
            uses_left=user_title.uses_left,
            first_use=as_utc(user_title.first_use),
            expiration=as_utc(user_title.expiration),
            re_entry=user_title.re_entry,
            zone_origin=user_title.zone_origin,
            active=bool(user_title.active),
            link=user_title.link,
            num_zones=user_title.num_zones,
            validity_days=validity_days,
            zone_ids=frozenset(zone_ids),
        )

    def fetch_active_user_title(self, user_id: int) -> Optional[UserTitleSnapshot]:
        row = self.session.execute(
            self._user_title_query().where(
                UserTitleDB.user_id == user_id,
                UserTitleDB.active.is_(True),
            )
        ).one_or_none()
        if row is None:
            return None
        return self._to_user_title(*row)

    def fetch_user_title(self, user_title_id: int, for_update: bool = False) -> Optional[UserTitleSnapshot]:
        """
        Read one issued title. ``for_update`` takes a row lock held until
        the surrounding transaction ends (ignored by SQLite, which
        serializes writers on its own).
        """
        query = self._user_title_query().where(UserTitleDB.id == user_title_id)
        if for_update:
            query = query.with_for_update(of=UserTitleDB)
        row = self.session.execute(query).one_or_none()
        if row is None:
            return None
        return self._to_user_title(*row)

    def fetch_last_validation(self, user_title_id: int) -> Optional[ValidationRecord]:
        validation = self.session.scalars(
            select(ValidationDB)
            .where(ValidationDB.user_title_id == user_title_id)
            .order_by(ValidationDB.timestamp.desc(), ValidationDB.id.desc())
            .limit(1)
        ).first()
        if validation is None:
            return None
        return self._to_validation(validation)

    def fetch_existing_zone_ids(self) -> FrozenSet[int]:
        if self.zone_cache is not None:
            cached = self.zone_cache.get_zone_ids()
            if cached is not None:
                return cached
        zone_ids = frozenset(self.session.scalars(select(ZoneDB.id)).all())
        if self.zone_cache is not None:
            self.zone_cache.set_zone_ids(zone_ids)
        return zone_ids

    def fetch_validation_history(self, user_id: int, limit: int) -> List[ValidationRecord]:
        validations = self.session.scalars(
            select(ValidationDB)
            .where(ValidationDB.user_id == user_id)
            .order_by(ValidationDB.timestamp.desc(), ValidationDB.id.desc())
            .limit(limit)
        ).all()
        return [self._to_validation(validation) for validation in validations]

    @staticmethod
    def _to_validation(validation: ValidationDB) -> ValidationRecord:
        return ValidationRecord(
            id=validation.id,
            user_id=validation.user_id,
            suport_id=validation.suport_id,
            timestamp=as_utc(validation.timestamp),
            station_id=validation.station_id,
            user_title_id=validation.user_title_id,
            enter=bool(validation.enter),
        )

    # Writes

    def insert_user_title_zones(self, user_title_id: int, zone_ids: Iterable[int]) -> None:
        rows = [{"user_title_id": user_title_id, "zone_id": zone_id} for zone_id in sorted(zone_ids)]
        if rows:
            self.session.execute(insert(UserTitleZoneDB), rows)

    def update_first_use(
        self,
        user_title_id: int,
        first_use: datetime,
        zone_origin: int,
        expiration: Optional[datetime],
    ) -> bool:
        """
        Set the first-use fields only if the title is still uninitialised.

        Returns:
            True if this call initialised the title, False if it already was
        """
        values = {"first_use": first_use, "zone_origin": zone_origin}
        if expiration is not None:
            values["expiration"] = expiration
        result = self.session.execute(
            update(UserTitleDB)
            .where(UserTitleDB.id == user_title_id, UserTitleDB.first_use.is_(None))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def insert_validation(
        self,
        user_id: int,
        suport_id: int,
        timestamp: datetime,
        station_id: int,
        user_title_id: int,
    ) -> ValidationRecord:
        validation = ValidationDB(
            user_id=user_id,
            suport_id=suport_id,
            timestamp=timestamp,
            station_id=station_id,
            enter=True,
            user_title_id=user_title_id,
        )
        self.session.add(validation)
        self.session.flush()
        return self._to_validation(validation)

    def update_uses_left(self, user_title_id: int, expected: int, new: int) -> bool:
        """Compare-and-swap on uses_left; False when another tap changed it first."""
        result = self.session.execute(
            update(UserTitleDB)
            .where(UserTitleDB.id == user_title_id, UserTitleDB.uses_left == expected)
            .values(uses_left=new)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
