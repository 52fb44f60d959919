"""
Tap-in validation.

A tap goes through an ordered series of gates; the first one that fails
decides the denial. Gates that depend on the issued title (expiration,
first use, re-entry, zones, link and uses) run while holding that title's
lock, inside one transaction that also performs the writes.
"""

from datetime import datetime
from typing import Any, List, Optional
import logging

from portam.cache import UserTitleLockRegistry, ZoneCatalogCache, get_lock_registry, get_zone_cache
from portam.database import DatabaseManager, get_db_manager
from portam.exceptions import ValidationDenied
from portam.messages import OutcomeKind
from portam.models import (
    StationSnapshot,
    SuportSnapshot,
    UserTitleSnapshot,
    ValidationOutcome,
    ValidationRecord,
)
from portam.services.ledger import ValidationLedgerWriter
from portam.services.store import FareRecordStore, SqlFareRecordStore, as_utc, utcnow
from portam.services.zone_resolver import ZoneResolverInterface, get_zone_resolver

logger = logging.getLogger(__name__)


def minutes_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 60


def parse_id(value: Any) -> Optional[int]:
    """Integer id from a request value, or None when it cannot name a record."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


class ValidationEngine:
    """Decides whether a tap-in is allowed and records it."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        zone_cache: Optional[ZoneCatalogCache] = None,
        lock_registry: Optional[UserTitleLockRegistry] = None,
        zone_resolver: Optional[ZoneResolverInterface] = None,
        store_class=SqlFareRecordStore,
    ):
        self.db_manager = db_manager
        self.zone_cache = zone_cache
        self.lock_registry = lock_registry or UserTitleLockRegistry()
        self.zone_resolver = zone_resolver or get_zone_resolver()
        self.store_class = store_class

    def _store(self, session) -> FareRecordStore:
        return self.store_class(session, zone_cache=self.zone_cache)

    def validate(
        self,
        suport_id: Any,
        station_id: Any,
        now: Optional[datetime] = None,
    ) -> ValidationOutcome:
        """
        Validate a tap of a support at a station.

        Never raises: denials and failures are returned as outcomes.
        Internal failures carry a diagnostic ``detail`` for the logs.
        Ids that are not integers name no record and are denied by the
        gate that looks them up. Without ``now`` the tap is timestamped
        once the title's lock is held.
        """
        if suport_id is None or station_id is None:
            return ValidationOutcome(kind=OutcomeKind.MISSING_PARAMETERS)

        if now is not None:
            now = as_utc(now)

        try:
            outcome = self.evaluate(parse_id(suport_id), parse_id(station_id), now)
        except ValidationDenied as denial:
            logger.info(
                "Denied suport %s at station %s: %s %s",
                suport_id, station_id, denial.kind.value, denial.reason,
            )
            return ValidationOutcome(kind=denial.kind)
        except Exception as e:
            detail = f"{type(e).__name__}: {e}"
            logger.exception("Validation of suport %s at station %s failed: %s", suport_id, station_id, detail)
            return ValidationOutcome(kind=OutcomeKind.INTERNAL_ERROR, detail=detail)

        logger.info(
            "Validated suport %s at station %s (validation %s, free=%s, uses_left=%s)",
            suport_id, station_id, outcome.validation.id, outcome.free, outcome.uses_left,
        )
        return outcome

    def evaluate(
        self,
        suport_id: Optional[int],
        station_id: Optional[int],
        now: Optional[datetime] = None,
    ) -> ValidationOutcome:
        """
        Run the gates and commit a successful tap.

        Raises:
            ValidationDenied: The first gate that refused the tap
        """
        with self.db_manager.transaction() as session:
            store = self._store(session)
            suport = self._check_suport(store, suport_id, now or utcnow())
            station = self._check_station(store, station_id)
            user_title = self._check_active_user_title(store, suport)

        with self.lock_registry.hold(user_title.id):
            # Taps on one title are timestamped in the order they hold its lock
            if now is None:
                now = utcnow()
            with self.db_manager.transaction() as session:
                store = self._store(session)
                # Re-read under the lock; the earlier snapshot may be stale
                user_title = store.fetch_user_title(user_title.id, for_update=True)
                if user_title is None or not user_title.active or user_title.user_id != suport.user_id:
                    raise ValidationDenied(OutcomeKind.NO_ACTIVE_TITLE, "title changed before lock")
                return self._decide(store, suport, station, user_title, now)

    def _check_suport(self, store: FareRecordStore, suport_id: Optional[int], now: datetime) -> SuportSnapshot:
        suport = store.fetch_suport(suport_id) if suport_id is not None else None
        if suport is None:
            raise ValidationDenied(OutcomeKind.SUPPORT_NOT_FOUND)
        if not suport.is_active(now):
            raise ValidationDenied(OutcomeKind.SUPPORT_INACTIVE)
        return suport

    def _check_station(self, store: FareRecordStore, station_id: Optional[int]) -> StationSnapshot:
        station = store.fetch_station(station_id) if station_id is not None else None
        if station is None or not station.available:
            raise ValidationDenied(OutcomeKind.STATION_UNAVAILABLE)
        return station

    def _check_active_user_title(self, store: FareRecordStore, suport: SuportSnapshot) -> UserTitleSnapshot:
        if suport.user_id is None:
            raise ValidationDenied(OutcomeKind.NO_ACTIVE_TITLE, "suport is not assigned to a user")
        user_title = store.fetch_active_user_title(suport.user_id)
        if user_title is None:
            raise ValidationDenied(OutcomeKind.NO_ACTIVE_TITLE)
        return user_title

    def _initialize(
        self,
        store: FareRecordStore,
        station: StationSnapshot,
        user_title: UserTitleSnapshot,
        now: datetime,
    ) -> UserTitleSnapshot:
        zone_origin = self.zone_resolver.origin_for(station.zone_ids)
        zone_ids = self.zone_resolver.resolve(
            zone_origin, user_title.num_zones, store.fetch_existing_zone_ids()
        )
        return ValidationLedgerWriter(store).initialize(user_title, zone_origin, zone_ids, now)

    def _decide(
        self,
        store: FareRecordStore,
        suport: SuportSnapshot,
        station: StationSnapshot,
        user_title: UserTitleSnapshot,
        now: datetime,
    ) -> ValidationOutcome:
        if user_title.is_expired(now):
            raise ValidationDenied(OutcomeKind.TITLE_EXPIRED)

        if not user_title.initialized:
            user_title = self._initialize(store, station, user_title, now)

        # Re-entry and link windows both look at the same latest tap
        last: Optional[ValidationRecord] = None
        if user_title.re_entry is not None or user_title.link is not None:
            last = store.fetch_last_validation(user_title.id)
        elapsed = minutes_between(last.timestamp, now) if last is not None else None

        if (
            user_title.re_entry is not None
            and last is not None
            and last.station_id == station.id
            and elapsed < user_title.re_entry
        ):
            raise ValidationDenied(OutcomeKind.REENTRY_TOO_SOON, f"{elapsed:.1f} min since last tap")

        if not user_title.zone_ids.intersection(station.zone_ids):
            raise ValidationDenied(OutcomeKind.NOT_VALID_FOR_ZONE)

        free = (
            user_title.link is not None
            and last is not None
            and last.station_id != station.id
            and elapsed < user_title.link
        )

        if not free and user_title.uses_left is not None and user_title.uses_left <= 0:
            raise ValidationDenied(OutcomeKind.NO_USES_LEFT)

        record, uses_left = ValidationLedgerWriter(store).commit(suport, station.id, user_title, now, free)
        return ValidationOutcome(
            kind=OutcomeKind.VALIDATION_SUCCESS,
            validation=record,
            uses_left=uses_left,
            expiration=user_title.expiration,
            free=free,
        )

    def history(self, user_id: int, limit: int) -> List[ValidationRecord]:
        """Validations of a rider, newest first."""
        with self.db_manager.transaction() as session:
            return self._store(session).fetch_validation_history(user_id, limit)


_default_engine: Optional[ValidationEngine] = None


def get_validation_engine() -> ValidationEngine:
    """Get singleton validation engine wired to the shared database, cache and locks."""
    global _default_engine
    if _default_engine is None:
        _default_engine = ValidationEngine(
            get_db_manager(),
            zone_cache=get_zone_cache(),
            lock_registry=get_lock_registry(),
            zone_resolver=get_zone_resolver(),
        )
    return _default_engine
