"""Writes the outcome of a tap-in to the fare-record store."""

from datetime import datetime, timedelta
from typing import FrozenSet, Optional, Tuple
import logging

from portam.exceptions import StaleUserTitleError
from portam.models import SuportSnapshot, UserTitleSnapshot, ValidationRecord
from portam.services.store import FareRecordStore

logger = logging.getLogger(__name__)


class ValidationLedgerWriter:
    """
    Performs the mutations decided by the validation pipeline.

    The writer runs inside the caller's unit of work and never commits:
    if the pipeline later denies the tap, or any write fails, the whole
    transaction is rolled back and nothing the writer did persists.
    """

    def __init__(self, store: FareRecordStore):
        self.store = store

    def initialize(
        self,
        user_title: UserTitleSnapshot,
        zone_origin: int,
        zone_ids: FrozenSet[int],
        now: datetime,
    ) -> UserTitleSnapshot:
        """
        Start an issued title: set first use, origin and expiration and
        store its covered zones.

        The first-use update is conditional, so if another request got there
        first its values win and are returned instead of ours.

        Returns:
            The title as stored after initialization
        """
        expiration: Optional[datetime] = None
        if user_title.validity_days is not None:
            expiration = now + timedelta(days=user_title.validity_days)

        if self.store.update_first_use(user_title.id, now, zone_origin, expiration):
            self.store.insert_user_title_zones(user_title.id, zone_ids)
            logger.info(
                "Initialized user title %s at zone %s covering %s",
                user_title.id, zone_origin, sorted(zone_ids),
            )
        else:
            logger.info("User title %s was already initialized, keeping stored zones", user_title.id)

        stored = self.store.fetch_user_title(user_title.id)
        if stored is None or not stored.initialized:
            raise StaleUserTitleError(f"User title {user_title.id} vanished during initialization")
        return stored

    def commit(
        self,
        suport: SuportSnapshot,
        station_id: int,
        user_title: UserTitleSnapshot,
        now: datetime,
        free: bool,
    ) -> Tuple[ValidationRecord, Optional[int]]:
        """
        Record a successful tap and consume one use unless it is free.

        Returns:
            The validation event and the uses left after this tap
        """
        record = self.store.insert_validation(
            user_id=user_title.user_id,
            suport_id=suport.uid,
            timestamp=now,
            station_id=station_id,
            user_title_id=user_title.id,
        )

        uses_left = user_title.uses_left
        if not free and uses_left is not None:
            if not self.store.update_uses_left(user_title.id, expected=uses_left, new=uses_left - 1):
                raise StaleUserTitleError(
                    f"uses_left of user title {user_title.id} changed from {uses_left} during validation"
                )
            uses_left -= 1

        return record, uses_left
