"""Models for the PORTA'M validation service."""

from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from portam.messages import OutcomeKind, get_message, render


class ValidationRequest(BaseModel):
    """
    Request model for a tap-in.

    Ids are taken as sent; values that are not integers are answered with
    the not-found outcome of their gate rather than a schema error.
    """
    suport: Optional[Any] = Field(None, description="UID of the tapped support")
    station: Optional[Any] = Field(None, description="Station where the tap happened")


class ValidationResponse(BaseModel):
    """Response model for a tap-in."""
    success: bool
    code: int
    status: str
    msg: str
    validation_id: Optional[int] = None
    timestamp: Optional[datetime] = None
    station_id: Optional[int] = None
    user_title_id: Optional[int] = None
    uses_left: Optional[int] = Field(None, description="Remaining uses, null means unlimited")
    expiration: Optional[datetime] = None
    link: Optional[bool] = Field(None, description="True when the tap was a free transfer")


# Snapshots of store records. They are read once per request and never mutated.

class SuportSnapshot(BaseModel):
    """A physical support (card, wristband...) as read from the store."""
    model_config = ConfigDict(frozen=True)

    uid: int
    user_id: Optional[int] = None
    activation: Optional[datetime] = None

    def is_active(self, now: datetime) -> bool:
        return self.activation is not None and self.activation <= now


class StationSnapshot(BaseModel):
    """A station together with the zones it belongs to (ascending)."""
    model_config = ConfigDict(frozen=True)

    id: int
    name: str = ""
    available: bool = False
    zone_ids: Tuple[int, ...] = ()


class UserTitleSnapshot(BaseModel):
    """An issued fare product with its covered zones."""
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int
    title_id: int
    uses_left: Optional[int] = None
    first_use: Optional[datetime] = None
    expiration: Optional[datetime] = None
    re_entry: Optional[int] = None
    zone_origin: Optional[int] = None
    active: bool = False
    link: Optional[int] = None
    num_zones: Optional[int] = None
    validity_days: Optional[int] = Field(
        None, description="Validity length of the title template, counted from first use"
    )
    zone_ids: FrozenSet[int] = frozenset()

    @property
    def initialized(self) -> bool:
        return self.first_use is not None

    def is_expired(self, now: datetime) -> bool:
        return self.expiration is not None and self.expiration < now


class ValidationRecord(BaseModel):
    """A persisted validation event."""
    model_config = ConfigDict(frozen=True)

    id: int
    user_id: int
    suport_id: int
    timestamp: datetime
    station_id: int
    user_title_id: int
    enter: bool = True


class ValidationOutcome(BaseModel):
    """
    Result of evaluating a tap-in.

    Denials only carry their kind. Successes carry the persisted event and
    the state of the issued product after the tap. ``detail`` holds the
    diagnostic text of internal failures; it is logged, never rendered.
    """
    model_config = ConfigDict(frozen=True)

    kind: OutcomeKind
    validation: Optional[ValidationRecord] = None
    uses_left: Optional[int] = None
    expiration: Optional[datetime] = None
    free: bool = False
    detail: Optional[str] = None

    @property
    def success(self) -> bool:
        return get_message(self.kind).success

    @property
    def code(self) -> int:
        return get_message(self.kind).code

    def to_response(self, locale: str) -> Dict[str, Any]:
        """Render the outcome as a response body in the given locale."""
        if self.validation is None:
            return render(self.kind, locale)
        return render(
            self.kind,
            locale,
            validation_id=self.validation.id,
            timestamp=self.validation.timestamp.isoformat(),
            station_id=self.validation.station_id,
            user_title_id=self.validation.user_title_id,
            uses_left=self.uses_left,
            expiration=self.expiration.isoformat() if self.expiration else None,
            link=self.free,
        )


class HistoryResponse(BaseModel):
    """Response model for a rider's validation history."""
    success: bool
    code: int
    status: str
    msg: str
    user_id: int
    validations: List[ValidationRecord] = Field(
        default_factory=list, description="Validation events, newest first"
    )
