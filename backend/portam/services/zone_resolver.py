"""Zone coverage of issued titles, fixed when a title is first used."""

from typing import AbstractSet, FrozenSet, Optional, Protocol, Sequence, runtime_checkable

from portam.exceptions import CannotInitialize


@runtime_checkable
class ZoneResolverInterface(Protocol):
    """Contract for deciding which zones a freshly started title covers."""

    def origin_for(self, station_zone_ids: Sequence[int]) -> int:
        """Pick the origin zone for a title first used at a station."""
        ...

    def resolve(
        self,
        zone_origin: int,
        num_zones: Optional[int],
        existing_zone_ids: AbstractSet[int],
    ) -> FrozenSet[int]:
        """Compute the covered zone ids."""
        ...


class CircularZoneResolver:
    """
    Covers every existing zone within ``num_zones - 1`` of the origin.

    With zones 0..10 in the system:
        origin 4, num_zones 3 -> {2, 3, 4, 5, 6}
        origin 2, num_zones 2 -> {1, 2, 3}
        origin 1, num_zones 3 -> {0, 1, 2, 3}   (zone -1 does not exist)

    Offsets falling outside the network are dropped, not replaced by
    farther zones.
    """

    def origin_for(self, station_zone_ids: Sequence[int]) -> int:
        if not station_zone_ids:
            raise CannotInitialize("station has no zones")
        return min(station_zone_ids)

    def resolve(
        self,
        zone_origin: int,
        num_zones: Optional[int],
        existing_zone_ids: AbstractSet[int],
    ) -> FrozenSet[int]:
        if num_zones is None or num_zones < 1:
            raise CannotInitialize(f"title covers {num_zones} zones")

        radius = num_zones - 1
        covered = frozenset(
            zone_id
            for zone_id in range(zone_origin - radius, zone_origin + radius + 1)
            if zone_id in existing_zone_ids
        )
        if not covered:
            raise CannotInitialize(f"no existing zone around origin {zone_origin}")
        return covered


_default_resolver: Optional[ZoneResolverInterface] = None


def get_zone_resolver() -> ZoneResolverInterface:
    """Get the default zone resolver instance."""
    global _default_resolver
    if _default_resolver is None:
        _default_resolver = CircularZoneResolver()
    return _default_resolver
