"""Services package for the PORTA'M validation service."""

from .validation import (
    get_validation_engine,
    ValidationEngine
)
from .zone_resolver import (
    get_zone_resolver,
    ZoneResolverInterface,
    CircularZoneResolver
)

__all__ = [
    'get_validation_engine',
    'ValidationEngine',
    'get_zone_resolver',
    'ZoneResolverInterface',
    'CircularZoneResolver'
]
