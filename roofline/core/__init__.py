"""Core primitives: coordinates, configuration, errors and provider state.

``roofline.core.models`` depends on the geometry package and is imported by
module path to keep package initialisation free of cycles.
"""

from .coordinates import Bounds, Coordinate
from .config import Settings, settings
from .exceptions import (
    AddressNotFound,
    DetectionTimeout,
    InvalidEditState,
    InvalidGeometry,
    NoFootprintFound,
    ProviderUnavailable,
    RooflineError,
)
from .lifecycle import ProviderState, ProviderStatus

__all__ = [
    "Bounds",
    "Coordinate",
    "Settings",
    "settings",
    "AddressNotFound",
    "DetectionTimeout",
    "InvalidEditState",
    "InvalidGeometry",
    "NoFootprintFound",
    "ProviderUnavailable",
    "RooflineError",
    "ProviderState",
    "ProviderStatus",
]
