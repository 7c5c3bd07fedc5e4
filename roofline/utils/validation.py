"""
Input validation for addresses, coordinates and detection options.

Usage:
    from roofline.utils.validation import validate_address, ValidationError

    address = validate_address("  1600 Pennsylvania Ave NW,  Washington ")
"""

import math
from typing import List, Optional, Tuple

from .logging_config import get_logger

logger = get_logger(__name__)

MIN_ADDRESS_LENGTH = 3
MAX_ADDRESS_LENGTH = 512


class ValidationError(ValueError):
    """Raised when input validation fails."""

    def __init__(self, message: str, field: str = "", suggestions: Optional[List[str]] = None):
        super().__init__(message)
        self.field = field
        self.suggestions = suggestions or []


def validate_address(address: Optional[str]) -> str:
    """
    Normalize whitespace and check an address is worth geocoding.

    Returns:
        The cleaned address text

    Raises:
        ValidationError: If the address is empty, too short or too long
    """
    if not address or not address.strip():
        raise ValidationError(
            "Address cannot be empty",
            field="address",
            suggestions=["Enter a street address like '1600 Pennsylvania Ave NW, Washington, DC'"],
        )

    cleaned = " ".join(address.split())

    if len(cleaned) < MIN_ADDRESS_LENGTH:
        raise ValidationError(
            f"Address too short: '{cleaned}'",
            field="address",
            suggestions=["Include at least a street name"],
        )

    if len(cleaned) > MAX_ADDRESS_LENGTH:
        raise ValidationError(
            f"Address too long ({len(cleaned)} characters)",
            field="address",
        )

    if cleaned.isdigit():
        logger.warning(f"Address is only digits: {cleaned}")

    return cleaned


def validate_coordinates(longitude: float, latitude: float) -> Tuple[float, float]:
    """
    Check a WGS84 position.

    Returns:
        Tuple of (longitude, latitude) as floats

    Raises:
        ValidationError: If either value is not finite or out of range
    """
    try:
        lng = float(longitude)
        lat = float(latitude)
    except (TypeError, ValueError):
        raise ValidationError(
            f"Coordinates must be numbers: ({longitude!r}, {latitude!r})",
            field="coordinates",
        )

    if not (math.isfinite(lng) and math.isfinite(lat)):
        raise ValidationError("Coordinates must be finite", field="coordinates")

    if not -90.0 <= lat <= 90.0:
        raise ValidationError(
            f"Latitude {lat} outside [-90, 90]",
            field="latitude",
            suggestions=["Check that longitude and latitude are not swapped"],
        )

    if not -180.0 <= lng <= 180.0:
        raise ValidationError(f"Longitude {lng} outside [-180, 180]", field="longitude")

    return lng, lat


def validate_positive(value: float, field: str) -> float:
    if value is None or not math.isfinite(value) or value <= 0:
        raise ValidationError(f"{field} must be a positive number, got {value!r}", field=field)
    return float(value)
