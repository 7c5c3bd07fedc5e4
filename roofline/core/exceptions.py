"""
Error taxonomy for the detection and editing engine.

Geocoding and detection failures surface to the session as a single current
error. ``NoFootprintFound`` is recovered internally by the synthetic fallback
and only appears in logs.
"""

from typing import Optional


class RooflineError(Exception):
    """Base class for all Roofline errors."""


class AddressNotFound(RooflineError):
    """Address could not be resolved to a coordinate."""

    def __init__(self, address: str, reason: str = "no results"):
        super().__init__(f"Address not found: {address!r} ({reason})")
        self.address = address
        self.reason = reason


class DetectionTimeout(RooflineError):
    """Footprint source did not become ready in time."""

    def __init__(self, timeout_s: float, source: str = "footprints"):
        super().__init__(f"Source {source!r} failed to load within {timeout_s:g}s")
        self.timeout_s = timeout_s
        self.source = source


class NoFootprintFound(RooflineError):
    """No candidate footprint could be selected for a coordinate."""


class ProviderUnavailable(RooflineError):
    """An external provider failed to initialize. Fatal for the session."""

    def __init__(self, provider: str, cause: Optional[BaseException] = None):
        message = f"Provider unavailable: {provider}"
        if cause is not None:
            message = f"{message} ({cause})"
        super().__init__(message)
        self.provider = provider
        self.cause = cause


class InvalidGeometry(RooflineError):
    """Geometry cannot be normalized into a valid polygon."""


class InvalidEditState(RooflineError):
    """Edit operation not allowed in the controller's current mode."""
