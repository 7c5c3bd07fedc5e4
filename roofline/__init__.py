"""
Roofline - roof outline detection and editing engine.

Resolves an address to a coordinate, detects the building footprint under it,
normalizes it into an editable roof polygon and keeps the editing and overlay
map surfaces in sync.
"""

__version__ = "0.1.0"
