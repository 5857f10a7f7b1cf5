"""Central error types used across the application."""

from __future__ import annotations


class LocationTrackerError(RuntimeError):
    """Base error for location tracker failures."""


class PositionError(LocationTrackerError):
    """Base error for positioning failures."""

    kind = "PositionUnavailable"


class PermissionDenied(PositionError):
    """Raised when the positioning backend refuses to report a location."""

    kind = "PermissionDenied"


class PositionTimeout(PositionError):
    """Raised when no fix arrives within the requested timeout."""

    kind = "Timeout"


class PositionUnavailable(PositionError):
    """Raised when the backend cannot obtain a fix."""

    kind = "PositionUnavailable"


class GeocodingFailure(LocationTrackerError):
    """Raised by lookups that cannot resolve an address (absorbed to a sentinel)."""


class ExportPreconditionFailure(LocationTrackerError):
    """Raised when there is nothing to export or the writer is not ready."""


class MapNotReady(LocationTrackerError):
    """Raised when the map view is requested before the renderer has loaded."""


class InitializationFailure(LocationTrackerError):
    """Raised when the map surface cannot be constructed."""


__all__ = [
    "LocationTrackerError",
    "PositionError",
    "PermissionDenied",
    "PositionTimeout",
    "PositionUnavailable",
    "GeocodingFailure",
    "ExportPreconditionFailure",
    "MapNotReady",
    "InitializationFailure",
]
