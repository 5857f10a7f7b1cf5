"""Personal location tracker: live position, path recording and Excel export."""

from .errors import (
    ExportPreconditionFailure,
    InitializationFailure,
    LocationTrackerError,
    MapNotReady,
    PermissionDenied,
    PositionError,
    PositionTimeout,
    PositionUnavailable,
)
from .models import Position, TrackingSession, TrackRecord
from .pipeline import TrackingPipeline

__all__ = [
    "Position",
    "TrackRecord",
    "TrackingSession",
    "TrackingPipeline",
    "LocationTrackerError",
    "PositionError",
    "PermissionDenied",
    "PositionTimeout",
    "PositionUnavailable",
    "ExportPreconditionFailure",
    "MapNotReady",
    "InitializationFailure",
]
