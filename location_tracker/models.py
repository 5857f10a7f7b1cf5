"""Dataclasses describing fixes, recorded points and the tracking session."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Literal, Optional, Tuple

from .config import ONE_SHOT_TIMEOUT_SECONDS, WATCH_TIMEOUT_SECONDS

LatLon = Tuple[float, float]
PathPoint = LatLon
TrackingStatus = Literal["idle", "tracking", "recording"]

IDLE: TrackingStatus = "idle"
TRACKING: TrackingStatus = "tracking"
RECORDING: TrackingStatus = "recording"


@dataclass(frozen=True, slots=True)
class PositionRequest:
    """Options passed to a positioning backend for a single read."""

    high_accuracy: bool = True
    timeout_s: float = ONE_SHOT_TIMEOUT_SECONDS
    # 0 means a cached fix is never acceptable.
    max_age_s: float = 0.0


ONE_SHOT_REQUEST = PositionRequest(timeout_s=ONE_SHOT_TIMEOUT_SECONDS)
WATCH_REQUEST = PositionRequest(timeout_s=WATCH_TIMEOUT_SECONDS)


@dataclass(frozen=True, slots=True)
class RawFix:
    """A fix as reported by a backend, before unit conversion."""

    latitude: float
    longitude: float
    timestamp: datetime
    speed_mps: Optional[float] = None
    accuracy_m: Optional[float] = None


@dataclass(frozen=True, slots=True)
class Position:
    """A single position produced by PositionSource."""

    latitude: float
    longitude: float
    speed_kmh: float
    timestamp: datetime
    accuracy_m: Optional[float] = None

    @property
    def latlon(self) -> LatLon:
        return (self.latitude, self.longitude)


@dataclass(frozen=True, slots=True)
class TrackRecord:
    """One exported row: receipt time, coordinates, address and speed."""

    timestamp: str
    latitude: str
    longitude: str
    address: str
    speed: str

    def to_row(self) -> Dict[str, str]:
        return {
            "timestamp": self.timestamp,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "address": self.address,
            "speed": self.speed,
        }


@dataclass(frozen=True, slots=True)
class PendingRecord:
    """A record captured at receipt time whose address is still resolving."""

    sequence: int
    timestamp: str
    latitude: str
    longitude: str
    speed: str
    address: Optional[str] = None

    def complete(self) -> TrackRecord:
        return TrackRecord(
            timestamp=self.timestamp,
            latitude=self.latitude,
            longitude=self.longitude,
            address=self.address or "",
            speed=self.speed,
        )


@dataclass(frozen=True, slots=True)
class TrackingSession:
    """Aggregate pipeline state. Replaced, never mutated, by the reducer.

    ``pending`` holds records waiting for their address, keyed by the
    sequence number assigned when the matching path point was appended.
    ``next_flush`` is the lowest sequence not yet moved into ``records``.
    ``generation`` increases with every recording start so that lookups
    belonging to an earlier run can be recognised and dropped.
    """

    status: TrackingStatus = IDLE
    current_position: Optional[Position] = None
    path: Tuple[PathPoint, ...] = ()
    records: Tuple[TrackRecord, ...] = ()
    pending: Dict[int, PendingRecord] = field(default_factory=dict)
    next_sequence: int = 0
    next_flush: int = 0
    generation: int = 0

    @property
    def recording(self) -> bool:
        return self.status == RECORDING

    @property
    def subscribed(self) -> bool:
        return self.status != IDLE

    @property
    def in_flight(self) -> int:
        return self.next_sequence - self.next_flush


__all__ = [
    "LatLon",
    "PathPoint",
    "TrackingStatus",
    "IDLE",
    "TRACKING",
    "RECORDING",
    "PositionRequest",
    "ONE_SHOT_REQUEST",
    "WATCH_REQUEST",
    "RawFix",
    "Position",
    "TrackRecord",
    "PendingRecord",
    "TrackingSession",
]
