"""Global pytest fixtures & helpers.

Adds project root to path and provides fake positioning sources and address
resolvers so the pipeline can be driven synchronously.
"""
from __future__ import annotations

import os
import sys
from concurrent.futures import Future
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from location_tracker.errors import PositionError
from location_tracker.models import Position, PositionRequest, RawFix
from location_tracker.position_source import SubscriptionHandle


FIXED_NOW = datetime(2025, 1, 5, 10, 30, 15)


# --- Factory helpers -------------------------------------------------
def make_position(lat: float, lng: float, speed_kmh: float = 0.0) -> Position:
    return Position(
        latitude=lat,
        longitude=lng,
        speed_kmh=speed_kmh,
        timestamp=datetime(2025, 1, 5, 10, 30, 15, tzinfo=timezone.utc),
        accuracy_m=12.0,
    )


def make_fix(lat: float, lng: float, speed_mps: Optional[float] = None) -> RawFix:
    return RawFix(
        latitude=lat,
        longitude=lng,
        timestamp=datetime.now(timezone.utc),
        speed_mps=speed_mps,
        accuracy_m=8.0,
    )


class FakeSource:
    """Synchronous stand-in for PositionSource; tests push updates by hand."""

    def __init__(self, fixes: Optional[List[Position]] = None) -> None:
        self.handles: List[SubscriptionHandle] = []
        self._callbacks: Dict[int, Tuple[Callable, Callable]] = {}
        self.one_shot: List[object] = list(fixes or [])
        self.unsubscribed: List[Optional[SubscriptionHandle]] = []

    @property
    def active(self) -> Optional[SubscriptionHandle]:
        live = [h for h in self.handles if not h.cancelled]
        return live[-1] if live else None

    def get_current_position(self, request: PositionRequest | None = None) -> Position:
        if not self.one_shot:
            return make_position(12.971599, 77.594566)
        item = self.one_shot.pop(0)
        if isinstance(item, Exception):
            raise item
        return item  # type: ignore[return-value]

    def subscribe(self, on_update, on_error, request=None) -> SubscriptionHandle:
        if self.active is not None:
            self.active.cancel()
        handle = SubscriptionHandle()
        self.handles.append(handle)
        self._callbacks[handle.id] = (on_update, on_error)
        return handle

    def unsubscribe(self, handle: Optional[SubscriptionHandle]) -> None:
        self.unsubscribed.append(handle)
        if handle is not None:
            handle.cancel()

    def emit(self, position: Position) -> bool:
        """Deliver an update to every live subscription; False when none."""

        delivered = False
        for handle in self.handles:
            on_update, _ = self._callbacks[handle.id]
            delivered = handle.deliver(on_update, position) or delivered
        return delivered

    def fail(self, error: PositionError) -> bool:
        delivered = False
        for handle in self.handles:
            _, on_error = self._callbacks[handle.id]
            delivered = handle.deliver(on_error, error) or delivered
        return delivered

    def close(self) -> None:
        for handle in self.handles:
            handle.cancel()


class ImmediateResolver:
    """Resolves every lookup synchronously."""

    def __init__(self, address: str = "MG Road, Bengaluru, Karnataka, India") -> None:
        self.address = address
        self.calls: List[Tuple[float, float]] = []

    def reverse_geocode_async(self, lat: float, lon: float) -> "Future[str]":
        self.calls.append((lat, lon))
        future: Future[str] = Future()
        future.set_result(self.address)
        return future


class ManualResolver:
    """Hands out unresolved futures so tests decide completion order."""

    def __init__(self) -> None:
        self.futures: List[Future] = []
        self.calls: List[Tuple[float, float]] = []

    def reverse_geocode_async(self, lat: float, lon: float) -> "Future[str]":
        self.calls.append((lat, lon))
        future: Future[str] = Future()
        self.futures.append(future)
        return future

    def resolve(self, index: int, address: str) -> None:
        self.futures[index].set_result(address)


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def fake_source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def immediate_resolver() -> ImmediateResolver:
    return ImmediateResolver()


@pytest.fixture
def manual_resolver() -> ManualResolver:
    return ManualResolver()


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW
