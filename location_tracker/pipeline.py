"""Tracking and path-recording pipeline.

Every state change is expressed as an event fed through :func:`reduce`, a pure
``(session, event) -> session`` function. :class:`TrackingPipeline` wires the
reducer to a live :class:`PositionSource` subscription and to asynchronous
address lookups, serialising all events behind one lock. Listeners are called
after the lock is released.

Record ordering: records are appended in arrival order, not lookup completion
order. Each qualifying update receives a sequence number when its path point
is appended; its record waits in ``pending`` until every earlier record has
its address, then is flushed. Lookups started before ``stop()`` still land in
``records``; lookups belonging to an earlier recording run are dropped.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Iterator, List, Optional, Protocol, Tuple, Union

from .config import ADDRESS_FETCH_FAILED
from .errors import PositionError
from .models import (
    IDLE,
    RECORDING,
    TRACKING,
    PendingRecord,
    Position,
    TrackingSession,
)
from .position_source import PositionSource, SubscriptionHandle
from .utils import format_coordinate, format_speed, format_timestamp

SessionListener = Callable[[TrackingSession], None]


class AddressResolver(Protocol):
    def reverse_geocode_async(self, lat: float, lon: float) -> "Future[str]": ...


@dataclass(frozen=True, slots=True)
class TrackingStarted:
    pass


@dataclass(frozen=True, slots=True)
class TrackingStopped:
    pass


@dataclass(frozen=True, slots=True)
class RecordingToggled:
    pass


@dataclass(frozen=True, slots=True)
class PositionUpdated:
    position: Position
    received_at: datetime


@dataclass(frozen=True, slots=True)
class AddressResolved:
    generation: int
    sequence: int
    address: str


Event = Union[
    TrackingStarted, TrackingStopped, RecordingToggled, PositionUpdated, AddressResolved
]


def _flush(session: TrackingSession) -> TrackingSession:
    pending = dict(session.pending)
    records = list(session.records)
    next_flush = session.next_flush
    while next_flush in pending and pending[next_flush].address is not None:
        records.append(pending.pop(next_flush).complete())
        next_flush += 1
    if next_flush == session.next_flush:
        return replace(session, pending=pending)
    return replace(
        session, pending=pending, records=tuple(records), next_flush=next_flush
    )


def _on_position(session: TrackingSession, event: PositionUpdated) -> TrackingSession:
    if not session.subscribed:
        return session
    position = event.position
    if not session.recording:
        return replace(session, current_position=position)
    sequence = session.next_sequence
    pending = dict(session.pending)
    pending[sequence] = PendingRecord(
        sequence=sequence,
        timestamp=format_timestamp(event.received_at),
        latitude=format_coordinate(position.latitude),
        longitude=format_coordinate(position.longitude),
        speed=format_speed(position.speed_kmh),
    )
    return replace(
        session,
        current_position=position,
        path=session.path + (position.latlon,),
        pending=pending,
        next_sequence=sequence + 1,
    )


def _on_address(session: TrackingSession, event: AddressResolved) -> TrackingSession:
    if event.generation != session.generation:
        return session
    waiting = session.pending.get(event.sequence)
    if waiting is None or waiting.address is not None:
        return session
    pending = dict(session.pending)
    pending[event.sequence] = replace(waiting, address=event.address)
    return _flush(replace(session, pending=pending))


def _on_toggle(session: TrackingSession) -> TrackingSession:
    if session.status == TRACKING:
        return replace(
            session,
            status=RECORDING,
            path=(),
            records=(),
            pending={},
            next_sequence=0,
            next_flush=0,
            generation=session.generation + 1,
        )
    if session.status == RECORDING:
        return replace(session, status=TRACKING)
    return session


def reduce(session: TrackingSession, event: Event) -> TrackingSession:
    """Return the session that results from applying ``event``.

    Events that do not apply in the current state return ``session``
    unchanged (the same object).
    """

    if isinstance(event, PositionUpdated):
        return _on_position(session, event)
    if isinstance(event, AddressResolved):
        return _on_address(session, event)
    if isinstance(event, RecordingToggled):
        return _on_toggle(session)
    if isinstance(event, TrackingStarted):
        if session.status != IDLE:
            return session
        return replace(session, status=TRACKING)
    if isinstance(event, TrackingStopped):
        if session.status == IDLE and not session.path:
            return session
        # Records and in-flight lookups survive so export stays possible.
        return replace(session, status=IDLE, path=(), current_position=None)
    raise TypeError(f"Unknown pipeline event: {event!r}")


class TrackingPipeline:
    """Owns the tracking session and the live position subscription."""

    def __init__(
        self,
        source: PositionSource,
        resolver: AddressResolver,
        *,
        clock: Callable[[], datetime] = datetime.now,
        logger: logging.Logger | None = None,
    ) -> None:
        self._source = source
        self._resolver = resolver
        self._clock = clock
        self._log = logger or logging.getLogger(self.__class__.__name__)
        self._lock = threading.RLock()
        self._settled = threading.Condition(self._lock)
        self._session = TrackingSession()
        self._handle: Optional[SubscriptionHandle] = None
        self._listeners: List[SessionListener] = []
        self._notify_lock = threading.RLock()
        self._version = 0
        self._notified_version = 0
        self._notifying = False
        self.error_count = 0
        self.last_error: Optional[PositionError] = None

    @property
    def session(self) -> TrackingSession:
        with self._lock:
            return self._session

    @property
    def status(self) -> str:
        return self.session.status

    @property
    def recording(self) -> bool:
        return self.session.recording

    def add_listener(self, listener: SessionListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def dispatch(self, event: Event) -> TrackingSession:
        """Apply one event and notify listeners.

        Listeners run outside the session lock, one at a time, and never see
        an older session after a newer one.
        """

        _, current = self._apply(event)
        self._notify()
        return current

    def _apply(self, event: Event) -> Tuple[TrackingSession, TrackingSession]:
        with self._lock:
            previous = self._session
            current = reduce(previous, event)
            if current is not previous:
                self._session = current
                self._version += 1
                if current.in_flight == 0:
                    self._settled.notify_all()
            return previous, current

    def _notify(self) -> None:
        with self._notify_lock:
            # Changes made by a listener are picked up by the running loop.
            if self._notifying:
                return
            self._notifying = True
            try:
                while True:
                    with self._lock:
                        session, version = self._session, self._version
                        listeners = list(self._listeners)
                    if version == self._notified_version:
                        return
                    self._notified_version = version
                    for listener in listeners:
                        try:
                            listener(session)
                        except Exception as exc:
                            self._log.error(
                                "Session listener failed: %s", exc, exc_info=True
                            )
            finally:
                self._notifying = False

    def start(self) -> None:
        """Subscribe to position updates (Idle -> Tracking)."""

        self.dispatch(TrackingStarted())
        try:
            handle = self._source.subscribe(self._on_update, self._on_error)
        except Exception:
            self.dispatch(TrackingStopped())
            raise
        with self._lock:
            previous, self._handle = self._handle, handle
        if previous is not None and previous is not handle:
            self._source.unsubscribe(previous)
        self._log.info("Tracking started (subscription %s)", handle.id)

    def stop(self) -> None:
        """Unsubscribe and return to Idle. The path is cleared, records are kept."""

        with self._lock:
            handle, self._handle = self._handle, None
        # Unsubscribe outside the session lock: delivery holds the handle lock
        # while it waits for ours.
        self._source.unsubscribe(handle)
        session = self.dispatch(TrackingStopped())
        if handle is not None:
            self._log.info(
                "Tracking stopped (%d records kept, %d lookups in flight)",
                len(session.records),
                session.in_flight,
            )

    def toggle_recording(self) -> bool:
        """Start or stop recording; returns the new recording flag.

        Starting a recording clears the path and the records first. Outside
        tracking the call is ignored.
        """

        before, after = self._apply(RecordingToggled())
        self._notify()
        if after is before:
            self._log.warning("Recording toggle ignored: tracking is not running")
        elif after.recording:
            self._log.info("Recording started (run %d)", after.generation)
        else:
            self._log.info("Recording stopped with %d points", len(after.path))
        return after.recording

    def wait_for_pending(self, timeout: float | None = None) -> bool:
        """Block until every in-flight lookup has produced its record."""

        with self._settled:
            return self._settled.wait_for(
                lambda: self._session.in_flight == 0, timeout=timeout
            )

    @contextmanager
    def tracking(self) -> Iterator["TrackingPipeline"]:
        self.start()
        try:
            yield self
        finally:
            self.stop()

    def __enter__(self) -> "TrackingPipeline":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.stop()

    def _on_update(self, position: Position) -> None:
        before, after = self._apply(PositionUpdated(position, self._clock()))
        self._notify()
        if after is before or not after.recording:
            return
        if after.next_sequence == before.next_sequence:
            return
        self._resolve(after.generation, after.next_sequence - 1, position)

    def _resolve(self, generation: int, sequence: int, position: Position) -> None:
        try:
            future = self._resolver.reverse_geocode_async(
                position.latitude, position.longitude
            )
        except Exception as exc:
            self._log.warning("Could not schedule address lookup: %s", exc)
            self.dispatch(AddressResolved(generation, sequence, ADDRESS_FETCH_FAILED))
            return

        def _done(fut: "Future[str]") -> None:
            try:
                address = fut.result()
            except Exception as exc:
                self._log.warning("Address lookup failed: %s", exc)
                address = ADDRESS_FETCH_FAILED
            self.dispatch(AddressResolved(generation, sequence, address))

        future.add_done_callback(_done)

    def _on_error(self, error: PositionError) -> None:
        with self._lock:
            self.error_count += 1
            self.last_error = error
        self._log.error("Error tracking location: %s", error)


__all__ = [
    "AddressResolved",
    "Event",
    "PositionUpdated",
    "RecordingToggled",
    "TrackingPipeline",
    "TrackingStarted",
    "TrackingStopped",
    "reduce",
]
